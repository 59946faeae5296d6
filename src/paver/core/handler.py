"""
Two-phase interception of agent tool calls.

Phase 1 blocks calls to tool names that have an alias. Phase 2 rewrites
parameters with the correction rules for the tool. Everything else, including
any failure of the engine or the rule store, allows the call unchanged: only an
explicit alias hit ever denies work.
"""

from __future__ import annotations

import json
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

from paver.core.composer import compose_corrections
from paver.core.config import Config, log_decision
from paver.core.matcher import describe, matches_alias
from paver.core.rules import MatchKind
from paver.core.store import RuleStore, StoreError

T = TypeVar("T")

HOOK_EVENT = "PreToolUse"


@dataclass(frozen=True)
class Invocation:
    """One tool call made by the agent."""

    tool_name: str
    tool_input: dict[str, Any] = field(default_factory=dict)


@dataclass
class Decision:
    """Outcome of intercepting one invocation."""

    action: Literal["allow", "deny"]
    reason: str
    updated_input: dict[str, str] = field(default_factory=dict)
    context: str | None = None

    def __repr__(self) -> str:
        return f"Decision({self.action!r}, {self.reason!r})"

    @property
    def blocked(self) -> bool:
        return self.action == "deny"

    @property
    def rewrites(self) -> bool:
        return self.action == "allow" and bool(self.updated_input)

    def to_hook_output(self) -> dict | None:
        """Claude Code PreToolUse JSON for a rewrite, None when nothing is printed."""
        if not self.rewrites:
            return None
        output: dict[str, Any] = {
            "hookEventName": HOOK_EVENT,
            "permissionDecision": "allow",
            "updatedInput": self.updated_input,
        }
        if self.context:
            output["additionalContext"] = self.context
        return {"hookSpecificOutput": output}


def allow(reason: str) -> Decision:
    return Decision("allow", reason)


def decode_payload(raw: str | bytes) -> Invocation | None:
    """Decode hook JSON. Returns None for anything that is not a usable invocation."""
    try:
        data = json.loads(raw)
    except (ValueError, TypeError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    tool_name = data.get("tool_name")
    if not isinstance(tool_name, str) or not tool_name:
        return None
    tool_input = data.get("tool_input")
    if tool_input is None:
        tool_input = {}
    if not isinstance(tool_input, dict):
        return None
    return Invocation(tool_name, tool_input)


def intercept(raw: str | bytes, store: RuleStore | None, config: Config) -> Decision:
    """Decide on a raw hook payload. Never raises."""
    invocation = decode_payload(raw)
    if invocation is None:
        log_decision("passthrough", "", reason="malformed_payload")
        return allow("malformed payload")
    if store is None:
        log_decision("passthrough", invocation.tool_name, reason="no_store")
        return allow("no rule store")
    return check_invocation(invocation, store, config)


def check_invocation(invocation: Invocation, store: RuleStore, config: Config) -> Decision:
    """Run both phases for one invocation. Never raises."""
    try:
        return _check(invocation, store, config)
    except Exception as e:
        log_decision(
            "failed_open", invocation.tool_name, invocation.tool_input, reason=repr(e)
        )
        return allow(f"engine error: {e}")


def _check(invocation: Invocation, store: RuleStore, config: Config) -> Decision:
    tool = invocation.tool_name

    # Phase 1: tool-name alias → block
    try:
        alias = call_with_timeout(
            lambda: store.lookup_alias(tool, "", "", "", MatchKind.ALIAS), config.timeout
        )
    except (StoreError, TimeoutError) as e:
        log_decision("failed_open", tool, invocation.tool_input, reason=f"alias lookup: {e!r}")
        return allow("alias lookup failed")
    if alias is not None and matches_alias(tool, alias):
        message = describe(alias)
        log_decision("blocked", tool, invocation.tool_input, to=alias.to)
        return Decision("deny", message)

    # Phase 2: parameter corrections → rewrite
    try:
        rules = call_with_timeout(lambda: store.rules_for_tool(tool), config.timeout)
    except (StoreError, TimeoutError) as e:
        log_decision("failed_open", tool, invocation.tool_input, reason=f"rule lookup: {e!r}")
        return allow("rule lookup failed")
    if not rules:
        log_decision("passthrough", tool, reason="no_rules")
        return allow("no rules for tool")

    corrections = compose_corrections(invocation.tool_input, rules)
    if not corrections:
        log_decision("passthrough", tool, reason="no_match")
        return allow("no rule matched")

    updated = {c.param: c.value for c in corrections}
    context = "Corrected: " + "; ".join(c.description for c in corrections)
    log_decision("corrected", tool, invocation.tool_input, updated_input=updated)
    return Decision("allow", context, updated_input=updated, context=context)


def call_with_timeout(fn: Callable[[], T], timeout: float | None) -> T:
    """Run fn in a daemon thread, raising TimeoutError after timeout seconds.

    On timeout the caller stops waiting. The worker is a daemon, so a stuck
    store call never holds the process open at exit.
    """
    if not timeout:
        return fn()
    results: queue.SimpleQueue = queue.SimpleQueue()

    def worker() -> None:
        try:
            results.put((True, fn()))
        except Exception as e:
            results.put((False, e))

    threading.Thread(target=worker, name="paver-store", daemon=True).start()
    try:
        ok, value = results.get(timeout=timeout)
    except queue.Empty:
        raise TimeoutError(f"store call took longer than {timeout}s") from None
    if not ok:
        raise value
    return value
