"""Claude Code PreToolUse hook that corrects tool calls before they run.

The hook reads the tool call from stdin and looks it up in the rule store.
Calls to a tool name with an alias are blocked and the agent is told which
tool to use instead. Parameters that match correction rules are rewritten and
the call goes ahead with the corrected input. Everything else passes through.

The hook never gets in the way: a missing database, bad config, malformed
input, store errors and timeouts all let the call through unchanged.

PreToolUse hook responses used here:
┌──────────────────────┬──────────────────────────────────────────────────────┐
│ Outcome              │ Output                                               │
├──────────────────────┼──────────────────────────────────────────────────────┤
│ block                │ message on stderr, exit 2. Claude sees the message.  │
│ allow with rewrite   │ hookSpecificOutput JSON on stdout with updatedInput  │
│                      │ and additionalContext, exit 0.                       │
│ allow                │ no output, exit 0.                                   │
└──────────────────────┴──────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TextIO

from paver.core.config import configure_logging, load_config, log_decision
from paver.core.handler import call_with_timeout, intercept
from paver.core.store import StoreError, open_store, store_exists

EXIT_ALLOW = 0
EXIT_BLOCK = 2


def run_hook(stdin: TextIO, stdout: TextIO, stderr: TextIO, cwd: Path) -> int:
    """Handle one hook invocation and return the exit code. Never raises."""
    try:
        raw = stdin.read()
    except (OSError, ValueError):
        return EXIT_ALLOW

    try:
        config = load_config(cwd)
    except (OSError, ValueError):
        return EXIT_ALLOW
    if config.disabled:
        return EXIT_ALLOW
    configure_logging(config)

    store = None
    try:
        if store_exists(config):
            store = call_with_timeout(lambda: open_store(config, readonly=True), config.timeout)
    except (StoreError, TimeoutError) as e:
        log_decision("failed_open", "", reason=f"open store: {e!r}")

    try:
        decision = intercept(raw, store, config)
    except Exception as e:
        log_decision("failed_open", "", reason=repr(e))
        return EXIT_ALLOW
    finally:
        if store is not None:
            store.close()

    if decision.blocked:
        print(decision.reason, file=stderr)
        return EXIT_BLOCK
    output = decision.to_hook_output()
    if output is not None:
        print(json.dumps(output), file=stdout)
    return EXIT_ALLOW


def main() -> None:
    sys.exit(run_hook(sys.stdin, sys.stdout, sys.stderr, Path.cwd()))


if __name__ == "__main__":
    main()
