"""
Turn rules into intercepts the agent runs into.

Two outputs: a PreToolUse hook entry merged into Claude Code's settings.json
(reactive, catches mistakes as they happen), and AGENTS.md / CLAUDE.md rules
rendered from the rule set (preventive, tells the agent up front).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from paver.core.rules import MatchKind, Rule

HOOK_EVENT = "PreToolUse"
HOOK_COMMAND = "paver pave-check"
HOOK_TIMEOUT = 3  # seconds

DEFAULT_SETTINGS = Path.home() / ".claude" / "settings.json"


# === settings.json hook installation ===


def read_settings(path: Path) -> dict[str, Any]:
    """Read a Claude Code settings file. A missing or empty file is an empty dict."""
    if not path.is_file():
        return {}
    text = path.read_text()
    if not text.strip():
        return {}
    try:
        settings = json.loads(text)
    except ValueError as e:
        raise ValueError(f"{path}: invalid JSON: {e}") from None
    if not isinstance(settings, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return settings


def write_settings(path: Path, settings: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2) + "\n")


def has_hook(settings: dict[str, Any], event: str, command: str) -> bool:
    """True if any matcher group of the event already runs command."""
    for group in settings.get("hooks", {}).get(event, []) or []:
        for hook in group.get("hooks", []) or []:
            if hook.get("command") == command:
                return True
    return False


def merge_hook(
    settings: dict[str, Any],
    event: str = HOOK_EVENT,
    command: str = HOOK_COMMAND,
    timeout: int = HOOK_TIMEOUT,
) -> bool:
    """Add a catch-all hook for event, keeping every existing hook and setting.

    Returns False if the hook was already installed.
    """
    if has_hook(settings, event, command):
        return False
    hooks = settings.setdefault("hooks", {})
    if not isinstance(hooks, dict):
        raise ValueError("'hooks' in settings is not an object")
    groups = hooks.setdefault(event, [])
    groups.append(
        {
            "matcher": "",
            "hooks": [{"type": "command", "command": command, "timeout": timeout}],
        }
    )
    return True


def install_hook(settings_path: Path = DEFAULT_SETTINGS) -> bool:
    """Install the pave-check hook into a settings file. Returns False if already present."""
    settings = read_settings(settings_path)
    if not merge_hook(settings):
        return False
    write_settings(settings_path, settings)
    return True


# === AGENTS.md rules ===


def format_rule_description(rule: Rule) -> str:
    """One markdown bullet body for a parameter correction rule."""
    kind = rule.match_kind
    if kind is MatchKind.RECIPE:
        # Recipes never show their script, only what not to run.
        if rule.message:
            return f"Do NOT use `{rule.from_}`. {rule.message}"
        return f"Do NOT use `{rule.from_}` — it does not exist and will be rewritten automatically."
    if kind is MatchKind.FLAG:
        desc = f"Flag `-{rule.from_}` should be `-{rule.to}`"
    elif kind is MatchKind.COMMAND:
        desc = f"Use `{rule.to}` instead of `{rule.from_}`"
    elif kind is MatchKind.REGEX:
        desc = f"Pattern `{rule.from_}` → `{rule.to}`"
    else:
        desc = f"`{rule.from_}` → `{rule.to}`"
    if rule.message:
        desc += f" ({rule.message})"
    return desc


def tool_alias_line(rule: Rule) -> str:
    return f"Do NOT call `{rule.from_}`. Use `{rule.to}` instead."


def _group_key(rule: Rule) -> str:
    return rule.command or f"{rule.tool}:{rule.param}"


def _group_header(first: Rule) -> str:
    if first.match_kind is MatchKind.COMMAND:
        return f"## {first.from_} → {first.to}"
    if first.command:
        return f"## {first.command}"
    return f"## {first.tool} (param: {first.param})"


def render_agents_md(rules: list[Rule]) -> str:
    """Render tool-name aliases and command corrections as markdown sections."""
    tool_aliases = [r for r in rules if r.is_tool_name_alias]
    corrections = [r for r in rules if not r.is_tool_name_alias]

    lines: list[str] = []
    if tool_aliases:
        lines.append("# Tool Name Corrections")
        lines.append("")
        lines.append("The following tool names are INCORRECT. Use the correct names instead:")
        lines.append("")
        lines.extend(f"- {tool_alias_line(r)}" for r in tool_aliases)
        lines.append("")

    if corrections:
        lines.append("# Command Corrections")
        lines.append("")
        groups: dict[str, list[Rule]] = {}
        for rule in corrections:
            groups.setdefault(_group_key(rule), []).append(rule)
        for group in groups.values():
            lines.append(_group_header(group[0]))
            lines.append("")
            lines.extend(f"- {format_rule_description(r)}" for r in group)
            lines.append("")

    return "\n".join(lines)


def agents_md_lines(rules: list[Rule]) -> list[str]:
    """Flat rule list for --json output."""
    lines = [tool_alias_line(r) for r in rules if r.is_tool_name_alias]
    lines.extend(format_rule_description(r) for r in rules if not r.is_tool_name_alias)
    return lines
