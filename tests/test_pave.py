"""Tests for hook installation and AGENTS.md rendering."""

from __future__ import annotations

import json

import pytest

from paver.core.pave import (
    HOOK_COMMAND,
    agents_md_lines,
    format_rule_description,
    has_hook,
    install_hook,
    merge_hook,
    read_settings,
    render_agents_md,
)
from paver.core.rules import MatchKind, Rule

FLAG = Rule("r", "R", "Bash", "command", "scp", MatchKind.FLAG)
GREP = Rule("grep", "rg", "Bash", "command", "grep", MatchKind.COMMAND)
HOST = Rule("user@host:", "user@newhost:", "Bash", "command", "scp", MatchKind.LITERAL)
CURL = Rule(r"curl\s+-k", "curl --cacert c.pem", "Bash", "command", "", MatchKind.REGEX)
RECIPE = Rule(
    "gt await-signal", "while true; do sleep 5; done", "Bash", "command", "gt", MatchKind.RECIPE
)


class TestSettings:
    def test_missing_file(self, tmp_path):
        assert read_settings(tmp_path / "settings.json") == {}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{oops")
        with pytest.raises(ValueError, match="invalid JSON"):
            read_settings(path)

    def test_merge_into_empty(self):
        settings = {}
        assert merge_hook(settings)
        assert settings == {
            "hooks": {
                "PreToolUse": [
                    {
                        "matcher": "",
                        "hooks": [{"type": "command", "command": HOOK_COMMAND, "timeout": 3}],
                    }
                ]
            }
        }

    def test_merge_preserves_existing(self):
        other = {"matcher": "Bash", "hooks": [{"type": "command", "command": "approve-bash"}]}
        settings = {"model": "opus", "hooks": {"PreToolUse": [other], "Stop": []}}
        merge_hook(settings)
        assert settings["model"] == "opus"
        assert settings["hooks"]["Stop"] == []
        assert settings["hooks"]["PreToolUse"][0] == other
        assert len(settings["hooks"]["PreToolUse"]) == 2

    def test_merge_is_idempotent(self):
        settings = {}
        merge_hook(settings)
        assert not merge_hook(settings)
        assert len(settings["hooks"]["PreToolUse"]) == 1
        assert has_hook(settings, "PreToolUse", HOOK_COMMAND)

    def test_install_writes_file(self, tmp_path):
        path = tmp_path / ".claude" / "settings.json"
        assert install_hook(path)
        assert not install_hook(path)
        settings = json.loads(path.read_text())
        assert has_hook(settings, "PreToolUse", HOOK_COMMAND)


class TestFormatRuleDescription:
    def test_kinds(self):
        assert format_rule_description(FLAG) == "Flag `-r` should be `-R`"
        assert format_rule_description(GREP) == "Use `rg` instead of `grep`"
        assert format_rule_description(HOST) == "`user@host:` → `user@newhost:`"
        assert format_rule_description(CURL) == r"Pattern `curl\s+-k` → `curl --cacert c.pem`"

    def test_message_appended(self):
        rule = Rule("r", "R", "Bash", "command", "scp", MatchKind.FLAG, "recursive is -R")
        assert format_rule_description(rule) == "Flag `-r` should be `-R` (recursive is -R)"

    def test_recipe_hides_script(self):
        text = format_rule_description(RECIPE)
        assert text.startswith("Do NOT use `gt await-signal`")
        assert "while true" not in text

    def test_recipe_message(self):
        rule = Rule("gt await-signal", "x", "Bash", "command", "gt", MatchKind.RECIPE, "Poll gt mol status.")
        assert format_rule_description(rule) == "Do NOT use `gt await-signal`. Poll gt mol status."


class TestRenderAgentsMd:
    def test_tool_name_section(self):
        text = render_agents_md([Rule("read_file", "Read")])
        assert text.startswith("# Tool Name Corrections\n")
        assert "- Do NOT call `read_file`. Use `Read` instead." in text
        assert "# Command Corrections" not in text

    def test_grouped_by_command(self):
        text = render_agents_md([FLAG, GREP, HOST])
        assert "# Command Corrections" in text
        assert "## scp\n\n- Flag `-r` should be `-R`\n- `user@host:` → `user@newhost:`\n" in text
        assert "## grep → rg\n\n- Use `rg` instead of `grep`\n" in text
        assert text.index("## scp") < text.index("## grep → rg")

    def test_unscoped_group_header(self):
        path = Rule("/old", "/new", "Read", "file_path", "", MatchKind.LITERAL)
        assert "## Read (param: file_path)" in render_agents_md([path])

    def test_recipe_script_never_rendered(self):
        text = render_agents_md([RECIPE])
        assert "## gt" in text
        assert "sleep 5" not in text

    def test_both_sections(self):
        text = render_agents_md([Rule("read_file", "Read"), GREP])
        assert text.index("# Tool Name Corrections") < text.index("# Command Corrections")

    def test_empty(self):
        assert render_agents_md([]) == ""

    def test_json_lines(self):
        assert agents_md_lines([GREP, Rule("read_file", "Read")]) == [
            "Do NOT call `read_file`. Use `Read` instead.",
            "Use `rg` instead of `grep`",
        ]
