"""Tests for the hook entry point (stdin JSON in, stdout/stderr/exit code out)."""

from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import textwrap
import time
from pathlib import Path

import pytest

from paver.core.rules import MatchKind, Rule
from paver.core.store import SQLiteRuleStore
from paver.paver import EXIT_ALLOW, EXIT_BLOCK, run_hook


@pytest.fixture
def db(tmp_path, monkeypatch):
    """A rule database that the hook finds through $PAVER_DB."""
    path = tmp_path / "paver.db"
    monkeypatch.setenv("PAVER_DB", str(path))
    return path


@pytest.fixture
def rules(db):
    def _add(*rules: Rule) -> None:
        store = SQLiteRuleStore(db)
        for rule in rules:
            store.upsert_rule(rule)
        store.close()

    return _add


@pytest.fixture
def run(tmp_path):
    def _run(raw: str) -> tuple[int, str, str]:
        stdout, stderr = io.StringIO(), io.StringIO()
        code = run_hook(io.StringIO(raw), stdout, stderr, tmp_path)
        return code, stdout.getvalue(), stderr.getvalue()

    return _run


class TestRunHook:
    def test_block(self, rules, run, hook_input):
        rules(Rule("read_file", "Read"))
        code, out, err = run(hook_input(tool_name="read_file", path="x"))
        assert code == EXIT_BLOCK
        assert out == ""
        assert err.strip() == "read_file is not a valid tool. Use Read instead."

    def test_rewrite(self, rules, run, hook_input):
        rules(Rule("grep", "rg", "Bash", "command", "grep", MatchKind.COMMAND))
        code, out, err = run(hook_input("cat f | grep pat"))
        assert code == EXIT_ALLOW
        assert err == ""
        output = json.loads(out)["hookSpecificOutput"]
        assert output["permissionDecision"] == "allow"
        assert output["updatedInput"] == {"command": "cat f | rg pat"}
        assert output["additionalContext"] == "Corrected: grep → rg"

    def test_passthrough(self, rules, run, hook_input):
        rules(Rule("grep", "rg", "Bash", "command", "grep", MatchKind.COMMAND))
        assert run(hook_input("ls")) == (EXIT_ALLOW, "", "")

    def test_missing_database(self, db, run, hook_input):
        assert run(hook_input("grep x")) == (EXIT_ALLOW, "", "")
        assert not db.exists()

    def test_malformed_input(self, rules, run):
        rules(Rule("read_file", "Read"))
        assert run("{not json") == (EXIT_ALLOW, "", "")

    def test_bad_config_allows(self, rules, run, hook_input, tmp_path):
        rules(Rule("read_file", "Read"))
        (tmp_path / ".paver.toml").write_text("nonsense = 1")
        assert run(hook_input(tool_name="read_file")) == (EXIT_ALLOW, "", "")

    def test_disabled(self, rules, run, hook_input, tmp_path):
        rules(Rule("read_file", "Read"))
        (tmp_path / ".paver.toml").write_text("disabled = true")
        assert run(hook_input(tool_name="read_file")) == (EXIT_ALLOW, "", "")

    def test_corrupt_database_allows(self, db, run, hook_input):
        db.write_text("this is not a sqlite database")
        assert run(hook_input(tool_name="read_file")) == (EXIT_ALLOW, "", "")

    def test_decisions_logged(self, rules, run, hook_input, tmp_path):
        rules(Rule("read_file", "Read"))
        log = tmp_path / "paver.log"
        (tmp_path / ".paver.toml").write_text(f'log = "{log}"')
        run(hook_input(tool_name="read_file"))
        entry = json.loads(log.read_text().splitlines()[-1])
        assert entry["event"] == "blocked"
        assert entry["tool"] == "read_file"

    def test_deeply_nested_input_allows(self, rules, run):
        rules(Rule("read_file", "Read"))
        assert run("[" * 200000) == (EXIT_ALLOW, "", "")

    def test_engine_crash_allows(self, rules, run, hook_input, monkeypatch):
        rules(Rule("read_file", "Read"))

        def crash(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr("paver.paver.intercept", crash)
        assert run(hook_input(tool_name="read_file")) == (EXIT_ALLOW, "", "")

    def test_database_opened_read_only(self, db, run, hook_input):
        db.touch()
        assert run(hook_input(tool_name="read_file")) == (EXIT_ALLOW, "", "")
        assert db.read_bytes() == b""
        assert not db.with_name(db.name + "-wal").exists()


SLOW_STORE_SCRIPT = textwrap.dedent(
    """
    import time

    from paver.core.config import Config
    from paver.core.handler import intercept
    from paver.core.store import MemoryRuleStore

    class SlowStore(MemoryRuleStore):
        def lookup_alias(self, *args):
            time.sleep(4)

    decision = intercept(
        '{"tool_name": "Bash", "tool_input": {"command": "ls"}}',
        SlowStore(),
        Config(timeout=0.2),
    )
    print(decision.reason)
    """
)


class TestProcessExit:
    def test_slow_store_does_not_delay_exit(self):
        src = Path(__file__).resolve().parents[1] / "src"
        paths = [str(src), os.environ.get("PYTHONPATH", "")]
        env = {**os.environ, "PYTHONPATH": os.pathsep.join(p for p in paths if p)}
        started = time.monotonic()
        result = subprocess.run(
            [sys.executable, "-c", SLOW_STORE_SCRIPT], env=env, capture_output=True, text=True, timeout=30
        )
        elapsed = time.monotonic() - started
        assert result.returncode == 0, result.stderr
        assert result.stdout.strip() == "alias lookup failed"
        assert elapsed < 2
