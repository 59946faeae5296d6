"""
Shared test fixtures for paver tests.
"""

import json

import pytest

from paver.core.config import Config, reset_logging
from paver.core.store import MemoryRuleStore


@pytest.fixture(autouse=True)
def _no_logging():
    """Keep structlog configuration from leaking between tests."""
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep config lookups away from the real home directory."""
    monkeypatch.delenv("PAVER_CONFIG", raising=False)
    monkeypatch.delenv("PAVER_DB", raising=False)
    monkeypatch.setattr("paver.core.config.USER_CONFIG", tmp_path / "home" / "config.toml")


@pytest.fixture
def hook_input():
    """Factory for generating hook input JSON."""

    def _make(command: str | None = None, tool_name: str = "Bash", **tool_input) -> str:
        if command is not None:
            tool_input["command"] = command
        return json.dumps({"tool_name": tool_name, "tool_input": tool_input})

    return _make


@pytest.fixture
def store():
    """Empty in-memory rule store."""
    return MemoryRuleStore()


@pytest.fixture
def check(store):
    """Return an intercept wrapper over the store fixture with default config."""
    from paver.core.handler import intercept

    def _check(raw: str, config: Config | None = None):
        if config is None:
            config = Config()
        return intercept(raw, store, config)

    return _check
