"""paver configuration and decision logging."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import structlog

USER_CONFIG = Path.home() / ".paver" / "config.toml"
PROJECT_CONFIG_NAME = ".paver.toml"
ENV_CONFIG = "PAVER_CONFIG"
ENV_DB = "PAVER_DB"

DEFAULT_DB_PATH = Path.home() / ".paver" / "paver.db"
DEFAULT_TIMEOUT = 3.0


@dataclass(frozen=True)
class Config:
    """Settings for the hook and the CLI, passed explicitly, never global."""

    db_path: Path = DEFAULT_DB_PATH
    timeout: float = DEFAULT_TIMEOUT
    """Seconds to wait on each rule store call before failing open."""

    log: Path | None = None  # None = no logging
    log_full: bool = False  # log the full tool input (requires log path)
    disabled: bool = False


# === Config Loading ===


def _find_project_config(cwd: Path) -> Path | None:
    """Walk up from cwd to find .paver.toml."""
    current = cwd.resolve()
    while True:
        candidate = current / PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:  # reached root
            return None
        current = parent


def load_config(cwd: Path) -> Config:
    """Load ~/.paver/config.toml, .paver.toml and $PAVER_CONFIG. Later files win per key.

    $PAVER_DB, when set, overrides db_path. Raises ValueError on invalid files.
    """
    settings: dict[str, Any] = {}
    paths = [USER_CONFIG, _find_project_config(cwd)]
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        paths.append(Path(env_path).expanduser())

    for path in paths:
        if path is None or not path.is_file():
            continue
        try:
            settings.update(_parse_settings(path.read_text()))
        except ValueError as e:
            raise ValueError(f"{path}: {e}") from None

    env_db = os.environ.get(ENV_DB)
    if env_db:
        settings["db_path"] = Path(env_db).expanduser()
    return replace(Config(), **settings)


def parse_config(text: str) -> Config:
    """Parse TOML config text into a Config. Raises ValueError on bad keys or values."""
    return replace(Config(), **_parse_settings(text))


def _parse_settings(text: str) -> dict[str, Any]:
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"invalid TOML: {e}") from None

    known = {f.name for f in fields(Config)}
    settings: dict[str, Any] = {}
    for raw_key, value in data.items():
        key = raw_key.replace("-", "_")
        if key not in known:
            raise ValueError(f"unknown setting '{raw_key}'")

        # Path settings
        if key in ("db_path", "log"):
            if not isinstance(value, str) or not value:
                raise ValueError(f"'{raw_key}' requires a path")
            settings[key] = Path(value).expanduser()

        # Boolean settings
        elif key in ("log_full", "disabled"):
            if not isinstance(value, bool):
                raise ValueError(f"'{raw_key}' must be true or false, got {value!r}")
            settings[key] = value

        # Number settings
        elif key == "timeout":
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"'{raw_key}' requires a positive number, got {value!r}")
            settings[key] = float(value)

    return settings


# === Logging ===

_logger: structlog.typing.FilteringBoundLogger | None = None
_log_full = False


def configure_logging(config: Config) -> None:
    """Configure structlog to append JSON lines to config.log. Call once at startup."""
    global _logger, _log_full
    if config.log is None:
        _logger = None
        return
    try:
        config.log.parent.mkdir(parents=True, exist_ok=True)
        stream = open(config.log, "a")
    except OSError:
        _logger = None
        return

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
    _logger = structlog.get_logger()
    _log_full = config.log_full


def log_decision(event: str, tool: str, tool_input: Any = None, **fields: Any) -> None:
    """Log a hook decision. No-op if logging is not configured; never raises."""
    if _logger is None:
        return
    try:
        if _log_full and tool_input is not None:
            fields["tool_input"] = tool_input
        _logger.info(event, tool=tool, **fields)
    except Exception:
        pass  # Logging is optional - don't fail the hook


def reset_logging() -> None:
    """Drop the configured logger (tests)."""
    global _logger, _log_full
    _logger = None
    _log_full = False
