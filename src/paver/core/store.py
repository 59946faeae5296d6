"""
Rule persistence.

The engine only reads rules; writes come from the management CLI. Two
implementations share the RuleStore protocol: an in-memory store for tests and
embedding, and a SQLite store that the hook and the CLI share on disk.
"""

from __future__ import annotations

import contextlib
import os
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from paver.core.rules import MatchKind, Rule

if TYPE_CHECKING:
    from paver.core.config import Config


class StoreError(Exception):
    """The rule store could not be opened, read or written."""


class RuleStore(Protocol):
    """Lookup, insert and delete of rules by their natural key."""

    def lookup_alias(
        self, from_: str, tool: str, param: str, command: str, match_kind: MatchKind
    ) -> Rule | None: ...

    def rules_for_tool(self, tool: str) -> list[Rule]:
        """Parameter correction rules for a tool, in insertion order."""
        ...

    def upsert_rule(self, rule: Rule) -> None:
        """Insert a rule, or replace to/message of the rule with the same key."""
        ...

    def delete_rule(
        self, from_: str, tool: str, param: str, command: str, match_kind: MatchKind
    ) -> bool:
        """Delete by natural key. Returns True if a rule was removed."""
        ...

    def list_rules(self) -> list[Rule]: ...

    def close(self) -> None: ...


class MemoryRuleStore:
    """Dict-backed RuleStore; insertion ordered, upserts keep the existing slot."""

    def __init__(self, rules: list[Rule] | None = None):
        self._rules: dict[tuple, Rule] = {}
        for rule in rules or []:
            self.upsert_rule(rule)

    def lookup_alias(self, from_, tool, param, command, match_kind):
        return self._rules.get((from_, tool, param, command, MatchKind.parse(match_kind)))

    def rules_for_tool(self, tool):
        return [r for r in self._rules.values() if r.tool == tool and r.param]

    def upsert_rule(self, rule):
        existing = self._rules.get(rule.key)
        if existing is not None:
            rule = Rule(
                from_=existing.from_,
                to=rule.to,
                tool=existing.tool,
                param=existing.param,
                command=existing.command,
                match_kind=existing.match_kind,
                message=rule.message,
                created_at=existing.created_at,
            )
        self._rules[rule.key] = rule

    def delete_rule(self, from_, tool, param, command, match_kind):
        key = (from_, tool, param, command, MatchKind.parse(match_kind))
        return self._rules.pop(key, None) is not None

    def list_rules(self):
        return list(self._rules.values())

    def close(self):
        pass


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS aliases (
        from_name TEXT NOT NULL,
        to_name TEXT NOT NULL,
        tool TEXT NOT NULL DEFAULT '',
        param TEXT NOT NULL DEFAULT '',
        command TEXT NOT NULL DEFAULT '',
        match_kind TEXT NOT NULL DEFAULT 'alias',
        message TEXT,
        created_at TEXT NOT NULL,
        PRIMARY KEY (from_name, tool, param, command, match_kind)
    );
    CREATE INDEX IF NOT EXISTS idx_aliases_tool ON aliases(tool);
"""

_COLUMNS = "from_name, to_name, tool, param, command, match_kind, message, created_at"
# Rows written with an empty match_kind are tool-name aliases
_KEY_WHERE = (
    "WHERE from_name = ? AND tool = ? AND param = ? AND command = ? "
    "AND COALESCE(NULLIF(match_kind, ''), 'alias') = ?"
)


class SQLiteRuleStore:
    """RuleStore on a SQLite database (WAL mode, shared by hook and CLI)."""

    def __init__(self, path: Path, timeout: float = 5.0, readonly: bool = False):
        self.path = Path(path)
        # Serialises statements against close() while a timed-out worker is still running.
        self._lock = threading.Lock()
        try:
            if readonly:
                # No mkdir, pragma writes or DDL: the hook only opens an existing database.
                self._conn = sqlite3.connect(
                    f"{self.path.resolve().as_uri()}?mode=ro",
                    uri=True,
                    timeout=timeout,
                    check_same_thread=False,
                )
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.path), timeout=timeout, check_same_thread=False
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(f"PRAGMA busy_timeout={int(timeout * 1000)}")
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"open {self.path}: {e}") from e

    def lookup_alias(self, from_, tool, param, command, match_kind):
        rows = self._query(
            f"SELECT {_COLUMNS} FROM aliases {_KEY_WHERE}",
            (from_, tool, param, command, str(MatchKind.parse(match_kind))),
        )
        return _row_to_rule(rows[0]) if rows else None

    def rules_for_tool(self, tool):
        rows = self._query(
            f"SELECT {_COLUMNS} FROM aliases WHERE tool = ? AND param != '' ORDER BY rowid",
            (tool,),
        )
        return [_row_to_rule(row) for row in rows]

    def upsert_rule(self, rule):
        self._execute(
            f"INSERT INTO aliases ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (from_name, tool, param, command, match_kind) "
            "DO UPDATE SET to_name = excluded.to_name, message = excluded.message",
            (
                rule.from_,
                rule.to,
                rule.tool,
                rule.param,
                rule.command,
                str(rule.match_kind),
                rule.message or None,
                rule.created_at.isoformat(),
            ),
        )

    def delete_rule(self, from_, tool, param, command, match_kind):
        cursor = self._execute(
            f"DELETE FROM aliases {_KEY_WHERE}",
            (from_, tool, param, command, str(MatchKind.parse(match_kind))),
        )
        return cursor.rowcount > 0

    def list_rules(self):
        rows = self._query(
            f"SELECT {_COLUMNS} FROM aliases ORDER BY tool != '', from_name, rowid", ()
        )
        return [_row_to_rule(row) for row in rows]

    def close(self):
        """Close the connection, unless a statement is still running on it.

        A busy connection is left for process exit to reclaim.
        """
        if not self._lock.acquire(blocking=False):
            return
        try:
            with contextlib.suppress(sqlite3.Error):
                self._conn.close()
        finally:
            self._lock.release()

    def _query(self, sql: str, params: tuple) -> list[tuple]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def _execute(self, sql: str, params: tuple) -> sqlite3.Cursor:
        try:
            with self._lock:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
                return cursor
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e


def _row_to_rule(row: tuple) -> Rule:
    from_name, to_name, tool, param, command, match_kind, message, created_at = row
    try:
        created = datetime.fromisoformat(created_at)
    except (TypeError, ValueError):
        created = datetime.fromtimestamp(0, timezone.utc)
    return Rule(
        from_=from_name,
        to=to_name,
        tool=tool,
        param=param,
        command=command,
        match_kind=MatchKind.parse(match_kind),
        message=message,
        created_at=created,
    )


def open_store(config: Config, readonly: bool = False) -> SQLiteRuleStore:
    """Open the SQLite store named by the config.

    A writable store is created if needed. A read-only store must already exist.
    """
    return SQLiteRuleStore(config.db_path, timeout=config.timeout, readonly=readonly)


def store_exists(config: Config) -> bool:
    return os.path.isfile(config.db_path)
