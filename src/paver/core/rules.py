"""Correction rule data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


class MatchKind(StrEnum):
    """How a rule's ``from_`` is matched and rewritten."""

    ALIAS = "alias"
    LITERAL = "literal"
    FLAG = "flag"
    COMMAND = "command"
    REGEX = "regex"
    RECIPE = "recipe"

    @classmethod
    def parse(cls, value: str | None) -> MatchKind:
        """Parse a stored or user-supplied kind. Empty means a tool-name alias."""
        if not value:
            return cls.ALIAS
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"unknown match kind '{value}'") from None


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Rule:
    """A persisted tool-name alias or parameter correction rule.

    With ``tool``, ``param`` and ``command`` empty and kind ``alias`` this is a
    tool-name alias: calls to the tool named ``from_`` are blocked and the agent
    is told to use ``to``. Otherwise it rewrites the ``param`` value of calls to
    ``tool`` before they run.
    """

    from_: str
    to: str = ""
    tool: str = ""
    param: str = ""
    command: str = ""  # shell command the rule is scoped to, e.g. "scp"
    match_kind: MatchKind = MatchKind.ALIAS
    message: str | None = None
    created_at: datetime = field(default_factory=_now, compare=False)

    @property
    def key(self) -> tuple[str, str, str, str, MatchKind]:
        """Natural key: stores upsert and delete on this tuple."""
        return (self.from_, self.tool, self.param, self.command, self.match_kind)

    @property
    def is_tool_name_alias(self) -> bool:
        return (
            not self.tool
            and not self.param
            and not self.command
            and self.match_kind is MatchKind.ALIAS
        )

    def to_dict(self) -> dict[str, str]:
        """JSON-friendly form, omitting empty optional fields."""
        data = {"from": self.from_, "to": self.to}
        for name in ("tool", "param", "command"):
            value = getattr(self, name)
            if value:
                data[name] = value
        if not self.is_tool_name_alias:
            data["match_kind"] = str(self.match_kind)
        if self.message:
            data["message"] = self.message
        data["created_at"] = self.created_at.isoformat()
        return data


def first_word(text: str) -> str:
    """Return the first whitespace-delimited word of text ("gt await-signal" -> "gt")."""
    parts = text.split(None, 1)
    return parts[0] if parts else ""
