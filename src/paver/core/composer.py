"""Compose the corrections of several rules into one value per parameter."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from paver.core.matcher import apply_rule
from paver.core.rules import Rule


@dataclass
class Correction:
    """Final corrected value of one parameter and every change that led to it."""

    param: str
    value: str
    descriptions: list[str] = field(default_factory=list)

    @property
    def description(self) -> str:
        return "; ".join(self.descriptions)


def compose_corrections(
    tool_input: Mapping[str, Any], rules: Iterable[Rule]
) -> list[Correction]:
    """Apply rules in order to the string parameters of a tool input.

    Each rule sees the output of the previous rule that fired on the same
    parameter, so a flag fix and a literal fix on one command both land.
    Parameters that no rule changed are not returned.
    """
    corrections: dict[str, Correction] = {}
    for rule in rules:
        param = rule.param
        if param in corrections:
            current = corrections[param].value
        else:
            current = tool_input.get(param)
            if not isinstance(current, str):
                continue
        rewrite = apply_rule(current, rule)
        if rewrite is None or rewrite.value == current:
            continue
        correction = corrections.setdefault(param, Correction(param, current))
        correction.value = rewrite.value
        correction.descriptions.append(rewrite.description)
    return list(corrections.values())
