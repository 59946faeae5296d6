"""
Per-kind correction algorithms.

Each algorithm takes the current value of a parameter and one rule, and either
returns a Rewrite (the corrected full value plus a human-readable description)
or None when the rule does not apply.

Rules scoped to a command only touch segments whose command token matches, and
every matching segment of the value is corrected in one pass. Segments are
rewritten right to left so the offsets of earlier segments stay valid.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import assert_never

import re2

from paver.core.rules import MatchKind, Rule, first_word
from paver.core.segments import Segment, apply_to_full, parse_segments

# Characters that continue a word in a recipe prefix ("--wisp" vs "--wispy")
_IDENT_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-"
)

# Back-references accepted in regex replacements: \1, \g<name>, $1, ${1}, ${name}
_TEMPLATE_REF = re.compile(
    r"\\(\d{1,2})|\\g<(\w+)>|\$(\d{1,2})|\$\{(\w+)\}"
)

DESCRIPTION_WIDTH = 40

_RE2_OPTIONS = re2.Options()
_RE2_OPTIONS.log_errors = False  # bad patterns are skipped, not reported on stderr


@dataclass(frozen=True)
class Rewrite:
    """A successful correction of one parameter value."""

    value: str
    description: str


def matches_alias(tool_name: str, rule: Rule) -> bool:
    """Exact, case-sensitive tool-name match for an alias rule."""
    return rule.match_kind is MatchKind.ALIAS and tool_name == rule.from_


def apply_rule(value: str, rule: Rule) -> Rewrite | None:
    """Apply one rule to a parameter value."""
    kind = rule.match_kind
    match kind:
        case MatchKind.ALIAS:
            # Tool-name aliases block the call; they never rewrite parameters.
            return None
        case MatchKind.FLAG:
            return apply_flag_rule(value, rule)
        case MatchKind.COMMAND:
            return apply_command_rule(value, rule)
        case MatchKind.LITERAL:
            return apply_literal_rule(value, rule)
        case MatchKind.REGEX:
            return apply_regex_rule(value, rule)
        case MatchKind.RECIPE:
            return apply_recipe_rule(value, rule)
        case _:
            assert_never(kind)


def describe(rule: Rule) -> str:
    """Description shown to the agent when the rule fires."""
    if rule.message:
        return rule.message
    kind = rule.match_kind
    match kind:
        case MatchKind.ALIAS:
            return f"{rule.from_} is not a valid tool. Use {rule.to} instead."
        case MatchKind.FLAG:
            dashes = "--" if len(rule.from_) > 1 else "-"
            return f"{dashes}{rule.from_} → {dashes}{rule.to}"
        case MatchKind.COMMAND | MatchKind.LITERAL:
            return f"{rule.from_} → {rule.to}"
        case MatchKind.REGEX:
            return f"regex: {rule.from_} → {rule.to}"
        case MatchKind.RECIPE:
            return f"recipe: {rule.from_} → {truncate(rule.to, DESCRIPTION_WIDTH)}"
        case _:
            assert_never(kind)


def truncate(text: str, width: int) -> str:
    """Collapse newlines to spaces and cut to width with a "..." suffix."""
    text = text.replace("\r", "").replace("\n", " ")
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


# === Segment-scoped kinds ===


def _rewrite_segments(
    value: str,
    rule: Rule,
    command: str,
    correct: Callable[[Segment], str | None],
) -> Rewrite | None:
    """Run correct() on every segment scoped to command and splice results back."""
    segments = [
        seg for seg in parse_segments(value) if not command or seg.command == command
    ]
    corrected_value = value
    applied = False
    for seg in reversed(segments):
        corrected = correct(seg)
        if corrected is None:
            continue
        corrected_value = apply_to_full(corrected_value, seg, corrected)
        applied = True
    if not applied:
        return None
    return Rewrite(corrected_value, describe(rule))


def apply_flag_rule(value: str, rule: Rule) -> Rewrite | None:
    """Fix a flag: -r → -R inside -rP, or --old → --new for long flags."""
    if not rule.from_:
        return None
    return _rewrite_segments(
        value, rule, rule.command, lambda seg: correct_flag(seg, rule.from_, rule.to)
    )


def correct_flag(seg: Segment, old: str, new: str) -> str | None:
    """Correct the first occurrence of flag old in a segment.

    Single characters are looked up inside short-flag groups, so ``-rP`` with
    r → R becomes ``-RP``. Longer names are treated as long flags, including
    the ``--flag=value`` form. Nothing after ``--`` is considered a flag.
    """
    if len(old) > 1:
        return _correct_long_flag(seg, old, new)
    for tok in seg.tokens[1:]:
        text = tok.text
        if text == "--":
            break
        if not text.startswith("-") or text.startswith("--"):
            continue
        idx = text.find(old, 1)
        if idx < 0:
            continue
        return seg.splice(tok.start, tok.end, text[:idx] + new + text[idx + 1 :])
    return None


def _correct_long_flag(seg: Segment, old: str, new: str) -> str | None:
    target = "--" + old
    for tok in seg.tokens[1:]:
        text = tok.text
        if text == "--":
            break
        if text == target or text.startswith(target + "="):
            return seg.splice(tok.start, tok.end, "--" + new + text[len(target) :])
    return None


def apply_command_rule(value: str, rule: Rule) -> Rewrite | None:
    """Substitute the command name (grep → rg), keeping the arguments."""
    if rule.command and rule.command != rule.from_:
        return None

    def correct(seg: Segment) -> str | None:
        if seg.command != rule.from_:
            return None
        first = seg.tokens[0]
        return seg.splice(first.start, first.end, rule.to)

    return _rewrite_segments(value, rule, rule.from_, correct)


def apply_literal_rule(value: str, rule: Rule) -> Rewrite | None:
    """Replace the first occurrence of from_ in each scoped segment.

    Without a command scope the value is not a shell line (a path, a URL), so
    the replacement runs on the whole value.
    """
    if not rule.from_:
        return None
    if not rule.command:
        if rule.from_ not in value:
            return None
        return Rewrite(value.replace(rule.from_, rule.to, 1), describe(rule))

    def correct(seg: Segment) -> str | None:
        if rule.from_ not in seg.raw:
            return None
        return seg.raw.replace(rule.from_, rule.to, 1)

    return _rewrite_segments(value, rule, rule.command, correct)


def apply_recipe_rule(value: str, rule: Rule) -> Rewrite | None:
    """Replace a whole segment that starts with the recipe prefix."""
    prefix = rule.from_.strip()
    if not prefix:
        return None

    def correct(seg: Segment) -> str | None:
        if not has_word_prefix(seg.raw, prefix):
            return None
        return rule.to

    return _rewrite_segments(value, rule, rule.command or first_word(prefix), correct)


def has_word_prefix(text: str, prefix: str) -> bool:
    """True if text starts with prefix followed by its end or a non-word character."""
    if not text.startswith(prefix):
        return False
    return len(text) == len(prefix) or text[len(prefix)] not in _IDENT_CHARS


# === Regex kind ===


def apply_regex_rule(value: str, rule: Rule) -> Rewrite | None:
    """Replace every match of the RE2 pattern from_ with to.

    An invalid pattern makes the rule a no-op rather than an error.
    """
    try:
        pattern = re2.compile(rule.from_, _RE2_OPTIONS)
    except re2.error:
        return None
    if pattern.search(value) is None:
        return None
    corrected = pattern.sub(lambda m: expand_template(m, rule.to), value)
    return Rewrite(corrected, describe(rule))


def expand_template(match, template: str) -> str:
    """Expand back-references in template against a match.

    Text that is not a back-reference is copied literally, so shell snippets
    such as ``$HOME`` or ``\\w`` survive unchanged. Unknown groups expand to "".
    """

    def group(m: re.Match) -> str:
        ref = next(g for g in m.groups() if g is not None)
        key: int | str = int(ref) if ref.isdigit() else ref
        try:
            return match.group(key) or ""
        except (IndexError, KeyError):
            return ""

    return _TEMPLATE_REF.sub(group, template)
