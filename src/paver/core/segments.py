"""
Shell command segmentation for scoped corrections.

Splits a command line into the simple commands of its pipelines and chains
while keeping the exact offsets of every segment, so a correction to one
command can be written back without touching the rest of the line.

Segments come from the bashlex AST (``node.pos`` spans). bashlex rejects some
valid shell, so a quote and paren aware scanner takes over when it raises.
Heredoc bodies are never segments: the text between ``<<WORD`` and its
terminator line belongs to the command that opened it and is left untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bashlex

WHITESPACE = " \t\n"

# <<WORD, <<-WORD, <<'WORD', <<"WORD"
HEREDOC_RE = re.compile(r"""<<(-?)[ \t]*(?:'([^'\n]*)'|"([^"\n]*)"|\\?([^\s;&|<>()'"]+))""")


@dataclass(frozen=True)
class Token:
    """A word of a segment, with quotes preserved."""

    text: str
    start: int  # offset within Segment.raw
    end: int


@dataclass(frozen=True)
class Segment:
    """One command of a pipeline or chain."""

    raw: str
    """Trimmed text of the segment."""

    start: int
    """Offset of raw in the full command string."""

    end: int
    """Exclusive end offset of raw in the full command string."""

    tokens: tuple[Token, ...] = ()

    @property
    def command(self) -> str:
        """Program name, e.g. "scp" for ``scp -r a b``."""
        if not self.tokens:
            return ""
        return unquote(self.tokens[0].text)

    def splice(self, start: int, end: int, text: str) -> str:
        """Return raw with raw[start:end] replaced by text."""
        return self.raw[:start] + text + self.raw[end:]


def parse_segments(command: str) -> list[Segment]:
    """Split a command string into segments on ``|``, ``|&``, ``||``, ``&&``, ``;``, ``&`` and newlines.

    Quotes, backslash escapes, backticks and parenthesised groups (``$(...)``,
    ``<(...)``, subshells) are never split. Heredoc bodies are skipped. Empty
    segments are dropped.
    """
    spans, bodies = _split_operators(command)
    try:
        spans = _command_spans(command)
    except Exception:
        pass  # keep the scanner's spans

    segments = []
    for index, (start, end) in enumerate(spans):
        if any(body_start <= start < body_end for body_start, body_end in bodies):
            continue
        if index + 1 < len(spans):
            end = min(end, spans[index + 1][0])
        for body_start, _ in bodies:
            if start < body_start < end:
                end = body_start
        text = command[start:end]
        stripped = text.strip()
        if not stripped:
            continue
        seg_start = start + len(text) - len(text.lstrip())
        segments.append(
            Segment(
                raw=stripped,
                start=seg_start,
                end=seg_start + len(stripped),
                tokens=tuple(tokenize(stripped)),
            )
        )
    return segments


def apply_to_full(full: str, segment: Segment, corrected: str) -> str:
    """Replace the segment's span in the full command with corrected text.

    Works by position, so an identical command elsewhere in the line is left alone.
    """
    return full[: segment.start] + corrected + full[segment.end :]


def tokenize(text: str) -> list[Token]:
    """Split text on unquoted whitespace, keeping quotes and escapes in the tokens."""
    tokens = []
    start = None
    in_single = False
    in_double = False
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if start is None:
            if c in WHITESPACE:
                i += 1
                continue
            start = i
        if c == "\\" and not in_single:
            i += 2
            continue
        if c == "'" and not in_double:
            in_single = not in_single
        elif c == '"' and not in_single:
            in_double = not in_double
        elif c in WHITESPACE and not in_single and not in_double:
            tokens.append(Token(text[start:i], start, i))
            start = None
        i += 1
    if start is not None:
        tokens.append(Token(text[start:n], start, n))
    return tokens


def unquote(word: str) -> str:
    """Drop one matching pair of enclosing quotes: ``'grep'`` -> ``grep``."""
    quote = word[:1]
    if quote in ("'", '"') and len(word) > 1 and word.endswith(quote):
        return word[1:-1]
    return word


def _command_spans(command: str) -> list[tuple[int, int]]:
    """(start, end) of every simple command, from the bashlex AST."""
    spans: list[tuple[int, int]] = []
    for tree in bashlex.parse(command):
        _collect_spans(tree, spans)
    return sorted(spans)


def _collect_spans(node, spans: list[tuple[int, int]]) -> None:
    if node.kind == "list":
        for part in node.parts:
            if part.kind != "operator":
                _collect_spans(part, spans)
    elif node.kind == "pipeline":
        for part in node.parts:
            if part.kind not in ("pipe", "reservedword"):
                _collect_spans(part, spans)
    elif node.kind in ("operator", "pipe", "reservedword"):
        pass
    else:
        # commands, plus compound and control-flow nodes kept whole
        spans.append(node.pos)


def _split_operators(command: str) -> tuple[list[tuple[int, int]], list[tuple[int, int]]]:
    """Return (start, end) spans between top-level separators, and heredoc body spans.

    A body span runs from the line after ``<<WORD`` through its terminator line.
    """
    spans = []
    bodies = []
    pending: list[tuple[str, bool]] = []
    seg_start = 0
    depth = 0
    in_single = False
    in_double = False
    in_backtick = False
    i = 0
    n = len(command)
    while i < n:
        c = command[i]
        if c == "\\" and not in_single:
            i += 2
            continue
        if in_single:
            if c == "'":
                in_single = False
        elif c == "'" and not in_double and not in_backtick:
            in_single = True
        elif c == '"' and not in_backtick:
            in_double = not in_double
        elif in_double:
            pass
        elif c == "`":
            in_backtick = not in_backtick
        elif in_backtick:
            pass
        elif command.startswith("<<<", i):
            i += 3
            continue
        elif command.startswith("<<", i):
            match = HEREDOC_RE.match(command, i)
            if match:
                strip_tabs, *words = match.groups()
                word = next(w for w in words if w is not None)
                pending.append((word, bool(strip_tabs)))
                i = match.end()
                continue
        elif c == "\n" and pending:
            body_end = _skip_heredocs(command, i + 1, pending)
            bodies.append((i + 1, body_end))
            pending = []
            if depth == 0:
                spans.append((seg_start, i))
                seg_start = body_end
            i = body_end
            continue
        elif c == "(":
            depth += 1
        elif c == ")" and depth > 0:
            depth -= 1
        elif depth == 0:
            width = _separator_width(command, i)
            if width:
                spans.append((seg_start, i))
                i += width
                seg_start = i
                continue
        i += 1
    spans.append((seg_start, n))
    return spans, bodies


def _skip_heredocs(command: str, pos: int, pending: list[tuple[str, bool]]) -> int:
    """Offset just past the terminator line of the last pending heredoc.

    An unterminated heredoc runs to the end of the command.
    """
    n = len(command)
    for word, strip_tabs in pending:
        while pos < n:
            line_end = command.find("\n", pos)
            if line_end == -1:
                line_end = n
            line = command[pos:line_end]
            pos = line_end + 1
            if (line.lstrip("\t") if strip_tabs else line) == word:
                break
    return min(pos, n)


def _separator_width(command: str, i: int) -> int:
    """Width of the separator at position i, or 0 if there is none."""
    c = command[i]
    nxt = command[i + 1] if i + 1 < len(command) else ""
    prev = command[i - 1] if i > 0 else ""
    if c in ";\n":
        return 1
    if c == "|":
        # || and |& are two characters wide
        if nxt in ("|", "&"):
            return 2
        return 1
    if c == "&":
        if nxt == "&":
            return 2
        # &> and >& / <& are redirections, not background operators
        if nxt == ">" or prev in (">", "<"):
            return 0
        return 1
    return 0
