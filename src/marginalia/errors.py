"""Diagnostics with formatted source context, and API misuse errors."""

from __future__ import annotations

from marginalia.tokens import Span


def format_context(
    severity: str, message: str, span: Span, source: str, filename: str = "input.marg"
) -> str:
    """Format a message with its source line and a caret underline."""
    lines = source.splitlines(keepends=True)
    line_idx = span.start.line - 1
    col = span.start.column

    if 0 <= line_idx < len(lines):
        source_line = lines[line_idx].rstrip("\n").rstrip("\r")
    else:
        source_line = ""

    # Underline the full span when on one line, otherwise to end of line
    if span.end.line == span.start.line:
        underline_len = max(1, span.end.column - col)
    else:
        underline_len = max(1, len(source_line) - col + 1)

    pad = " " * (col - 1)
    carets = "^" * underline_len

    line_num = str(span.start.line)
    gutter_width = len(line_num) + 1

    blank_gutter = " " * gutter_width + "|"
    line_gutter = f"{line_num:>{gutter_width - 1}} |"

    return (
        f"{severity}: {message}\n"
        f"{' ' * gutter_width}--> {filename}:{span.start.line}:{col}\n"
        f"{blank_gutter}\n"
        f"{line_gutter} {source_line}\n"
        f"{blank_gutter} {pad}{carets}"
    )


class MarkupWarning:
    """A graceful-degradation fallback taken while parsing.

    Marginalia never rejects input; each warning records where the parser
    rendered a delimiter literally or otherwise fell back.
    """

    __slots__ = ("message", "span", "source")

    def __init__(self, message: str, span: Span, source: str) -> None:
        self.message = message
        self.span = span
        self.source = source

    def format(self, filename: str = "input.marg") -> str:
        return format_context("warning", self.message, self.span, self.source, filename)

    def __repr__(self) -> str:
        start = self.span.start
        return f"MarkupWarning({self.message!r} at {start.line}:{start.column})"

    def __str__(self) -> str:
        return self.format()


class SealedTableError(Exception):
    """Raised when a sealed reference table is mutated."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"reference table is sealed; cannot record key '{key}'")
