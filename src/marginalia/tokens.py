"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    EOF = auto()

    # Breaks
    LINE_BREAK = auto()  # \n
    PARAGRAPH_BREAK = auto()  # \n\n

    # Inline delimiters
    EMPH = auto()  # *
    INCODE = auto()  # `
    TILDE = auto()  # ~
    LBRACKET = auto()  # [
    RBRACKET = auto()  # ]
    NL_ESCAPE = auto()  # ...

    # Block markers (run length carried in raw text)
    CODEBLOCK = auto()  # ```
    ASIDE = auto()  # :: (followed by a space)
    UL = auto()  # +, ++, ... (followed by a space)
    OL = auto()  # #, ##, ... (followed by a space)
    HYPHEN = auto()  # -, --, ---, ...
    HEADER = auto()  # = to ==== (followed by a space)

    # References
    ANCHOR = auto()  # >$key
    SELECT = auto()  # $<key>

    # Content
    SPACE = auto()
    WORD = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


@dataclass(frozen=True, slots=True)
class Token:
    """A single scanner token with resolved value and original source text."""

    type: TokenType
    value: str
    raw: str
    span: Span

    @property
    def key(self) -> str:
        """Reference key of an ANCHOR or SELECT token."""
        if self.type == TokenType.ANCHOR:
            return self.raw[2:]
        if self.type == TokenType.SELECT:
            return self.raw[2:-1]
        return ""


# Characters that end a word span
_WORD_STOP = frozenset(" \n*~`\\[]")


def is_alnum(ch: str) -> bool:
    """Return True if ch is an ASCII letter or digit (reference key character)."""
    return ch != "" and ch in "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def is_word_char(ch: str) -> bool:
    """Return True if ch may continue a word span."""
    return ch != "" and ch not in _WORD_STOP


def is_space(ch: str) -> bool:
    """Return True if ch is whitespace (escapes never apply to it)."""
    return ch != "" and ch.isspace()
