"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from marginalia import compile
from marginalia.ast import Block, Inline, Paragraph
from marginalia.lexer import tokenize
from marginalia.parser import ParseResult, parse
from marginalia.tokens import Position, Span, Token, TokenType

S = Span(Position(1, 1, 0), Position(1, 1, 0))


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str) -> list[Token]:
        tokens = tokenize(source)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def parse_source():
    """Return a helper that parses source and returns a ParseResult."""

    def _parse(source: str, filename: str = "test.marg", **kwargs) -> ParseResult:
        return parse(source, filename, **kwargs)

    return _parse


@pytest.fixture
def html():
    """Return a helper that compiles source to an HTML fragment."""

    def _html(source: str) -> str:
        return compile(source, "test.marg", fragment=True)

    return _html


def assert_types(tokens: list[Token], expected: list[TokenType]) -> None:
    """Assert that the token types match the expected list."""
    actual = [t.type for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_values(tokens: list[Token], expected: list[str]) -> None:
    """Assert that the token values match the expected list."""
    actual = [t.value for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def blocks(result: ParseResult) -> list[Block]:
    """Primary blocks of every segment, in order."""
    return [seg.main for seg in result.document.segments]


def first_line(result: ParseResult) -> tuple[Inline, ...]:
    """Inline children of the first line of the first paragraph."""
    para = blocks(result)[0]
    assert isinstance(para, Paragraph), f"Expected Paragraph, got {type(para).__name__}"
    return para.lines[0].children


def messages(result: ParseResult) -> list[str]:
    return [w.message for w in result.warnings]
