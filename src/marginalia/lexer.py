"""Marginalia scanner: converts source text into a lazy stream of tokens."""

from __future__ import annotations

from collections.abc import Iterator

from marginalia.tokens import Position, Span, Token, TokenType, is_alnum, is_space, is_word_char

# Longest header marker; a longer '=' run is plain text
MAX_HEADER_LEVEL = 4


class Scanner:
    """Forward-only cursor over source text producing one Token per scan() call."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._pos = 0
        self._line = 1
        self._col = 1
        self._start = Position(1, 1, 0)

    def scan(self) -> Token:
        """Return the next token. Keeps returning EOF once the input is exhausted."""
        self._start = self._current_pos()

        if self._pos >= len(self._source):
            return self._emit(TokenType.EOF)

        ch = self._advance()

        match ch:
            case "\n":
                return self._newline()
            case "\r" if self._peek() == "\n":
                self._advance()
                return self._newline()
            case "~":
                return self._emit(TokenType.TILDE)
            case "*":
                return self._emit(TokenType.EMPH)
            case "[":
                return self._emit(TokenType.LBRACKET)
            case "]":
                return self._emit(TokenType.RBRACKET)
            case "`":
                if self._peek() == "`" and self._peek(1) == "`":
                    self._advance()
                    self._advance()
                    return self._emit(TokenType.CODEBLOCK)
                return self._emit(TokenType.INCODE)
            case ".":
                if self._peek() == "." and self._peek(1) == ".":
                    self._advance()
                    self._advance()
                    return self._emit(TokenType.NL_ESCAPE)
                return self._word()
            case " ":
                while self._peek() == " ":
                    self._advance()
                return self._emit(TokenType.SPACE)
            case "-":
                while self._peek() == "-":
                    self._advance()
                return self._emit(TokenType.HYPHEN)
            case "=":
                return self._header()
            case "+":
                return self._list_marker("+", TokenType.UL)
            case "#":
                return self._list_marker("#", TokenType.OL)
            case ":":
                if self._peek() == ":" and self._peek(1) == " ":
                    self._advance()
                    return self._emit(TokenType.ASIDE)
                return self._word()
            case "$":
                return self._select()
            case ">":
                return self._anchor()
            case "\\":
                return self._escape()
            case _:
                return self._word()

    def __iter__(self) -> Iterator[Token]:
        """Yield tokens up to and including the first EOF."""
        while True:
            tok = self.scan()
            yield tok
            if tok.type == TokenType.EOF:
                return

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _emit(self, tt: TokenType, value: str | None = None) -> Token:
        raw = self._source[self._start.offset : self._pos]
        return Token(tt, raw if value is None else value, raw, Span(self._start, self._current_pos()))

    # ------------------------------------------------------------------
    # Token rules
    # ------------------------------------------------------------------

    def _newline(self) -> Token:
        if self._peek() == "\n":
            self._advance()
            return self._emit(TokenType.PARAGRAPH_BREAK, "\n\n")
        if self._peek() == "\r" and self._peek(1) == "\n":
            self._advance()
            self._advance()
            return self._emit(TokenType.PARAGRAPH_BREAK, "\n\n")
        return self._emit(TokenType.LINE_BREAK, "\n")

    def _at_word_end(self) -> bool:
        ch = self._peek()
        if not is_word_char(ch):
            return True
        if ch == "\r" and self._peek(1) == "\n":
            return True
        return ch == "." and self._peek(1) == "." and self._peek(2) == "."

    def _word(self) -> Token:
        """Continue a word span from the current position."""
        while not self._at_word_end():
            self._advance()
        return self._emit(TokenType.WORD)

    def _header(self) -> Token:
        # One '=' is already consumed; a header marker must be followed by a space
        run = 1
        while run <= MAX_HEADER_LEVEL:
            ch = self._peek()
            if ch == " ":
                return self._emit(TokenType.HEADER)
            if ch != "=":
                return self._word()
            self._advance()
            run += 1
        return self._word()

    def _list_marker(self, symbol: str, tt: TokenType) -> Token:
        while self._peek() == symbol:
            self._advance()
        if self._peek() == " ":
            return self._emit(tt)
        return self._word()

    def _select(self) -> Token:
        # $<key>
        if self._peek() == "<" and is_alnum(self._peek(1)):
            self._advance()
            while is_alnum(self._peek()):
                self._advance()
            if self._peek() == ">":
                self._advance()
                return self._emit(TokenType.SELECT)
        return self._word()

    def _anchor(self) -> Token:
        # >$key
        if self._peek() == "$" and is_alnum(self._peek(1)):
            self._advance()
            while is_alnum(self._peek()):
                self._advance()
            return self._emit(TokenType.ANCHOR)
        return self._word()

    def _escape(self) -> Token:
        ch = self._peek()
        if ch == "" or is_space(ch):
            return self._emit(TokenType.WORD)
        self._advance()
        return self._emit(TokenType.WORD, ch)


def tokenize(source: str) -> list[Token]:
    """Convenience function: scan source text and return the token list."""
    return list(Scanner(source))
