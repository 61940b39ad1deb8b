"""One-token lookahead cursor with mark/rewind over a lazy token stream.

The logical token stream is always ``[next] + replay queue + scanner output``.
While at least one checkpoint is open, every consumed token is journaled so a
rewind can push the exact sequence back in front of the stream without asking
the scanner for anything it already produced.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from marginalia.lexer import Scanner
from marginalia.tokens import Token, TokenType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """Cursor state captured by TokenCursor.mark()."""

    previous: Token | None
    next: Token
    journal_offset: int
    depth: int


class TokenCursor:
    """Lookahead cursor: check/peek/consume plus speculative mark/rewind/commit."""

    def __init__(self, scanner: Scanner) -> None:
        self._scanner = scanner
        self._replay: deque[Token] = deque()
        self._journal: list[Token] = []
        self._open = 0
        self.previous: Token | None = None
        self.next: Token = scanner.scan()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def check(self, *types: TokenType) -> bool:
        """Return True if the lookahead token is one of *types*."""
        return self.next.type in types

    def peek(self) -> Token:
        return self.next

    def consume(self) -> Token:
        """Advance past the lookahead token and return it."""
        tok = self.next
        self.previous = tok
        if self._open:
            self._journal.append(tok)
        self.next = self._replay.popleft() if self._replay else self._scanner.scan()
        return tok

    def skip(self, tt: TokenType) -> Token | None:
        """Consume the lookahead token if it is of type *tt*."""
        if self.next.type == tt:
            return self.consume()
        return None

    @property
    def pending(self) -> int:
        """Number of tokens waiting in the replay queue."""
        return len(self._replay)

    # ------------------------------------------------------------------
    # Speculation
    # ------------------------------------------------------------------

    def mark(self) -> Checkpoint:
        """Open a checkpoint; tokens consumed from here on can be put back."""
        self._open += 1
        return Checkpoint(self.previous, self.next, len(self._journal), self._open)

    def rewind(self, cp: Checkpoint) -> None:
        """Restore the stream to exactly where *cp* was taken and close it."""
        self._close(cp)
        consumed = self._journal[cp.journal_offset :]
        del self._journal[cp.journal_offset :]
        if consumed:
            # The current lookahead follows everything consumed since the mark
            self._replay.appendleft(self.next)
            self._replay.extendleft(reversed(consumed[1:]))
            self.next = consumed[0]
            logger.debug(
                "rewound %d token(s) to line %d column %d",
                len(consumed),
                self.next.span.start.line,
                self.next.span.start.column,
            )
        self.previous = cp.previous
        if not self._open:
            self._journal.clear()

    def commit(self, cp: Checkpoint) -> None:
        """Accept everything consumed since *cp* and close it."""
        self._close(cp)
        if not self._open:
            self._journal.clear()

    def _close(self, cp: Checkpoint) -> None:
        if cp.depth != self._open:
            raise RuntimeError("checkpoints must be closed in reverse order of creation")
        self._open -= 1
