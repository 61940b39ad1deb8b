"""Marginalia parser: converts a token stream into a document tree.

Blocks are dispatched on the lookahead token; inline text goes through a
precedence cascade (literal < code < emphasis < brackets) where each layer
delegates to the one below it. The parser never raises on input: unterminated
or malformed constructs fall back to literal text and leave a MarkupWarning.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from marginalia.ast import (
    Anchor,
    Aside,
    Block,
    Blockquote,
    Citation,
    CodeBlock,
    Document,
    Emphasis,
    FunctionSpan,
    Header,
    Inline,
    InlineCode,
    Line,
    LineBreak,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    Segment,
    Selector,
    Text,
)
from marginalia.cursor import TokenCursor
from marginalia.errors import MarkupWarning
from marginalia.lexer import Scanner
from marginalia.refs import ReferenceTable
from marginalia.strings import (
    is_escape,
    is_url,
    link_href,
    split_function,
    split_url,
    style_dashes,
)
from marginalia.tokens import Position, Span, Token, TokenType

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64
ARG_SEPARATOR = "|"


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Document tree, sealed reference table, and fallback diagnostics."""

    document: Document
    references: ReferenceTable
    warnings: tuple[MarkupWarning, ...]


# Token tables: _LINE_END, _BRACKETS, _DELIMITERS and _LITERAL partition TokenType
_LINE_END: frozenset[TokenType] = frozenset(
    {TokenType.EOF, TokenType.LINE_BREAK, TokenType.PARAGRAPH_BREAK}
)
_BRACKETS: frozenset[TokenType] = frozenset({TokenType.LBRACKET, TokenType.RBRACKET})
_DELIMITERS: frozenset[TokenType] = frozenset({TokenType.EMPH, TokenType.INCODE})
_LITERAL: frozenset[TokenType] = frozenset(
    {
        TokenType.WORD,
        TokenType.SPACE,
        TokenType.TILDE,
        TokenType.HYPHEN,
        TokenType.HEADER,
        TokenType.UL,
        TokenType.OL,
        TokenType.ASIDE,
        TokenType.NL_ESCAPE,
        TokenType.CODEBLOCK,
        TokenType.ANCHOR,
        TokenType.SELECT,
    }
)

# Tokens that, right after a line break, end the enclosing block
_PARAGRAPH_END: frozenset[TokenType] = frozenset(
    {TokenType.EOF, TokenType.PARAGRAPH_BREAK, TokenType.ASIDE}
)
_ITEM_END: frozenset[TokenType] = _PARAGRAPH_END | {TokenType.UL, TokenType.OL}


@dataclass(frozen=True, slots=True)
class _Inline:
    """Which inline constructs are active in the current context.

    ``block_end`` lists the tokens that end the block when they follow a line
    break; a trailing '...' only joins lines the block actually continues
    onto. ``None`` means lines never join (headers).
    """

    emphasis: bool = True
    urls: bool = True
    quote: bool = False
    block_end: frozenset[TokenType] | None = _PARAGRAPH_END


_PLAIN = _Inline()
_ITEM = _Inline(block_end=_ITEM_END)
_HEADER = _Inline(emphasis=False, block_end=None)
_QUOTE = _Inline(quote=True)
_LABEL = _Inline(urls=False)


class Parser:
    """Recursive descent parser for Marginalia source. One instance per parse."""

    def __init__(
        self,
        source: str,
        filename: str = "input.marg",
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._source = source
        self._filename = filename
        self._max_depth = max(1, max_depth)
        self._cursor = TokenCursor(Scanner(source))
        self._refs = ReferenceTable()
        self._warnings: list[MarkupWarning] = []
        self._selector_spans: dict[str, Span] = {}
        self._anchor_count = 0
        self._selector_count = 0
        self._soft_break: Token | None = None
        self._used = False

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _at(self, *types: TokenType) -> bool:
        return self._cursor.check(*types)

    def _advance(self) -> Token:
        return self._cursor.consume()

    def _prev_end(self) -> Position:
        """End position of the previously consumed token."""
        if self._cursor.previous is not None:
            return self._cursor.previous.span.end
        return self._cursor.peek().span.start

    def _skip_breaks(self) -> None:
        while self._at(TokenType.LINE_BREAK, TokenType.PARAGRAPH_BREAK):
            self._advance()

    def _warn(self, message: str, span: Span) -> None:
        logger.debug("%s:%d:%d: %s", self._filename, span.start.line, span.start.column, message)
        self._warnings.append(MarkupWarning(message, span, self._source))

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def parse(self) -> ParseResult:
        if self._used:
            raise RuntimeError("Parser instances are single-use; create a new Parser")
        self._used = True

        start = self._cursor.peek().span.start
        segments: list[Segment] = []

        while True:
            self._skip_breaks()
            if self._at(TokenType.EOF):
                break
            segments.append(self._parse_segment())

        self._refs.seal()
        for entry in self._refs.unresolved():
            self._warn(
                f"reference '{entry.key}' has no anchor; selector left unlinked",
                self._selector_spans[entry.key],
            )

        doc = Document(tuple(segments), Span(start, self._cursor.peek().span.end))
        return ParseResult(doc, self._refs, tuple(self._warnings))

    def _parse_segment(self) -> Segment:
        start = self._cursor.peek().span.start

        if self._at(TokenType.ASIDE):
            self._warn(
                "aside has no preceding block; rendered as a paragraph",
                self._cursor.peek().span,
            )
            main: Block = self._parse_paragraph()
        else:
            main = self._parse_block()

        self._skip_breaks()
        aside = self._parse_aside() if self._at(TokenType.ASIDE) else None
        return Segment(main, aside, Span(start, self._prev_end()))

    def _parse_block(self) -> Block:
        tok = self._cursor.peek()
        match tok.type:
            case TokenType.HEADER:
                return self._parse_header()
            case TokenType.CODEBLOCK:
                return self._parse_code_block()
            case TokenType.HYPHEN if len(tok.raw) % 3 == 0:
                return self._parse_blockquote()
            case TokenType.UL | TokenType.OL:
                lst = self._parse_list(0)
                assert lst is not None
                return lst
            case _:
                return self._parse_paragraph()

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def _parse_header(self) -> Header:
        marker = self._advance()
        self._cursor.skip(TokenType.SPACE)
        children = self._parse_inline(_HEADER)
        end = self._prev_end()
        self._cursor.skip(TokenType.LINE_BREAK)
        return Header(len(marker.raw), tuple(children), Span(marker.span.start, end))

    def _parse_code_block(self) -> CodeBlock | Paragraph:
        cp = self._cursor.mark()
        opener = self._advance()
        body: list[Token] = []

        while not self._at(TokenType.CODEBLOCK, TokenType.EOF):
            body.append(self._advance())

        if self._at(TokenType.CODEBLOCK):
            closer = self._advance()
            self._cursor.commit(cp)
            text = "".join(t.raw for t in body)
            # One newline directly after the opening marker is not content
            if text.startswith("\r\n"):
                text = text[2:]
            elif text.startswith("\n"):
                text = text[1:]
            return CodeBlock(text, Span(opener.span.start, closer.span.end))

        self._cursor.rewind(cp)
        self._warn("unterminated code block; rendered as a paragraph", opener.span)
        return self._parse_paragraph()

    def _parse_blockquote(self) -> Blockquote:
        marker = self._advance()
        self._cursor.skip(TokenType.SPACE)
        children: list[Inline] = []
        citation: Citation | None = None

        while True:
            for node in self._parse_inline(_QUOTE):
                if isinstance(node, Citation):
                    citation = node
                else:
                    children.append(node)
            if not self._at(TokenType.LINE_BREAK):
                break
            children.append(self._line_break())
            if self._at(TokenType.ASIDE):
                break

        end = self._prev_end()
        self._cursor.skip(TokenType.PARAGRAPH_BREAK)
        _trim_breaks(children)
        return Blockquote(
            len(marker.raw) // 3,
            tuple(_coalesce_text(children)),
            citation,
            Span(marker.span.start, end),
        )

    def _parse_list(self, level: int) -> ListBlock | None:
        """Parse list items at *level*; deeper markers recurse, shallower ones return."""
        start = self._cursor.peek().span.start
        items: list[ListItem] = []
        kind: TokenType | None = None

        while self._at(TokenType.UL, TokenType.OL):
            tok = self._cursor.peek()
            tok_level = self._list_level(tok)
            if tok_level < level:
                break
            if tok_level > level:
                sub = self._parse_list(level + 1)
                if sub is None:
                    break
                if items:
                    last = items[-1]
                    items[-1] = dataclasses.replace(
                        last,
                        sublists=(*last.sublists, sub),
                        span=Span(last.span.start, sub.span.end),
                    )
                else:
                    items.append(ListItem((), (sub,), sub.span))
                continue
            if kind is None:
                kind = tok.type
            elif tok.type != kind:
                break
            items.append(self._parse_list_item())

        if not items:
            return None
        return ListBlock(
            kind == TokenType.OL, level, tuple(items), Span(start, self._prev_end())
        )

    def _list_level(self, marker: Token) -> int:
        return min(len(marker.raw) - 1, self._max_depth - 1)

    def _parse_list_item(self) -> ListItem:
        marker = self._advance()
        if len(marker.raw) > self._max_depth:
            self._warn("list nesting limit reached; item kept at the deepest level", marker.span)
        self._cursor.skip(TokenType.SPACE)

        children: list[Inline] = []
        end = marker.span.end
        while True:
            children.extend(self._parse_inline(_ITEM))
            end = self._prev_end()
            if not self._at(TokenType.LINE_BREAK):
                break
            brk = self._line_break()
            if self._at(*_ITEM_END):
                break
            children.append(brk)

        _trim_breaks(children)
        return ListItem(tuple(_coalesce_text(children)), (), Span(marker.span.start, end))

    def _parse_paragraph(self) -> Paragraph:
        start = self._cursor.peek().span.start
        anchor_id: str | None = None
        current: list[Inline] = []
        lines: list[Line] = []
        line_start = start

        if self._at(TokenType.ANCHOR):
            anchor = self._declare_anchor(self._advance(), paragraph=True)
            anchor_id = anchor.anchor_id
            current.append(anchor)
            self._cursor.skip(TokenType.SPACE)

        while True:
            nodes = self._parse_inline(_PLAIN)
            if not nodes and not current:
                break
            current.extend(nodes)
            if not self._at(TokenType.LINE_BREAK):
                break
            brk = self._line_break()
            if isinstance(brk, Text):
                current.append(brk)
                continue
            lines.append(Line(tuple(_coalesce_text(current)), Span(line_start, brk.span.start)))
            current = []
            line_start = self._cursor.peek().span.start
            if self._at(TokenType.ASIDE):
                break

        if current:
            lines.append(Line(tuple(_coalesce_text(current)), Span(line_start, self._prev_end())))

        end = self._prev_end()
        self._cursor.skip(TokenType.PARAGRAPH_BREAK)
        return Paragraph(tuple(lines), anchor_id, Span(start, end))

    def _parse_aside(self) -> Aside:
        start = self._cursor.peek().span.start
        paragraphs: list[Paragraph] = []

        while self._at(TokenType.ASIDE):
            self._advance()
            self._cursor.skip(TokenType.SPACE)
            paragraphs.append(self._parse_paragraph())
            self._skip_breaks()

        return Aside(tuple(paragraphs), Span(start, self._prev_end()))

    def _line_break(self) -> Text | LineBreak:
        """Consume a LINE_BREAK; a trailing '...' turns it into a single space."""
        soft = self._soft_break is not None and self._cursor.previous is self._soft_break
        self._soft_break = None
        tok = self._advance()
        if soft:
            return Text(" ", tok.span)
        return LineBreak(tok.span)

    # ------------------------------------------------------------------
    # Inline: line level (brackets)
    # ------------------------------------------------------------------

    def _parse_inline(self, ctx: _Inline) -> list[Inline]:
        """Inline content up to a line break, paragraph break, or EOF."""
        result: list[Inline] = []

        while not self._at(*_LINE_END):
            tt = self._cursor.peek().type
            if tt in _BRACKETS:
                if tt == TokenType.LBRACKET:
                    result.extend(self._parse_bracketed(ctx, 1))
                else:
                    tok = self._advance()
                    result.append(Text("]", tok.span))
            elif tt in _DELIMITERS or tt in _LITERAL:
                result.extend(self._parse_emphasis_run(ctx))
            else:
                raise AssertionError(f"no inline handler for {tt.name}")

        return _coalesce_text(result)

    def _parse_bracketed(self, ctx: _Inline, depth: int) -> list[Inline]:
        opener = self._advance()
        if depth > self._max_depth:
            self._warn("bracket nesting limit reached; '[' rendered literally", opener.span)
            return [Text("[", opener.span)]

        children = self._parse_bracket_content(ctx, depth)

        if not self._at(TokenType.RBRACKET):
            self._warn("unbalanced '[' rendered literally", opener.span)
            return [Text("[", opener.span), *children]

        closer = self._advance()
        span = Span(opener.span.start, closer.span.end)
        body = tuple(_coalesce_text(children))

        if ctx.quote and self._at(TokenType.EOF, TokenType.PARAGRAPH_BREAK):
            return [Citation(body, span)]

        raw = self._source[opener.span.end.offset : closer.span.start.offset]
        name, args = split_function(raw, ARG_SEPARATOR)
        return [FunctionSpan(name, args, body, span)]

    def _parse_bracket_content(self, ctx: _Inline, depth: int) -> list[Inline]:
        inner = dataclasses.replace(ctx, quote=False)
        result: list[Inline] = []

        while not self._at(TokenType.RBRACKET, *_LINE_END):
            if self._at(TokenType.LBRACKET):
                result.extend(self._parse_bracketed(inner, depth + 1))
            else:
                result.extend(self._parse_emphasis_run(inner))

        return result

    # ------------------------------------------------------------------
    # Inline: emphasis
    # ------------------------------------------------------------------

    def _parse_emphasis_run(self, ctx: _Inline) -> list[Inline]:
        result: list[Inline] = []
        while True:
            if ctx.emphasis and self._at(TokenType.EMPH):
                opener = self._advance()
                result.extend(self._parse_emphasis(ctx, 1, opener))
            elif self._at_code_run(ctx):
                result.extend(self._parse_code_run(ctx))
            else:
                return result

    def _parse_emphasis(self, ctx: _Inline, level: int, opener: Token) -> list[Inline]:
        """Parse after an opening '*' at nesting *level* (level mod 4 picks the style)."""
        if level > self._max_depth:
            self._warn("emphasis nesting limit reached; '*' rendered literally", opener.span)
            nodes: list[Inline] = [Text("*", opener.span)]
            while self._at(TokenType.EMPH):
                nodes.append(Text("*", self._advance().span))
            return nodes

        if self._at(TokenType.EMPH):
            inner = self._advance()
            result = self._parse_emphasis(ctx, level + 1, inner)
            if self._at_code_run(ctx):
                # '**a* b*': after the inner close, text continues at this level
                result.extend(self._parse_emphasis(ctx, level, opener))
            elif self._at(TokenType.EMPH):
                self._advance()
            else:
                self._warn("unmatched '*' rendered literally", opener.span)
                result.insert(0, Text("*", opener.span))
            return result

        if self._at_code_run(ctx):
            children = self._parse_code_run(ctx)
            if self._at(TokenType.EMPH):
                closer = self._advance()
                return _emphasize(level, children, Span(opener.span.start, closer.span.end))
            self._warn("unmatched '*' rendered literally", opener.span)
            return [Text("*", opener.span), *children]

        self._warn("unmatched '*' rendered literally", opener.span)
        return [Text("*", opener.span)]

    # ------------------------------------------------------------------
    # Inline: code spans
    # ------------------------------------------------------------------

    def _at_code_run(self, ctx: _Inline) -> bool:
        return self._at(TokenType.INCODE) or self._at_literal(ctx)

    def _parse_code_run(self, ctx: _Inline) -> list[Inline]:
        result: list[Inline] = []
        while self._at_code_run(ctx):
            if self._at(TokenType.INCODE):
                result.extend(self._parse_code_span())
            else:
                result.extend(self._parse_literal_run(ctx))
        return result

    def _parse_code_span(self) -> list[Inline]:
        opener = self._advance()
        cp = self._cursor.mark()
        body: list[Token] = []

        while not self._at(TokenType.INCODE, *_LINE_END):
            body.append(self._advance())

        if self._at(TokenType.INCODE):
            closer = self._advance()
            self._cursor.commit(cp)
            value = "".join(t.raw for t in body)
            return [InlineCode(value, Span(opener.span.start, closer.span.end))]

        self._cursor.rewind(cp)
        self._warn("unterminated inline code; '`' rendered literally", opener.span)
        return [Text("`", opener.span)]

    # ------------------------------------------------------------------
    # Inline: literal text, links, references
    # ------------------------------------------------------------------

    def _at_literal(self, ctx: _Inline) -> bool:
        tt = self._cursor.peek().type
        return tt in _LITERAL or (tt == TokenType.EMPH and not ctx.emphasis)

    def _parse_literal_run(self, ctx: _Inline) -> list[Inline]:
        result: list[Inline] = []

        while self._at_literal(ctx):
            before = self._cursor.previous
            tok = self._advance()
            match tok.type:
                case TokenType.WORD:
                    result.extend(self._parse_word(tok, ctx))
                case TokenType.HYPHEN:
                    result.append(Text(style_dashes(tok.raw), tok.span))
                case TokenType.ANCHOR:
                    result.append(self._declare_anchor(tok, paragraph=False))
                case TokenType.SELECT:
                    result.append(self._select(tok))
                case TokenType.NL_ESCAPE:
                    node = self._ellipsis(tok, before, ctx)
                    if node is not None:
                        result.append(node)
                case _:
                    # Markers that did not start a block are plain text here
                    result.append(Text(tok.raw, tok.span))

        return result

    def _parse_word(self, tok: Token, ctx: _Inline) -> list[Inline]:
        if is_escape(tok.raw):
            return [Text(tok.value, tok.span)]
        if ctx.urls:
            url, suffix = split_url(tok.raw)
            if is_url(url):
                return self._parse_link(tok, url, suffix)
        return [Text(style_dashes(tok.raw), tok.span)]

    def _parse_link(self, tok: Token, url: str, suffix: str) -> list[Inline]:
        label: list[Inline] = [Text(url, tok.span)]
        end = tok.span.end
        trailing: list[Inline] = []

        if self._at(TokenType.LBRACKET) and self._has_closing_bracket():
            opener = self._advance()
            children = self._parse_bracket_content(_LABEL, 1)
            if self._at(TokenType.RBRACKET):
                end = self._advance().span.end
                label = _coalesce_text(children)
            else:
                self._warn("unbalanced '[' rendered literally", opener.span)
                trailing = [Text("[", opener.span), *children]

        nodes: list[Inline] = [Link(link_href(url), tuple(label), Span(tok.span.start, end))]
        if suffix:
            nodes.append(Text(suffix, tok.span))
        nodes.extend(trailing)
        return nodes

    def _has_closing_bracket(self) -> bool:
        """Look ahead (and restore) for the ']' matching the '[' at the cursor."""
        cp = self._cursor.mark()
        self._advance()
        depth = 1
        found = False
        while not self._at(*_LINE_END):
            tok = self._advance()
            if tok.type == TokenType.LBRACKET:
                depth += 1
            elif tok.type == TokenType.RBRACKET:
                depth -= 1
                if depth == 0:
                    found = True
                    break
        self._cursor.rewind(cp)
        return found

    def _ellipsis(self, tok: Token, before: Token | None, ctx: _Inline) -> Inline | None:
        alone = before is None or before.type in (
            TokenType.LINE_BREAK,
            TokenType.PARAGRAPH_BREAK,
        )
        if alone and self._at(*_LINE_END):
            return LineBreak(tok.span)
        if self._at(TokenType.LINE_BREAK) and self._continues_after_break(ctx):
            self._soft_break = tok
            return None
        return Text("...", tok.span)

    def _continues_after_break(self, ctx: _Inline) -> bool:
        """Look past the upcoming LINE_BREAK (and restore): does the block go on?"""
        if ctx.block_end is None:
            return False
        cp = self._cursor.mark()
        self._advance()
        continues = not self._at(*ctx.block_end)
        self._cursor.rewind(cp)
        return continues

    def _declare_anchor(self, tok: Token, *, paragraph: bool) -> Anchor:
        key = tok.key
        self._anchor_count += 1
        anchor_id = f"anc_{key}_{self._anchor_count}"
        self._refs.record_anchor(key, anchor_id)
        return Anchor(key, anchor_id, paragraph, tok.span)

    def _select(self, tok: Token) -> Selector:
        key = tok.key
        entry = self._refs.record_selector(key)
        self._selector_count += 1
        self._selector_spans.setdefault(key, tok.span)
        return Selector(key, entry.index, f"sel_{key}_{self._selector_count}", None, tok.span)


def _emphasize(level: int, children: list[Inline], span: Span) -> list[Inline]:
    style = level % 4
    if style == 0:
        return children
    return [Emphasis(style, tuple(_coalesce_text(children)), span)]


def _trim_breaks(nodes: list[Inline]) -> None:
    """Drop trailing hard breaks and soft-break spaces."""
    while nodes and (
        isinstance(nodes[-1], LineBreak)
        or (isinstance(nodes[-1], Text) and nodes[-1].value == " ")
    ):
        nodes.pop()


def _coalesce_text(nodes: list[Inline]) -> list[Inline]:
    """Coalesce adjacent Text nodes into single nodes."""
    if not nodes:
        return nodes
    result: list[Inline] = []
    for node in nodes:
        if isinstance(node, Text) and result and isinstance(result[-1], Text):
            prev = result[-1]
            result[-1] = Text(prev.value + node.value, Span(prev.span.start, node.span.end))
        else:
            result.append(node)
    return result


def parse(
    source: str, filename: str = "input.marg", *, max_depth: int = DEFAULT_MAX_DEPTH
) -> ParseResult:
    """Convenience function: parse source text and return a ParseResult."""
    return Parser(source, filename, max_depth=max_depth).parse()
