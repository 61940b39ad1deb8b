"""Document tree node types produced by the Marginalia parser."""

from __future__ import annotations

from dataclasses import dataclass

from marginalia.tokens import Span

# ---------------------------------------------------------------------------
# Inline nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Text:
    """Coalesced literal text (unescaped; the serializer escapes it)."""

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class LineBreak:
    """Explicit hard break inside a line, list item, or blockquote."""

    span: Span


@dataclass(frozen=True, slots=True)
class Emphasis:
    """Asterisk emphasis: level 1 italic, 2 bold, 3 bold-italic."""

    level: int
    children: tuple[Inline, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class InlineCode:
    """Backtick code span; value is raw source text, never reparsed."""

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class Link:
    """Auto-detected hyperlink with its display label."""

    href: str
    children: tuple[Inline, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class FunctionSpan:
    """Balanced [name|arg|...] group, kept for function dispatch at render time."""

    name: str
    args: tuple[str, ...]
    children: tuple[Inline, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class Citation:
    """Trailing [source] of a blockquote."""

    children: tuple[Inline, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class Anchor:
    """Empty marker declaring a linkable location for a reference key."""

    key: str
    anchor_id: str
    paragraph: bool
    span: Span


@dataclass(frozen=True, slots=True)
class Selector:
    """Indexed in-text reference to a key; target is filled in by resolve()."""

    key: str
    index: int
    selector_id: str
    target: str | None
    span: Span

    @property
    def linked(self) -> bool:
        return self.target is not None


Inline = Text | LineBreak | Emphasis | InlineCode | Link | FunctionSpan | Citation | Anchor | Selector


# ---------------------------------------------------------------------------
# Block nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Header:
    level: int
    children: tuple[Inline, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class Line:
    """One source line of a paragraph."""

    children: tuple[Inline, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class Paragraph:
    """Lines of text; anchor_id is set when the paragraph opens with >$key."""

    lines: tuple[Line, ...]
    anchor_id: str | None
    span: Span


@dataclass(frozen=True, slots=True)
class Blockquote:
    """Quoted text nested depth times, with an optional trailing citation."""

    depth: int
    children: tuple[Inline, ...]
    citation: Citation | None
    span: Span


@dataclass(frozen=True, slots=True)
class ListItem:
    children: tuple[Inline, ...]
    sublists: tuple[ListBlock, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class ListBlock:
    """Ordered (#) or unordered (+) list at a given nesting depth (0 = outermost)."""

    ordered: bool
    depth: int
    items: tuple[ListItem, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class CodeBlock:
    """Triple-backtick block; value is raw source text, never reparsed."""

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class Aside:
    """Merged side note attached to the preceding primary block."""

    paragraphs: tuple[Paragraph, ...]
    span: Span


Block = Header | Paragraph | Blockquote | ListBlock | CodeBlock


@dataclass(frozen=True, slots=True)
class Segment:
    """One primary block paired with its optional aside."""

    main: Block
    aside: Aside | None
    span: Span


@dataclass(frozen=True, slots=True)
class Document:
    """Root document node."""

    segments: tuple[Segment, ...]
    span: Span
