"""HTML renderer: converts a resolved document tree to HTML."""

from __future__ import annotations

from collections.abc import Sequence

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
    LineBreak,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    Segment,
    Selector,
    Text,
)

ASIDE_BUTTON_LABEL = "more..."


def render(
    doc: Document,
    *,
    title: str | None = None,
    lang: str | None = None,
    css_files: Sequence[str] = (),
    js_files: Sequence[str] = (),
    meta_tags: Sequence[tuple[str, str]] = (),
) -> str:
    """Render a resolved document to a complete HTML page."""
    parts: list[str] = ["<!DOCTYPE html>\n"]
    if lang:
        parts.append(f'<html lang="{_escape_html(lang)}">\n')
    else:
        parts.append("<html>\n")
    parts.append("<head>\n")
    parts.append('<meta charset="utf-8">\n')
    for name, content in meta_tags:
        parts.append(f'<meta name="{_escape_html(name)}" content="{_escape_html(content)}">\n')
    if title:
        parts.append(f"<title>{_escape_html(title)}</title>\n")
    for path in css_files:
        parts.append(f'<link rel="stylesheet" href="{_escape_html(path)}">\n')
    for path in js_files:
        parts.append(f'<script src="{_escape_html(path)}"></script>\n')
    parts.append("</head>\n")
    parts.append("<body>\n")
    parts.append(render_fragment(doc))
    parts.append("\n</body>\n")
    parts.append("</html>\n")
    return "".join(parts)


def render_fragment(doc: Document) -> str:
    """Render a resolved document to an embeddable ``ml-root`` element."""
    cls = "ml-root"
    if any(seg.aside is not None for seg in doc.segments):
        cls += " show-asides"
    parts: list[str] = [f'<div class="{cls}">\n']
    for seg in doc.segments:
        parts.append(_render_segment(seg))
        parts.append("\n")
    parts.append("</div>")
    return "".join(parts)


# ---------------------------------------------------------------------------
# HTML escaping
# ---------------------------------------------------------------------------


def _escape_html(text: str) -> str:
    """Escape text for HTML content and attributes. Also encodes non-ASCII as entities."""
    result: list[str] = []
    for ch in text:
        if ch == "&":
            result.append("&amp;")
        elif ch == "<":
            result.append("&lt;")
        elif ch == ">":
            result.append("&gt;")
        elif ch == '"':
            result.append("&quot;")
        elif ch == "'":
            result.append("&#x27;")
        elif ord(ch) > 0x7F:
            result.append(f"&#x{ord(ch):X};")
        else:
            result.append(ch)
    return "".join(result)


# ---------------------------------------------------------------------------
# Segments and blocks
# ---------------------------------------------------------------------------


def _render_segment(seg: Segment) -> str:
    main = f'<div class="main-content">{_render_block(seg.main)}</div>'
    aside = _render_aside(seg.aside) if seg.aside is not None else ""
    return f'<div class="segment">{main}{aside}</div>'


def _render_aside(aside: Aside) -> str:
    content = "<br>".join(_render_paragraph(p) for p in aside.paragraphs)
    return (
        '<div class="aside-segment">'
        f'<div class="aside-content">{content}</div>'
        f'<button class="aside-btn">{ASIDE_BUTTON_LABEL}</button>'
        "</div>"
    )


def _render_block(block: Block) -> str:
    match block:
        case Header(level=level, children=children):
            return f"<h{level}>{_render_inlines(children)}</h{level}>"
        case Paragraph():
            return _render_paragraph(block)
        case Blockquote():
            return _render_blockquote(block)
        case ListBlock():
            return _render_list(block)
        case CodeBlock(value=value):
            return f"<pre><code>{_escape_html(value)}</code></pre>"
        case _:
            return ""


def _render_paragraph(para: Paragraph) -> str:
    lines = "".join(f"<div>{_render_inlines(ln.children)}</div>" for ln in para.lines)
    return f'<div class="paragraph">{lines}</div>'


def _render_blockquote(quote: Blockquote) -> str:
    body = _render_inlines(quote.children)
    if quote.citation is not None:
        body += f'<p class="quote-cit">{_render_inlines(quote.citation.children)}</p>'
    for _ in range(quote.depth):
        body = f"<blockquote>{body}</blockquote>"
    return body


def _render_list(lst: ListBlock) -> str:
    if not lst.items:
        return ""
    tag = "ol" if lst.ordered else "ul"
    items = "".join(_render_item(item) for item in lst.items)
    return f"<{tag}>{items}</{tag}>"


def _render_item(item: ListItem) -> str:
    sublists = "".join(_render_list(sub) for sub in item.sublists)
    return f"<li>{_render_inlines(item.children)}{sublists}</li>"


# ---------------------------------------------------------------------------
# Inline nodes
# ---------------------------------------------------------------------------


def _render_inlines(nodes: Sequence[Inline]) -> str:
    return "".join(_render_inline(n) for n in nodes)


def _render_inline(node: Inline) -> str:
    match node:
        case Text(value=value):
            return _escape_html(value)
        case LineBreak():
            return "<br>"
        case Emphasis(level=1, children=children):
            return f"<i>{_render_inlines(children)}</i>"
        case Emphasis(level=2, children=children):
            return f"<b>{_render_inlines(children)}</b>"
        case Emphasis(children=children):
            return f"<b><i>{_render_inlines(children)}</i></b>"
        case InlineCode(value=value):
            return f"<code>{_escape_html(value)}</code>"
        case Link(href=href, children=children):
            return f'<a href="{_escape_html(href)}">{_render_inlines(children)}</a>'
        case FunctionSpan():
            return _render_function(node)
        case Citation(children=children):
            return f'<p class="quote-cit">{_render_inlines(children)}</p>'
        case Anchor(anchor_id=anchor_id):
            return f'<a class="pRef" id="{_escape_html(anchor_id)}"></a>'
        case Selector():
            return _render_selector(node)
        case _:
            return ""


def _render_function(node: FunctionSpan) -> str:
    """Single dispatch point for [name|args] spans.

    No functions are built in, so every span renders its parsed content.
    """
    return f'<span class="func">{_render_inlines(node.children)}</span>'


def _render_selector(sel: Selector) -> str:
    attrs = f'class="pSel" id="{_escape_html(sel.selector_id)}"'
    if sel.target is not None:
        attrs += f' href="#{_escape_html(sel.target)}"'
    return f"<sup><a {attrs}>[{sel.index}]</a></sup>"
