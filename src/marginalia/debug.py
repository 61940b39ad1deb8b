"""--debug tree and reference-table dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

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
    Paragraph,
    Selector,
    Text,
)
from marginalia.refs import ReferenceTable


def dump_tree(doc: Document, *, file: TextIO | None = None) -> None:
    """Print a human-readable document tree to *file* (default: stderr)."""
    if file is None:
        file = sys.stderr
    file.write("Document\n")
    for seg in doc.segments:
        file.write(f"{_indent(1)}Segment\n")
        _dump_block(seg.main, 2, file)
        if seg.aside is not None:
            _dump_aside(seg.aside, 2, file)


def dump_references(table: ReferenceTable, *, file: TextIO | None = None) -> None:
    """Print one line per reference key: index, anchors, selector count."""
    if file is None:
        file = sys.stderr
    file.write("References\n")
    for entry in table:
        anchors = ", ".join(entry.anchors) if entry.anchors else "(none)"
        file.write(
            f"{_indent(1)}[{entry.index}] {entry.key}: anchors={anchors} "
            f"selectors={entry.selectors}\n"
        )


def _indent(depth: int) -> str:
    return "  " * depth


def _dump_aside(aside: Aside, depth: int, f: TextIO) -> None:
    f.write(f"{_indent(depth)}Aside\n")
    for para in aside.paragraphs:
        _dump_block(para, depth + 1, f)


def _dump_block(block: Block, depth: int, f: TextIO) -> None:
    match block:
        case Header():
            f.write(f"{_indent(depth)}Header h{block.level}\n")
            _dump_inlines(block.children, depth + 1, f)
        case Paragraph():
            anchor = f" #{block.anchor_id}" if block.anchor_id else ""
            f.write(f"{_indent(depth)}Paragraph{anchor}\n")
            for line in block.lines:
                f.write(f"{_indent(depth + 1)}Line\n")
                _dump_inlines(line.children, depth + 2, f)
        case Blockquote():
            f.write(f"{_indent(depth)}Blockquote depth={block.depth}\n")
            _dump_inlines(block.children, depth + 1, f)
            if block.citation is not None:
                _dump_inline(block.citation, depth + 1, f)
        case ListBlock():
            _dump_list(block, depth, f)
        case CodeBlock():
            f.write(f"{_indent(depth)}CodeBlock({block.value!r})\n")


def _dump_list(lst: ListBlock, depth: int, f: TextIO) -> None:
    kind = "ordered" if lst.ordered else "unordered"
    f.write(f"{_indent(depth)}List {kind} depth={lst.depth}\n")
    for item in lst.items:
        f.write(f"{_indent(depth + 1)}Item\n")
        _dump_inlines(item.children, depth + 2, f)
        for sub in item.sublists:
            _dump_list(sub, depth + 2, f)


def _dump_inlines(nodes: tuple[Inline, ...], depth: int, f: TextIO) -> None:
    for node in nodes:
        _dump_inline(node, depth, f)


def _dump_inline(node: Inline, depth: int, f: TextIO) -> None:
    pad = _indent(depth)
    match node:
        case Text():
            f.write(f"{pad}Text({node.value!r})\n")
        case LineBreak():
            f.write(f"{pad}LineBreak\n")
        case InlineCode():
            f.write(f"{pad}InlineCode({node.value!r})\n")
        case Emphasis():
            f.write(f"{pad}Emphasis level={node.level}\n")
            _dump_inlines(node.children, depth + 1, f)
        case Link():
            f.write(f"{pad}Link {node.href}\n")
            _dump_inlines(node.children, depth + 1, f)
        case FunctionSpan():
            args = "|".join(node.args)
            f.write(f"{pad}FunctionSpan {node.name!r} args={args!r}\n")
            _dump_inlines(node.children, depth + 1, f)
        case Citation():
            f.write(f"{pad}Citation\n")
            _dump_inlines(node.children, depth + 1, f)
        case Anchor():
            f.write(f"{pad}Anchor {node.key} #{node.anchor_id}\n")
        case Selector():
            target = f"#{node.target}" if node.target else "(unlinked)"
            f.write(f"{pad}Selector {node.key} [{node.index}] -> {target}\n")
