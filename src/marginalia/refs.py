"""Reference table and the post-parse selector resolution pass.

Anchors (``>$key``) and selectors (``$<key>``) are recorded while parsing; a
selector may name a key whose anchor appears later or never. Once the parser
seals the table, resolve() links every selector to the first anchor of its key.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from dataclasses import dataclass, field

from marginalia.ast import (
    Aside,
    Block,
    Blockquote,
    Citation,
    Document,
    Emphasis,
    FunctionSpan,
    Header,
    Inline,
    Line,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    Segment,
    Selector,
)
from marginalia.errors import SealedTableError


@dataclass
class RefEntry:
    """Everything recorded for one reference key."""

    key: str
    index: int
    anchors: list[str] = field(default_factory=list)
    selectors: int = 0

    @property
    def target(self) -> str | None:
        """Link target for selectors: the first anchor registered for the key."""
        return self.anchors[0] if self.anchors else None


class ReferenceTable:
    """Key -> RefEntry, with display indices assigned in order of first mention."""

    def __init__(self) -> None:
        self._entries: dict[str, RefEntry] = {}
        self._sealed = False

    def record_anchor(self, key: str, anchor_id: str) -> RefEntry:
        entry = self._entry(key)
        entry.anchors.append(anchor_id)
        return entry

    def record_selector(self, key: str) -> RefEntry:
        entry = self._entry(key)
        entry.selectors += 1
        return entry

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def _entry(self, key: str) -> RefEntry:
        if self._sealed:
            raise SealedTableError(key)
        entry = self._entries.get(key)
        if entry is None:
            entry = RefEntry(key, len(self._entries) + 1)
            self._entries[key] = entry
        return entry

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> RefEntry:
        return self._entries[key]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[RefEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> RefEntry | None:
        return self._entries.get(key)

    def unresolved(self) -> list[RefEntry]:
        """Entries that have selectors but no anchor."""
        return [e for e in self._entries.values() if e.selectors and not e.anchors]

    def to_dict(self) -> dict[str, dict[str, object]]:
        """JSON-ready mapping: key -> {index, anchors, selectors}."""
        return {
            e.key: {"index": e.index, "anchors": list(e.anchors), "selectors": e.selectors}
            for e in self._entries.values()
        }


# ---------------------------------------------------------------------------
# Resolution pass
# ---------------------------------------------------------------------------


def resolve(doc: Document, table: ReferenceTable) -> Document:
    """Return a copy of doc whose selectors point at their key's first anchor.

    Selectors of keys without any anchor keep ``target=None`` and render as
    unlinked markers.
    """
    if not table.sealed:
        raise ValueError("reference table must be sealed before resolution")
    return dataclasses.replace(
        doc, segments=tuple(_resolve_segment(s, table) for s in doc.segments)
    )


def _resolve_segment(seg: Segment, table: ReferenceTable) -> Segment:
    aside = seg.aside
    if aside is not None:
        aside = Aside(tuple(_resolve_paragraph(p, table) for p in aside.paragraphs), aside.span)
    return Segment(_resolve_block(seg.main, table), aside, seg.span)


def _resolve_block(block: Block, table: ReferenceTable) -> Block:
    if isinstance(block, Paragraph):
        return _resolve_paragraph(block, table)
    if isinstance(block, Header):
        return dataclasses.replace(block, children=_resolve_inlines(block.children, table))
    if isinstance(block, Blockquote):
        citation = block.citation
        if citation is not None:
            citation = Citation(_resolve_inlines(citation.children, table), citation.span)
        return dataclasses.replace(
            block, children=_resolve_inlines(block.children, table), citation=citation
        )
    if isinstance(block, ListBlock):
        return _resolve_list(block, table)
    return block


def _resolve_paragraph(para: Paragraph, table: ReferenceTable) -> Paragraph:
    lines = tuple(Line(_resolve_inlines(ln.children, table), ln.span) for ln in para.lines)
    return dataclasses.replace(para, lines=lines)


def _resolve_list(lst: ListBlock, table: ReferenceTable) -> ListBlock:
    items = tuple(
        ListItem(
            _resolve_inlines(item.children, table),
            tuple(_resolve_list(sub, table) for sub in item.sublists),
            item.span,
        )
        for item in lst.items
    )
    return dataclasses.replace(lst, items=items)


def _resolve_inlines(nodes: tuple[Inline, ...], table: ReferenceTable) -> tuple[Inline, ...]:
    return tuple(_resolve_inline(n, table) for n in nodes)


def _resolve_inline(node: Inline, table: ReferenceTable) -> Inline:
    match node:
        case Selector(key=key):
            entry = table.get(key)
            target = entry.target if entry is not None else None
            return dataclasses.replace(node, target=target)
        case Emphasis() | Link() | FunctionSpan() | Citation():
            return dataclasses.replace(node, children=_resolve_inlines(node.children, table))
        case _:
            return node
