"""Marginalia markup language compiler."""

from __future__ import annotations

__version__ = "0.1.0"


def compile(
    source: str,
    filename: str = "input.marg",
    *,
    fragment: bool = False,
    max_depth: int | None = None,
) -> str:
    """Parse, resolve references, and render Marginalia source to HTML."""
    from marginalia.parser import DEFAULT_MAX_DEPTH, parse
    from marginalia.refs import resolve
    from marginalia.render import render, render_fragment

    result = parse(
        source, filename, max_depth=DEFAULT_MAX_DEPTH if max_depth is None else max_depth
    )
    doc = resolve(result.document, result.references)
    if fragment:
        return render_fragment(doc)
    return render(doc)
