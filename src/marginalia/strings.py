"""Literal text styling: dash runs, escapes, and the URL shape test."""

from __future__ import annotations

import re

EM_DASH = "—"

_DASH_RUN = re.compile(r"-{2,}")
_URL = re.compile(r"^(?:https?://|www\.)[A-Za-z0-9]+(?:\.[A-Za-z0-9]+)+(?:/.*)?$")
_SCHEME = re.compile(r"^https?://")

# A single trailing character from this set is not part of a link
TRAILING_PUNCTUATION = frozenset("!?.,;:")


def style_dashes(text: str) -> str:
    """Replace every run of N >= 2 hyphens with N - 1 em-dashes."""
    return _DASH_RUN.sub(lambda m: EM_DASH * (len(m.group()) - 1), text)


def is_escape(raw: str) -> bool:
    """Return True if raw is a backslash escape word such as ``\\*``."""
    return len(raw) == 2 and raw[0] == "\\"


def is_url(text: str) -> bool:
    """Return True if text has the strict auto-link URL shape."""
    return _URL.match(text) is not None


def split_url(text: str) -> tuple[str, str]:
    """Split one trailing punctuation character off a word: (url, suffix)."""
    if len(text) > 1 and text[-1] in TRAILING_PUNCTUATION:
        return text[:-1], text[-1]
    return text, ""


def link_href(url: str) -> str:
    """Return the href for an auto-linked URL (bare www. gets https://)."""
    if _SCHEME.match(url):
        return url
    return "https://" + url


def split_function(raw: str, separator: str = "|") -> tuple[str, tuple[str, ...]]:
    """Split the raw inner text of a [...] group into (name, args)."""
    name, *args = raw.split(separator)
    return name.strip(), tuple(arg.strip() for arg in args)
