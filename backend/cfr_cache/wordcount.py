"""Word counting over eCFR XML markup.

A tag-stripping heuristic, not an XML parser. Attribute assignments are
removed first so quoted values containing ``>`` cannot end a tag early.
"""
from __future__ import annotations

import re

_ATTRIBUTE_RE = re.compile(r"""\s+\w+\s*=\s*"[^"]*"|\s+\w+\s*=\s*'[^']*'""")
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_markup(markup: str) -> str:
    """Return the text of `markup` with tags removed and whitespace collapsed."""
    text = _ATTRIBUTE_RE.sub("", markup)
    text = _TAG_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def count_words(markup: str) -> int:
    text = strip_markup(markup)
    if not text:
        return 0
    return len([token for token in text.split(" ") if token])
