"""Turn raw HTML into the flat text every fact parser works on."""

import re
from typing import Optional

from bs4 import BeautifulSoup

_WHITESPACE_RE = re.compile(r"\s+")
_NON_CONTENT_TAGS = ("script", "style", "noscript", "template")


def collapse_whitespace(text: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def normalize_text(html: Optional[str]) -> str:
    """Strip markup and non-content tags, returning single-spaced text."""

    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NON_CONTENT_TAGS):
        tag.decompose()
    return collapse_whitespace(soup.get_text(" "))


def contains_phrase(text: str, phrase: str) -> bool:
    """Case-insensitive literal containment on whitespace-collapsed strings."""

    needle = collapse_whitespace(phrase).lower()
    if not needle:
        return False
    return needle in collapse_whitespace(text).lower()
