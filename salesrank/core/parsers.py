"""Heuristic fact extractors for loosely structured property pages.

Every parser here is a pure function over normalized text (or raw HTML for the
title lookup) and never raises: a missing fact is returned as ``None`` so that
the acceptance filters can decide whether it matters.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional

from bs4 import BeautifulSoup

from salesrank.core.text import collapse_whitespace

MIN_PLAUSIBLE_AMOUNT = 10000

MONTHS: Dict[str, int] = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}

NUMERIC_DATE_RE = re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})(?!\d)")
NAMED_DATE_RE = re.compile(r"(?<!\d)(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]{3,9})\.?,?\s+(\d{4})(?!\d)")

SUFFIX_AMOUNT_RE = re.compile(r"\$\s*(\d+(?:\.\d+)?)\s*(m(?:illion|n)?|k)\b", re.IGNORECASE)
PLAIN_AMOUNT_RE = re.compile(r"\$\s*(\d{1,3}(?:,\d{3})+|\d+)(\.\d+)?")
ANY_AMOUNT_RE = re.compile(
    r"\$\s*(?:(?P<num>\d+(?:\.\d+)?)\s*(?P<mag>m(?:illion|n)?|k)\b|(?P<plain>\d{1,3}(?:,\d{3})+|\d+)(?P<frac>\.\d+)?)",
    re.IGNORECASE,
)
_MAGNITUDES = {"m": 1_000_000, "k": 1_000}

VALUATION_LABEL_RE = re.compile(r"\b(?:capital\s+value|rateable\s+value|CV|RV)\b", re.IGNORECASE)
VALUATION_WINDOW = 40
UPDATED_RE = re.compile(
    r"\bupdated\s*:\s*(?P<value>\d{1,2}/\d{1,2}/\d{2,4}|\d{1,2}\s+[A-Za-z]{3,9}\.?\s+\d{4}|[A-Za-z]{3,9}\.?\s+\d{4})",
    re.IGNORECASE,
)
UPDATED_WINDOW = 80

SOLD_PRICE_LABEL_RE = re.compile(
    r"\b(?:sold\s+(?:for|price)|sale\s+price|last\s+sold(?:\s+for)?|sold)\b", re.IGNORECASE
)
SOLD_DATE_LABEL_RE = re.compile(r"\b(?:date\s+sold|sale\s+date|sold(?:\s+on)?)\b", re.IGNORECASE)
SOLD_PRICE_WINDOW = 60
SOLD_DATE_WINDOW = 48

_FEATURE_PATTERNS = {
    "bedrooms": re.compile(r"(?<!\d)(\d{1,2})\s*(?:bedrooms?|beds?)\b", re.IGNORECASE),
    "bathrooms": re.compile(r"(?<!\d)(\d{1,2})\s*(?:bathrooms?|baths?)\b", re.IGNORECASE),
    "carparks": re.compile(r"(?<!\d)(\d{1,2})\s*(?:car\s*parks?|car\s*spaces?|garages?|cars?)\b", re.IGNORECASE),
    "land_area_sqm": re.compile(r"\bland(?:\s+area)?\s*:?\s*(\d[\d,]*)\s*(?:m2|m²|sqm)", re.IGNORECASE),
    "floor_area_sqm": re.compile(r"\bfloor(?:\s+area)?\s*:?\s*(\d[\d,]*)\s*(?:m2|m²|sqm)", re.IGNORECASE),
}


class DateMatch(NamedTuple):
    iso: str
    raw: str
    start: int


@dataclass(frozen=True)
class Valuation:
    capital_value: Optional[int] = None
    updated: Optional[str] = None


def _iso(year: int, month: int, day: int) -> Optional[str]:
    # Day is not checked against the month's real length.
    if not 1 <= day <= 31 or not 1 <= month <= 12:
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def find_dates(text: Optional[str]) -> List[DateMatch]:
    """Return every recognisable date in ``text``, ordered by position."""

    if not text:
        return []

    found: List[DateMatch] = []
    for match in NUMERIC_DATE_RE.finditer(text):
        day, month, year = (int(group) for group in match.groups())
        if year < 100:
            year += 2000
        iso = _iso(year, month, day)
        if iso:
            found.append(DateMatch(iso, match.group(0), match.start()))

    for match in NAMED_DATE_RE.finditer(text):
        month = MONTHS.get(match.group(2).lower().rstrip("."))
        if month is None:
            continue
        iso = _iso(int(match.group(3)), month, int(match.group(1)))
        if iso:
            found.append(DateMatch(iso, match.group(0), match.start()))

    found.sort(key=lambda item: item.start)
    return found


def match_date(text: Optional[str]) -> Optional[DateMatch]:
    dates = find_dates(text)
    return dates[0] if dates else None


def parse_date(text: Optional[str]) -> Optional[str]:
    """Return the first date in ``text`` as ``YYYY-MM-DD`` or ``None``."""

    found = match_date(text)
    return found.iso if found else None


def _plausible(value: float, min_amount: Optional[int]) -> Optional[int]:
    if not math.isfinite(value):
        return None
    amount = int(round(value))
    if amount <= 0:
        return None
    if min_amount and amount < min_amount:
        return None
    return amount


def parse_currency(text: Optional[str], min_amount: Optional[int] = MIN_PLAUSIBLE_AMOUNT) -> Optional[int]:
    """Parse ``$1.65M``, ``$650k`` or ``$1,875,000`` style amounts into whole dollars."""

    if not text:
        return None
    text = text.strip()
    suffixed = SUFFIX_AMOUNT_RE.search(text)
    if suffixed:
        value = float(suffixed.group(1)) * _MAGNITUDES[suffixed.group(2)[0].lower()]
        return _plausible(value, min_amount)

    plain = PLAIN_AMOUNT_RE.search(text)
    if plain:
        value = float(plain.group(1).replace(",", "") + (plain.group(2) or ""))
        return _plausible(value, min_amount)

    return None


def _amount_value(match: re.Match, min_amount: Optional[int]) -> Optional[int]:
    if match.group("num"):
        value = float(match.group("num")) * _MAGNITUDES[match.group("mag")[0].lower()]
    else:
        value = float(match.group("plain").replace(",", "") + (match.group("frac") or ""))
    return _plausible(value, min_amount)


def find_amounts(text: Optional[str], min_amount: Optional[int] = MIN_PLAUSIBLE_AMOUNT) -> List[int]:
    """Return every plausible amount in ``text`` in reading order."""

    if not text:
        return []
    amounts: List[int] = []
    for match in ANY_AMOUNT_RE.finditer(text):
        amount = _amount_value(match, min_amount)
        if amount is not None:
            amounts.append(amount)
    return amounts


def _amount_starting_in(text: str, start: int, end: int, min_amount: Optional[int]) -> Optional[int]:
    """First plausible amount whose ``$`` lies in ``text[start:end]``; its digits may run past ``end``."""

    for match in ANY_AMOUNT_RE.finditer(text, start):
        if match.start() >= end:
            break
        amount = _amount_value(match, min_amount)
        if amount is not None:
            return amount
    return None


def parse_title(html: Optional[str]) -> Optional[str]:
    """Pick the page's address: ``<h1>``, then ``og:title``, then ``twitter:title``."""

    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")

    candidates: List[str] = []
    heading = soup.find("h1")
    if heading:
        candidates.append(heading.get_text(" "))
    for key in ("og:title", "twitter:title"):
        meta = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        if meta and meta.get("content"):
            candidates.append(meta["content"])

    for candidate in candidates:
        cleaned = collapse_whitespace(candidate)
        if cleaned:
            return cleaned
    return None


def parse_valuation(text: Optional[str], min_amount: Optional[int] = MIN_PLAUSIBLE_AMOUNT) -> Valuation:
    """Find the capital/rateable value and, when shown, when it was last updated."""

    if not text:
        return Valuation()

    for label in VALUATION_LABEL_RE.finditer(text):
        amount = _amount_starting_in(text, label.end(), label.end() + VALUATION_WINDOW, min_amount)
        if amount is None:
            continue
        updated = UPDATED_RE.search(text, label.end(), label.end() + UPDATED_WINDOW)
        return Valuation(
            capital_value=amount,
            updated=collapse_whitespace(updated.group("value")) if updated else None,
        )
    return Valuation()


def _window_end(text: str, start: int, size: int) -> int:
    # A valuation label marks the start of a different fact.
    boundary = VALUATION_LABEL_RE.search(text, start, start + size)
    return boundary.start() if boundary else min(len(text), start + size)


def parse_sold_price(text: Optional[str], min_amount: Optional[int] = MIN_PLAUSIBLE_AMOUNT) -> Optional[int]:
    if not text:
        return None
    for label in SOLD_PRICE_LABEL_RE.finditer(text):
        amount = _amount_starting_in(text, label.end(), _window_end(text, label.end(), SOLD_PRICE_WINDOW), min_amount)
        if amount is not None:
            return amount
    return None


def parse_sold_date(text: Optional[str]) -> Optional[DateMatch]:
    if not text:
        return None
    for label in SOLD_DATE_LABEL_RE.finditer(text):
        found = match_date(text[label.end() : _window_end(text, label.end(), SOLD_DATE_WINDOW)])
        if found:
            return found
    return None


def parse_features(text: Optional[str]) -> Dict[str, Optional[int]]:
    """Pull bedroom/bathroom/carpark counts and land/floor areas where stated."""

    features: Dict[str, Optional[int]] = {name: None for name in _FEATURE_PATTERNS}
    if not text:
        return features
    for name, pattern in _FEATURE_PATTERNS.items():
        match = pattern.search(text)
        if match:
            features[name] = int(match.group(1).replace(",", ""))
    return features
