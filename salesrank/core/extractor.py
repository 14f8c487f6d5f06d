"""Run the fact parsers over one sold-property profile page."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from salesrank.core.fetcher import FetchResult, PageFetcher
from salesrank.core.parsers import (
    MIN_PLAUSIBLE_AMOUNT,
    parse_features,
    parse_sold_date,
    parse_sold_price,
    parse_title,
    parse_valuation,
)
from salesrank.core.text import normalize_text

logger = logging.getLogger(__name__)


@dataclass
class PageFacts:
    """Everything the parsers could find on a page; any field may be missing."""

    address: Optional[str] = None
    sold_price: Optional[int] = None
    capital_value: Optional[int] = None
    capital_value_updated: Optional[str] = None
    sold_date: Optional[str] = None
    sold_date_raw: str = ""
    features: Dict[str, Optional[int]] = field(default_factory=dict)


def extract_page_facts(html: Optional[str], min_amount: int = MIN_PLAUSIBLE_AMOUNT) -> PageFacts:
    text = normalize_text(html)
    valuation = parse_valuation(text, min_amount)
    sold_date = parse_sold_date(text)
    return PageFacts(
        address=parse_title(html),
        sold_price=parse_sold_price(text, min_amount),
        capital_value=valuation.capital_value,
        capital_value_updated=valuation.updated,
        sold_date=sold_date.iso if sold_date else None,
        sold_date_raw=sold_date.raw if sold_date else "",
        features=parse_features(text),
    )


def fetch_record_page(fetcher: PageFetcher, url: str) -> Optional[FetchResult]:
    """Fetch a profile page, falling back to rendering only when the direct GET fails."""

    result, attempts = fetcher.fetch_first(url)
    if result is None:
        logger.warning("Giving up on record %s after %d attempt(s)", url, len(attempts))
    return result
