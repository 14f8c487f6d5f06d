"""Acceptance filters: required facts, recency window and address dedup."""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Optional, Set, Tuple

from salesrank.core.extractor import PageFacts
from salesrank.core.text import collapse_whitespace
from salesrank.models import SaleRecord

logger = logging.getLogger(__name__)

NO_PRICE = "no_price"
NO_CV = "no_cv"
PARSE_FAIL_DATE = "parse_fail_date"
OUTSIDE_WINDOW = "outside_window"
DUP_ADDRESS = "dup_address"


def recency_cutoff(today: date, months: int) -> str:
    """ISO date ``months`` calendar months before ``today``, day clamped to month length."""

    index = today.year * 12 + (today.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(today.day, calendar.monthrange(year, month)[1])
    return date(year, month, day).isoformat()


class RecordFilter:
    """Turns page facts into sale records, remembering addresses already accepted."""

    def __init__(self, cutoff: str) -> None:
        self.cutoff = cutoff
        self._seen_addresses: Set[str] = set()

    def admit(self, facts: PageFacts, url: str, source_kind: str) -> Tuple[Optional[SaleRecord], Optional[str]]:
        """Return ``(record, None)`` on acceptance or ``(None, reason)`` on rejection.

        A page without an address is unidentifiable and comes back as
        ``(None, None)``: skipped without being counted.
        """

        if not facts.sold_price:
            return None, NO_PRICE
        if not facts.capital_value:
            return None, NO_CV
        if not facts.sold_date:
            return None, PARSE_FAIL_DATE
        # ISO strings compare in calendar order.
        if facts.sold_date < self.cutoff:
            return None, OUTSIDE_WINDOW

        address = collapse_whitespace(facts.address)
        if not address:
            logger.debug("Skipping %s: no address on page", url)
            return None, None
        key = address.lower()
        if key in self._seen_addresses:
            return None, DUP_ADDRESS
        self._seen_addresses.add(key)

        features = facts.features or {}
        record = SaleRecord(
            address=address,
            sold_price=facts.sold_price,
            capital_value=facts.capital_value,
            source_url=url,
            source_kind=source_kind,
            sold_date=facts.sold_date,
            sold_date_raw=facts.sold_date_raw,
            capital_value_updated=facts.capital_value_updated,
            bedrooms=features.get("bedrooms"),
            bathrooms=features.get("bathrooms"),
            carparks=features.get("carparks"),
            land_area_sqm=features.get("land_area_sqm"),
            floor_area_sqm=features.get("floor_area_sqm"),
        )
        return record, None
