from datetime import date

import pytest

from salesrank.core import filters
from salesrank.core.extractor import PageFacts, extract_page_facts


def _facts(**overrides):
    values = {
        "address": "1 Alpha Street, Ponsonby",
        "sold_price": 1_200_000,
        "capital_value": 1_000_000,
        "sold_date": "2025-09-10",
        "sold_date_raw": "10 Sep 2025",
        "features": {"bedrooms": 3},
    }
    values.update(overrides)
    return PageFacts(**values)


@pytest.mark.parametrize(
    "today, months, expected",
    [
        (date(2025, 10, 15), 12, "2024-10-15"),
        (date(2025, 1, 15), 1, "2024-12-15"),
        (date(2025, 3, 31), 1, "2025-02-28"),
        (date(2024, 3, 31), 1, "2024-02-29"),
        (date(2025, 8, 31), 18, "2024-02-29"),
    ],
)
def test_recency_cutoff_clamps_day(today, months, expected):
    assert filters.recency_cutoff(today, months) == expected


@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"sold_price": None}, filters.NO_PRICE),
        ({"sold_price": None, "capital_value": None}, filters.NO_PRICE),
        ({"capital_value": None}, filters.NO_CV),
        ({"sold_date": None}, filters.PARSE_FAIL_DATE),
        ({"sold_date": "2024-10-14"}, filters.OUTSIDE_WINDOW),
    ],
)
def test_admit_reports_first_failing_check(overrides, reason):
    record_filter = filters.RecordFilter("2024-10-15")
    assert record_filter.admit(_facts(**overrides), "https://x/p", "primary") == (None, reason)


def test_admit_builds_record_and_dedupes_addresses():
    record_filter = filters.RecordFilter("2024-10-15")

    record, reason = record_filter.admit(_facts(sold_date="2024-10-15"), "https://x/p1", "adjacent")
    duplicate = record_filter.admit(_facts(address="1 ALPHA  street, ponsonby"), "https://x/p2", "primary")

    assert reason is None
    assert record.source_url == "https://x/p1"
    assert record.source_kind == "adjacent"
    assert record.bedrooms == 3
    assert record.over_valuation_pct == 20.0
    assert duplicate == (None, filters.DUP_ADDRESS)


def test_admit_skips_pages_without_address_silently():
    record_filter = filters.RecordFilter("2024-10-15")
    assert record_filter.admit(_facts(address="  "), "https://x/p", "primary") == (None, None)


def test_extract_page_facts_reads_a_profile_page():
    html = """
    <html><body>
      <h1>6 Delta Place, Herne Bay</h1>
      <p>Sold on 20 Sep 2025</p><p>Sold price $1.65M</p>
      <p>CV: $1,500,000</p><p>2 bedrooms 1 bathroom</p>
    </body></html>
    """

    facts = extract_page_facts(html)

    assert facts.address == "6 Delta Place, Herne Bay"
    assert facts.sold_price == 1_650_000
    assert facts.capital_value == 1_500_000
    assert facts.sold_date == "2025-09-20"
    assert facts.sold_date_raw == "20 Sep 2025"
    assert facts.features["bedrooms"] == 2
    assert facts.features["bathrooms"] == 1


def test_twelve_month_window_and_case_insensitive_dedup():
    record_filter = filters.RecordFilter(filters.recency_cutoff(date(2025, 10, 15), 12))

    stale = record_filter.admit(_facts(address="12 Smith St", sold_date="2024-09-15"), "https://x/old", "primary")
    kept, _ = record_filter.admit(_facts(address="12 Smith St", sold_date="2025-09-15"), "https://x/a", "primary")
    repeat = record_filter.admit(_facts(address="12 smith st", sold_date="2025-09-20"), "https://x/b", "primary")

    assert stale == (None, filters.OUTSIDE_WINDOW)
    assert kept.address == "12 Smith St"
    assert repeat == (None, filters.DUP_ADDRESS)
