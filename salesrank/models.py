"""Core data models shared by the sold-property ranking pipeline."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple


def over_valuation_pct(sold_price: int, capital_value: int) -> float:
    """Percentage the sale cleared the capital value by, rounded to 2 dp."""
    return round((sold_price - capital_value) / capital_value * 100, 2)


@dataclass(slots=True)
class SaleRecord:
    """One observed sale with enough facts to compare price against valuation."""

    address: str
    sold_price: int
    capital_value: int
    source_url: str
    source_kind: str = "primary"
    sold_date: Optional[str] = None
    sold_date_raw: str = ""
    capital_value_updated: Optional[str] = None
    agent_names: List[str] = field(default_factory=list)
    agency_name: str = ""
    agent_source_url: str = ""
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    carparks: Optional[int] = None
    land_area_sqm: Optional[int] = None
    floor_area_sqm: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.address or not self.address.strip():
            raise ValueError("address is required for a sale record")
        if self.sold_price <= 0 or self.capital_value <= 0:
            raise ValueError("sold_price and capital_value must be positive")

    @property
    def over_valuation_pct(self) -> float:
        return over_valuation_pct(self.sold_price, self.capital_value)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "soldDate": self.sold_date,
            "soldDateRawText": self.sold_date_raw,
            "soldPrice": self.sold_price,
            "capitalValue": self.capital_value,
            "capitalValueUpdated": self.capital_value_updated,
            "sourceUrl": self.source_url,
            "sourceKind": self.source_kind,
            "overValuationPct": self.over_valuation_pct,
            "agentNames": list(self.agent_names),
            "agencyName": self.agency_name,
            "agentSourceUrl": self.agent_source_url,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "carparks": self.carparks,
            "landAreaSqm": self.land_area_sqm,
            "floorAreaSqm": self.floor_area_sqm,
        }


@dataclass(slots=True)
class AgentRanking:
    """Leaderboard row for one agent at one agency."""

    agent_name: str
    agency_name: str
    sales_count: int
    avg_over_valuation_pct: float
    max_over_valuation_pct: float
    most_recent_sale_date: Optional[str]
    example_address: str
    example_url: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "agentName": self.agent_name,
            "agencyName": self.agency_name,
            "salesCount": self.sales_count,
            "avgOverValuationPct": self.avg_over_valuation_pct,
            "maxOverValuationPct": self.max_over_valuation_pct,
            "mostRecentSaleDate": self.most_recent_sale_date,
            "exampleAddress": self.example_address,
            "exampleUrl": self.example_url,
        }


@dataclass(frozen=True)
class RunParams:
    """Inbound request parameters for one pipeline run."""

    region: str
    suburb: str
    district: Optional[str] = None
    adjacent_suburbs: Tuple[str, ...] = ()
    rows: int = 50
    max_pages: int = 3
    window_months: int = 12
    min_records: int = 40
    min_agents_for_ranking: int = 2
    max_sources: int = 6
    agent_rows: int = 40
    debug: bool = False
    today: Optional[date] = None

    def __post_init__(self) -> None:
        if not self.region or not self.region.strip():
            raise ValueError("region is required")
        if not self.suburb or not self.suburb.strip():
            raise ValueError("suburb is required")
        for name in ("rows", "max_pages", "window_months", "max_sources"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        for name in ("min_records", "min_agents_for_ranking", "agent_rows"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")


@dataclass(slots=True)
class SourceAttempt:
    """One list page request and what it produced."""

    source_kind: str
    source_label: str
    page: int
    url: str
    links_found: int = 0
    new_links: int = 0
    strategy: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PipelineRun:
    """Per-request bookkeeping: drop tallies, attempt logs and warnings."""

    params: RunParams
    cutoff: str = ""
    drops: Counter = field(default_factory=Counter)
    source_attempts: List[SourceAttempt] = field(default_factory=list)
    attribution_log: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def drop(self, reason: str) -> None:
        self.drops[reason] += 1

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    @property
    def sources_tried(self) -> int:
        return len({attempt.source_label for attempt in self.source_attempts})

    def source_summary(self) -> List[Dict[str, Any]]:
        """Collapse the attempt log into per-source page and link counts."""
        summary: Dict[str, Dict[str, Any]] = {}
        for attempt in self.source_attempts:
            entry = summary.setdefault(
                attempt.source_label,
                {"source": attempt.source_label, "kind": attempt.source_kind, "pages": 0, "links": 0, "errors": 0},
            )
            entry["pages"] += 1
            entry["links"] += attempt.new_links
            if attempt.error:
                entry["errors"] += 1
        return list(summary.values())
