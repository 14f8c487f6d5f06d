"""Aggregate attributed sales into the agent leaderboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from salesrank.models import AgentRanking, SaleRecord

logger = logging.getLogger(__name__)


@dataclass
class _AgentGroup:
    agent_name: str
    agency_name: str
    example_address: str
    example_url: str
    pcts: List[float] = field(default_factory=list)
    most_recent: Optional[str] = None

    def add(self, record: SaleRecord) -> None:
        self.pcts.append(record.over_valuation_pct)
        if record.sold_date and (self.most_recent is None or record.sold_date > self.most_recent):
            self.most_recent = record.sold_date

    def to_ranking(self) -> AgentRanking:
        return AgentRanking(
            agent_name=self.agent_name,
            agency_name=self.agency_name,
            sales_count=len(self.pcts),
            avg_over_valuation_pct=round(sum(self.pcts) / len(self.pcts), 2),
            max_over_valuation_pct=round(max(self.pcts), 2),
            most_recent_sale_date=self.most_recent,
            example_address=self.example_address,
            example_url=self.example_url,
        )


def group_by_agent(records: Iterable[SaleRecord]) -> List[_AgentGroup]:
    """Credit each named agent once per record, keyed on (name lowercased, agency)."""

    groups: Dict[Tuple[str, str], _AgentGroup] = {}
    for record in records:
        credited = set()
        for name in record.agent_names:
            key = (name.strip().lower(), record.agency_name)
            if not key[0] or key in credited:
                continue
            credited.add(key)
            group = groups.get(key)
            if group is None:
                group = groups[key] = _AgentGroup(
                    agent_name=name.strip(),
                    agency_name=record.agency_name,
                    example_address=record.address,
                    example_url=record.source_url,
                )
            group.add(record)
    return list(groups.values())


def sort_rankings(rankings: List[AgentRanking]) -> List[AgentRanking]:
    """Mean over-valuation desc, then sales count desc, then most recent sale desc."""

    by_recency = sorted(rankings, key=lambda row: row.most_recent_sale_date or "", reverse=True)
    return sorted(by_recency, key=lambda row: (-row.avg_over_valuation_pct, -row.sales_count))


def rank_agents(records: Iterable[SaleRecord], min_sales: int = 2) -> Tuple[List[AgentRanking], List[str]]:
    """Build the leaderboard, relaxing ``min_sales`` to 1 when nobody qualifies."""

    warnings: List[str] = []
    rankings = [group.to_ranking() for group in group_by_agent(records)]
    if not rankings:
        return [], warnings

    qualifying = [row for row in rankings if row.sales_count >= min_sales]
    if not qualifying and min_sales > 1:
        logger.info("No agent has %d or more sales; relaxing the threshold to 1", min_sales)
        warnings.append(
            f"No agent had at least {min_sales} attributed sales; showing agents with 1 or more sales instead."
        )
        qualifying = rankings
    return sort_rankings(qualifying), warnings
