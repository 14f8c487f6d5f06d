"""Attribute sales to agents by searching agency and portal sites for the address.

A candidate page only counts when it literally mentions the sale's address and
names both an agency and an agent. How much more corroboration is needed is
decided by an ordered list of confidence tiers; the first tier a candidate
satisfies is recorded with the attribution.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set
from urllib.parse import urlparse

from salesrank.core.config import Settings
from salesrank.core.fetcher import FetchError, PageFetcher
from salesrank.core.parsers import find_amounts, find_dates
from salesrank.core.text import contains_phrase, normalize_text
from salesrank.models import PipelineRun, SaleRecord

logger = logging.getLogger(__name__)

SearchFn = Callable[[str], Sequence[Mapping[str, str]]]

AGENT_NOT_FOUND = "agent_not_found"
MAX_STORED_AGENTS = 3

_NAME_WORD = r"[A-Z][a-zA-Z'\-]*[a-z]"
_FULL_NAME = rf"{_NAME_WORD}\s+{_NAME_WORD}"
LABELLED_AGENT_RE = re.compile(
    rf"(?i:\b(?:listing\s+agents?|agents?|sold\s+by|listed\s+by|marketed\s+by|by))\s*:?\s*"
    rf"(?P<names>{_FULL_NAME}(?:\s*(?:,|&|\band\b)\s*{_FULL_NAME})*)"
)
NAME_SPLIT_RE = re.compile(r"\s*(?:,|&|\band\b)\s*")
GENERIC_NAME_RE = re.compile(rf"\b(?=({_NAME_WORD})\s+({_NAME_WORD})\b)")
SOLD_MARKER_RE = re.compile(r"\bsold\b", re.IGNORECASE)

NAME_STOPWORDS = frozenset(
    """
    about agency agent agents all and apartment area auction auckland avenue ave bathroom bathrooms bay bedroom
    bedrooms beach buy call capital central city close contact copyright crescent date days deadline description
    details drive email estate features floor for heights hill home homes house island land lane latest licensed
    limited listed listing listings ltd map marketed menu mobile more new news north office offers open our over
    page park phone place policy price privacy properties property rateable read real recently rent road sale sales
    search sell share similar sold south st street team tender terms terrace the under updated valley value view
    wellington west east christchurch zealand
    january february march april may june july august september october november december
    jan feb mar apr jun jul aug sep sept oct nov dec
    monday tuesday wednesday thursday friday saturday sunday
    """.split()
)


@dataclass(frozen=True)
class ConfidenceTier:
    """A named predicate set: every ``required`` flag, plus one of ``any_of`` if given."""

    name: str
    required: Sequence[str]
    any_of: Sequence[str] = ()

    def is_satisfied(self, flags: Mapping[str, bool]) -> bool:
        if not all(flags.get(flag) for flag in self.required):
            return False
        return not self.any_of or any(flags.get(flag) for flag in self.any_of)


TIER_A = ConfidenceTier("A", required=("agency", "agent", "price_match", "date_match"))
TIER_B = ConfidenceTier("B", required=("agency", "agent"), any_of=("price_match", "date_match", "sold_marker"))
DEFAULT_TIERS = (TIER_A, TIER_B)


def classify_evidence(flags: Mapping[str, bool], tiers: Sequence[ConfidenceTier] = DEFAULT_TIERS) -> Optional[str]:
    for tier in tiers:
        if tier.is_satisfied(flags):
            return tier.name
    return None


@dataclass
class CandidateEvidence:
    url: str
    agency: Optional[str]
    agent_names: List[str]
    price_match: bool
    date_match: bool
    sold_marker: bool

    def flags(self) -> Dict[str, bool]:
        return {
            "agency": bool(self.agency),
            "agent": bool(self.agent_names),
            "price_match": self.price_match,
            "date_match": self.date_match,
            "sold_marker": self.sold_marker,
        }


@dataclass
class Attribution:
    agent_names: List[str]
    agency_name: str
    source_url: str
    tier: str


@dataclass
class AttributionOutcome:
    attribution: Optional[Attribution] = None
    log: List[str] = field(default_factory=list)
    failed_fetches: int = 0


def build_agent_queries(address: str, settings: Settings) -> List[str]:
    """Brand-scoped exact-address queries first, then portal queries, capped."""

    quoted = '"{}"'.format(address.replace('"', ""))
    queries = [f"site:{domain} {quoted}" for domain in settings.agency_domains]
    queries.extend(f"site:{portal} {quoted} sold" for portal in settings.portal_domains)
    return queries[: settings.max_queries_per_address]


def _host_matches(host: str, domains: Iterable[str]) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in domains)


def is_candidate_link(link: str, settings: Settings) -> bool:
    parsed = urlparse(link or "")
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return False
    host = parsed.netloc.lower().split(":")[0]
    if _host_matches(host, settings.blocked_hosts):
        return False
    return _host_matches(host, settings.allowed_hosts)


def _brand_pattern(brands: Sequence[str]) -> re.Pattern:
    alternatives = "|".join(re.escape(brand) for brand in sorted(brands, key=len, reverse=True))
    return re.compile(rf"\b(?P<brand>{alternatives})(?:\s*\((?P<branch>[^()]{{2,40}})\))?", re.IGNORECASE)


def extract_agency(text: str, brands: Sequence[str]) -> Optional[str]:
    """First known agency brand on the page, keeping a ``(Branch)`` suffix if present."""

    if not text or not brands:
        return None
    match = _brand_pattern(brands).search(text)
    if not match:
        return None
    canonical = {brand.lower(): brand for brand in brands}
    name = canonical.get(match.group("brand").lower(), match.group("brand"))
    branch = match.group("branch")
    return f"{name} ({branch.strip()})" if branch else name


def _plausible_name(name: str, address_words: Set[str]) -> bool:
    words = [word.lower() for word in name.split()]
    if len(words) != 2 or any(word in NAME_STOPWORDS for word in words):
        return False
    # A pair made only of address words is a street or suburb, not a person.
    return not all(word in address_words for word in words)


def extract_agent_names(
    text: str,
    *,
    brands: Sequence[str] = (),
    address: str = "",
    limit: int = 6,
) -> List[str]:
    """Labelled agent names first, then any other two-capitalised-word names.

    Agency brands and the address itself are blanked out first so neither can
    be mistaken for a person.
    """

    if not text:
        return []

    scrubbed = text
    for phrase in sorted(list(brands) + [address], key=len, reverse=True):
        if phrase.strip():
            scrubbed = re.sub(re.escape(phrase.strip()), " | ", scrubbed, flags=re.IGNORECASE)
    address_words = set(re.findall(r"[a-z]+", address.lower()))

    candidates: List[str] = []
    for match in LABELLED_AGENT_RE.finditer(scrubbed):
        candidates.extend(NAME_SPLIT_RE.split(match.group("names")))
    candidates.extend(f"{first} {last}" for first, last in GENERIC_NAME_RE.findall(scrubbed))

    names: List[str] = []
    seen: Set[str] = set()
    for candidate in candidates:
        name = " ".join(candidate.split())
        key = name.lower()
        if key in seen or not _plausible_name(name, address_words):
            continue
        seen.add(key)
        names.append(name)
        if len(names) >= limit:
            break
    return names


def _lenient_ordinal(iso: str) -> Optional[int]:
    # Parsed dates may carry a day past the month's end; roll it forward.
    try:
        year, month, day = (int(part) for part in iso.split("-"))
        return date(year, month, 1).toordinal() + day - 1
    except (TypeError, ValueError):
        return None


def price_within(amounts: Iterable[int], target: int, tolerance_pct: float) -> bool:
    allowed = target * tolerance_pct / 100
    return any(abs(amount - target) <= allowed for amount in amounts)


def date_within(dates: Iterable[str], target: Optional[str], tolerance_days: int) -> bool:
    if not target:
        return False
    anchor = _lenient_ordinal(target)
    if anchor is None:
        return False
    for iso in dates:
        ordinal = _lenient_ordinal(iso)
        if ordinal is not None and abs(ordinal - anchor) <= tolerance_days:
            return True
    return False


class AgentAttributor:
    """Search, fetch and validate candidate pages until one names the selling agent."""

    def __init__(
        self,
        fetcher: PageFetcher,
        search: SearchFn,
        settings: Settings,
        tiers: Sequence[ConfidenceTier] = DEFAULT_TIERS,
    ) -> None:
        self.fetcher = fetcher
        self.search = search
        self.settings = settings
        self.tiers = tiers

    def gather_evidence(self, record: SaleRecord, url: str, text: str) -> CandidateEvidence:
        settings = self.settings
        return CandidateEvidence(
            url=url,
            agency=extract_agency(text, settings.agency_brands),
            agent_names=extract_agent_names(
                text,
                brands=settings.agency_brands,
                address=record.address,
                limit=settings.max_agent_names,
            ),
            price_match=price_within(
                find_amounts(text, settings.min_plausible_amount), record.sold_price, settings.price_tolerance_pct
            ),
            date_match=date_within(
                (found.iso for found in find_dates(text)), record.sold_date, settings.date_tolerance_days
            ),
            sold_marker=bool(SOLD_MARKER_RE.search(text)),
        )

    def _search_links(self, query: str, seen: Set[str], outcome: AttributionOutcome) -> List[str]:
        try:
            results = self.search(query) or []
        except Exception as exc:  # noqa: BLE001
            logger.warning("Agent search failed for query=%s: %s", query, exc)
            outcome.log.append(f"search failed: {query}")
            return []

        links: List[str] = []
        for result in results:
            link = (result.get("link") or "").strip()
            if not link or link in seen or not is_candidate_link(link, self.settings):
                continue
            seen.add(link)
            links.append(link)
            if len(links) >= self.settings.max_links_per_query:
                break
        return links

    def attribute(self, record: SaleRecord) -> AttributionOutcome:
        outcome = AttributionOutcome()
        seen: Set[str] = set()

        for query in build_agent_queries(record.address, self.settings):
            links = self._search_links(query, seen, outcome)
            outcome.log.append(f"{record.address} | {query} -> {len(links)} candidate(s)")

            for link in links:
                try:
                    page = self.fetcher.fetch(link)
                except FetchError as exc:
                    logger.warning("Candidate fetch failed for %s: %s", link, exc)
                    outcome.failed_fetches += 1
                    continue

                text = normalize_text(page.html)
                if not contains_phrase(text, record.address):
                    outcome.log.append(f"{record.address} | skip {link}: address not on page")
                    continue

                evidence = self.gather_evidence(record, link, text)
                tier = classify_evidence(evidence.flags(), self.tiers)
                if tier is None:
                    outcome.log.append(f"{record.address} | reject {link}: {evidence.flags()}")
                    continue

                outcome.attribution = Attribution(
                    agent_names=evidence.agent_names[:MAX_STORED_AGENTS],
                    agency_name=evidence.agency or "",
                    source_url=link,
                    tier=tier,
                )
                outcome.log.append(
                    f"{record.address} | tier {tier} match {link}: {', '.join(outcome.attribution.agent_names)}"
                    f" @ {outcome.attribution.agency_name}"
                )
                return outcome

        outcome.log.append(f"{record.address} | no agent found")
        return outcome

    def attribute_all(self, records: Sequence[SaleRecord], run: PipelineRun, max_workers: int = 4) -> int:
        """Attribute each record independently; results are applied in record order."""

        if not records:
            return 0
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(records)))) as pool:
            outcomes = list(pool.map(self.attribute, records))

        attributed = 0
        for record, outcome in zip(records, outcomes):
            run.attribution_log.extend(outcome.log)
            if outcome.failed_fetches:
                run.drops["candidate_fetch_fail"] += outcome.failed_fetches
            if outcome.attribution is None:
                run.drop(AGENT_NOT_FOUND)
                continue
            record.agent_names = list(outcome.attribution.agent_names)
            record.agency_name = outcome.attribution.agency_name
            record.agent_source_url = outcome.attribution.source_url
            attributed += 1
        logger.info("Attributed %d of %d sale(s) to an agent", attributed, len(records))
        return attributed
