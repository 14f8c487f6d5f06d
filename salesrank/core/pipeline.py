"""Single entry point: discover sold listings, extract sales, attribute agents, rank."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Dict, List, Optional

from salesrank.core.attribution import AgentAttributor, SearchFn
from salesrank.core.config import Settings, get_settings
from salesrank.core.discovery import ListDiscoverer
from salesrank.core.extractor import extract_page_facts, fetch_record_page
from salesrank.core.fetcher import FetchResult, PageFetcher, RendererUnavailableError
from salesrank.core.filters import RecordFilter, recency_cutoff
from salesrank.core.ranking import rank_agents
from salesrank.models import AgentRanking, PipelineRun, RunParams, SaleRecord
from salesrank.vendors.serp_client import SerpSearchClient

logger = logging.getLogger(__name__)

ATTRIBUTION_LOG_TAIL = 50


def collect_records(
    params: RunParams,
    run: PipelineRun,
    fetcher: PageFetcher,
    settings: Settings,
) -> List[SaleRecord]:
    """Walk list pages until ``params.min_records`` sales are accepted or sources run out."""

    discoverer = ListDiscoverer(fetcher, settings)
    record_filter = RecordFilter(run.cutoff)
    records: List[SaleRecord] = []

    with ThreadPoolExecutor(max_workers=settings.fetch_workers) as pool:
        for source, page, links in discoverer.iter_pages(params, run):
            pages: List[Optional[FetchResult]] = list(pool.map(lambda url: fetch_record_page(fetcher, url), links))
            for url, result in zip(links, pages):
                if result is None:
                    run.drop("fetch_fail")
                    continue
                facts = extract_page_facts(result.html, settings.min_plausible_amount)
                record, reason = record_filter.admit(facts, url, source.kind)
                if reason:
                    run.drop(reason)
                    logger.debug("Dropped %s: %s", url, reason)
                if record is not None:
                    records.append(record)

            logger.info("After %s page %d: %d sale(s) accepted", source.label, page, len(records))
            if params.min_records and len(records) >= params.min_records:
                break

    if params.min_records and len(records) < params.min_records:
        run.warn(
            f"Only {len(records)} recent sale(s) found (target {params.min_records}) "
            f"after trying {run.sources_tried} source(s)."
        )
    return records


def build_payload(
    run: PipelineRun,
    records: List[SaleRecord],
    rankings: List[AgentRanking],
    error: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "agentRankings": [row.to_payload() for row in rankings],
        "properties": [record.to_payload() for record in records],
    }
    if run.warnings:
        payload["warning"] = " ".join(run.warnings)
    if error:
        payload["error"] = error
    if run.params.debug:
        payload["debug"] = {
            "cutoff": run.cutoff,
            "sourcesTried": run.sources_tried,
            "sourceAttempts": run.source_summary(),
            "pageAttempts": [
                {
                    "source": attempt.source_label,
                    "page": attempt.page,
                    "url": attempt.url,
                    "strategy": attempt.strategy,
                    "links": attempt.links_found,
                    "newLinks": attempt.new_links,
                    "error": attempt.error,
                }
                for attempt in run.source_attempts
            ],
            "dropReasons": dict(run.drops),
            "attributionLog": run.attribution_log[-ATTRIBUTION_LOG_TAIL:],
        }
    return payload


def run_pipeline(
    params: RunParams,
    settings: Optional[Settings] = None,
    *,
    fetcher: Optional[PageFetcher] = None,
    search: Optional[SearchFn] = None,
) -> Dict[str, Any]:
    """Run one stateless ranking request and return the response payload."""

    settings = settings or get_settings()
    owns_fetcher = fetcher is None
    fetcher = fetcher or PageFetcher(settings)
    search = search or SerpSearchClient(settings)

    run = PipelineRun(params=params)
    run.cutoff = recency_cutoff(params.today or date.today(), params.window_months)
    logger.info(
        "Ranking agents for region=%s suburb=%s district=%s cutoff=%s",
        params.region,
        params.suburb,
        params.district,
        run.cutoff,
    )

    try:
        records = collect_records(params, run, fetcher, settings)

        attributor = AgentAttributor(fetcher, search, settings)
        attributor.attribute_all(records[: params.agent_rows], run, max_workers=settings.fetch_workers)

        rankings, ranking_warnings = rank_agents(records, params.min_agents_for_ranking)
        for message in ranking_warnings:
            run.warn(message)
    except RendererUnavailableError as exc:
        logger.error("Renderer unavailable; aborting run: %s", exc)
        return build_payload(run, [], [], error=f"Page renderer unavailable: {exc}")
    finally:
        if owns_fetcher:
            fetcher.close()

    if not records:
        run.warn("No recent sales with both a sale price and a capital value were found.")
    elif not rankings:
        run.warn("No sales could be attributed to an agent.")

    logger.info(
        "Run complete: %d sale(s), %d ranked agent(s), drops=%s",
        len(records),
        len(rankings),
        dict(run.drops),
    )
    return build_payload(run, records, rankings)
