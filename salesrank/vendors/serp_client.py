"""SerpAPI Google web search helpers used for agent attribution."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from serpapi import GoogleSearch

from salesrank.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_RESULTS = 10


def build_search_params(query: str, api_key: str, num: int = DEFAULT_RESULTS) -> Dict[str, Any]:
    """Construct SerpAPI request parameters for the Google web engine."""
    if not query or not query.strip():
        raise ValueError("Query must be provided for SerpAPI lookups.")

    return {
        "engine": "google",
        "q": query.strip(),
        "api_key": api_key,
        "num": num,
        "gl": "nz",
        "hl": "en",
    }


def parse_organic_links(data: Optional[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Reduce a SerpAPI payload to ``[{"link": ...}]`` in rank order."""
    if not data:
        return []

    items = data.get("organic_results")
    if not isinstance(items, list):
        logger.debug("SerpAPI response missing organic_results. keys=%s", list(data.keys())[:10])
        return []

    links: List[Dict[str, str]] = []
    for raw in items:
        if not isinstance(raw, dict):
            continue
        link = str(raw.get("link") or "").strip()
        if link:
            links.append({"link": link})
    return links


class SerpSearchClient:
    """Callable search capability: ``client(query) -> [{"link": ...}]``.

    Missing credentials or a failed call yield an empty list; attribution then
    records the sale as not found instead of aborting the run.
    """

    def __init__(self, settings: Settings, num: int = DEFAULT_RESULTS) -> None:
        self.api_key = settings.serpapi_api_key
        self.num = num
        if not self.api_key:
            logger.warning("SERPAPI_API_KEY missing; agent searches will return no results.")

    def __call__(self, query: str) -> List[Dict[str, str]]:
        if not self.api_key:
            return []
        try:
            logger.info("Calling SerpAPI for query=%s", query)
            data = GoogleSearch(build_search_params(query, self.api_key, self.num)).get_dict()
        except Exception as exc:  # noqa: BLE001
            logger.warning("SerpAPI request failed for query=%s: %s", query, exc)
            return []

        if data and "error" in data:
            logger.warning("SerpAPI returned an error response for query=%s: %s", query, data.get("error"))
            return []
        return parse_organic_links(data)
