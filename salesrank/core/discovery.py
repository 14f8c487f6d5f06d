"""Build sold-list source URLs for an area and pull profile links out of list pages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Set, Tuple
from urllib.parse import urlencode, urlparse

from bs4 import BeautifulSoup

from salesrank.core.config import Settings
from salesrank.core.fetcher import FetchResult, PageFetcher
from salesrank.models import PipelineRun, RunParams, SourceAttempt

logger = logging.getLogger(__name__)

PRIMARY = "primary"
DISTRICT = "district"
BROAD = "broad"
ADJACENT = "adjacent"

_PROFILE_ID = r"[A-Za-z0-9][A-Za-z0-9_-]*"


@dataclass(frozen=True)
class Source:
    kind: str
    parent: str
    child: str

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.parent}/{self.child}"


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")


def build_sources(params: RunParams) -> List[Source]:
    """Primary, district fallback, broad fallback, then one source per adjacent suburb."""

    region = slugify(params.region)
    suburb = slugify(params.suburb)
    district = slugify(params.district) if params.district else ""

    candidates = [Source(PRIMARY, region, suburb)]
    if district:
        candidates.append(Source(DISTRICT, district, suburb))
        candidates.append(Source(BROAD, region, district))
    for neighbour in params.adjacent_suburbs:
        slug = slugify(neighbour)
        if slug:
            candidates.append(Source(ADJACENT, region, slug))

    sources: List[Source] = []
    seen: Set[Tuple[str, str]] = set()
    for source in candidates:
        key = (source.parent, source.child)
        if key in seen:
            continue
        seen.add(key)
        sources.append(source)
    return sources


def source_page_url(source: Source, page: int, rows: int, settings: Settings) -> str:
    path = settings.list_path_template.format(parent=source.parent, child=source.child)
    return f"{settings.list_origin}{path}?{urlencode({'rows': rows, 'page': page})}"


def _profile_patterns(origin: str, prefix: str) -> Tuple[re.Pattern, re.Pattern]:
    host = re.escape(urlparse(origin).netloc.lower().removeprefix("www."))
    path = re.escape(prefix)
    markup = re.compile(
        rf"""(?:https?://(?:www\.)?{host}|href\s*=\s*["'])({path}{_PROFILE_ID})""",
        re.IGNORECASE,
    )
    # Inline JSON may write "/" as "\/" or "\u002F".
    escaped_path = r"(?:\\/|\\u002[fF]|/)".join(re.escape(part) for part in prefix.split("/"))
    escaped = re.compile(rf"({escaped_path}{_PROFILE_ID})")
    return markup, escaped


def _unescape_path(raw: str) -> str:
    return raw.replace("\\/", "/").replace("\\u002F", "/").replace("\\u002f", "/")


def extract_profile_links(html: Optional[str], origin: str, prefix: str) -> List[str]:
    """Collect absolute, relative and script-embedded profile links, first-seen order."""

    if not html:
        return []

    origin = origin.rstrip("/")
    markup_re, escaped_re = _profile_patterns(origin, prefix)
    paths: List[str] = [match.group(1) for match in markup_re.finditer(html)]

    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script"):
        payload = script.string or script.get_text()
        if payload:
            paths.extend(_unescape_path(match.group(1)) for match in escaped_re.finditer(payload))

    links: List[str] = []
    seen: Set[str] = set()
    for path in paths:
        link = f"{origin}{path}"
        if link not in seen:
            seen.add(link)
            links.append(link)
    return links


class ListDiscoverer:
    """Walk sources page by page, yielding the profile links each page adds."""

    def __init__(self, fetcher: PageFetcher, settings: Settings) -> None:
        self.fetcher = fetcher
        self.settings = settings

    def _links_in(self, result: FetchResult) -> List[str]:
        return extract_profile_links(result.html, self.settings.list_origin, self.settings.profile_path_prefix)

    def iter_pages(self, params: RunParams, run: PipelineRun) -> Iterator[Tuple[Source, int, List[str]]]:
        """Lazily fetch list pages; stop consuming to stop fetching.

        Yields ``(source, page, new_links)``. At most ``params.max_sources``
        distinct sources are started; a source stops paging once a page
        fails or adds no unseen links.
        """

        seen: Set[str] = set()
        started = 0
        for source in build_sources(params):
            if started >= params.max_sources:
                logger.info("Source budget of %d reached; skipping %s", params.max_sources, source.label)
                break
            started += 1

            for page in range(1, params.max_pages + 1):
                url = source_page_url(source, page, params.rows, self.settings)
                attempt = SourceAttempt(source_kind=source.kind, source_label=source.label, page=page, url=url)
                run.source_attempts.append(attempt)

                result, attempts = self.fetcher.fetch_first(url, accept=lambda res: bool(self._links_in(res)))
                if attempts:
                    attempt.strategy = attempts[-1].strategy
                if result is None:
                    attempt.error = "; ".join(item.detail for item in attempts if item.detail) or "fetch failed"
                    run.drop("list_fetch_fail")
                    break

                links = self._links_in(result)
                fresh = [link for link in links if link not in seen]
                seen.update(fresh)
                attempt.links_found = len(links)
                attempt.new_links = len(fresh)
                logger.info(
                    "List page %s page=%d strategy=%s links=%d new=%d",
                    source.label,
                    page,
                    result.strategy,
                    len(links),
                    len(fresh),
                )
                if not fresh:
                    break
                yield source, page, fresh
