"""Page retrieval: direct HTTP GET, Playwright rendering, and the fallback policy."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, Tuple

import requests

try:
    from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError, sync_playwright
except ImportError:  # pragma: no cover - optional dependency
    sync_playwright = None
    PlaywrightError = PlaywrightTimeoutError = Exception

from salesrank.core.config import Settings

logger = logging.getLogger(__name__)

DIRECT = "direct"
RENDERED = "rendered"

CONSENT_SELECTORS = (
    "button#onetrust-accept-btn-handler",
    "button:has-text('Accept all')",
    "button:has-text('Accept')",
    "button:has-text('I agree')",
    "[aria-label='Accept cookies']",
)
_SCROLL_STEP_JS = """(step) => {
    window.scrollBy(0, step);
    return [window.scrollY + window.innerHeight, document.body.scrollHeight];
}"""


@lru_cache(maxsize=None)
def render_semaphore(limit: int) -> threading.BoundedSemaphore:
    """Process-wide cap on open browser sessions, one per configured limit."""
    return threading.BoundedSemaphore(max(1, limit))


class FetchError(RuntimeError):
    """Raised when a page cannot be retrieved (network error, timeout or non-2xx)."""

    def __init__(self, url: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status = status


class RendererUnavailableError(RuntimeError):
    """Raised when the browser session cannot be started at all."""


@dataclass(frozen=True)
class FetchResult:
    url: str
    html: str
    status: int
    strategy: str


@dataclass(frozen=True)
class FetchAttempt:
    strategy: str
    ok: bool
    detail: str = ""


class DirectFetcher:
    """Single GET per page with a browser-like header set."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self._user_agents = itertools.cycle(settings.user_agents or ("Mozilla/5.0",))
        self._lock = threading.Lock()

    def _headers(self) -> dict:
        with self._lock:
            user_agent = next(self._user_agents)
        return {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-NZ,en;q=0.9",
            "Referer": self.settings.list_origin + "/",
        }

    def fetch(self, url: str) -> FetchResult:
        try:
            response = self.session.get(
                url,
                headers=self._headers(),
                timeout=self.settings.request_timeout,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        if not 200 <= response.status_code < 300:
            raise FetchError(url, f"HTTP {response.status_code}", status=response.status_code)
        return FetchResult(url=response.url or url, html=response.text, status=response.status_code, strategy=DIRECT)

    def close(self) -> None:
        self.session.close()


class PlaywrightRenderer:
    """Render JavaScript-heavy pages, scrolling to trigger lazy-loaded content.

    Each render runs its own short-lived browser so the renderer can be shared
    between worker threads; a process-wide semaphore caps concurrent sessions.
    """

    def __init__(self, settings: Settings, semaphore: Optional[threading.BoundedSemaphore] = None) -> None:
        if sync_playwright is None:
            raise RendererUnavailableError("playwright is not installed")
        self.settings = settings
        self._semaphore = semaphore or render_semaphore(settings.render_concurrency)

    def render(self, url: str) -> FetchResult:
        with self._semaphore:
            try:
                with sync_playwright() as playwright:
                    try:
                        browser = playwright.chromium.launch(headless=True)
                    except PlaywrightError as exc:
                        raise RendererUnavailableError(f"unable to launch chromium: {exc}") from exc
                    try:
                        return self._render_page(browser, url)
                    finally:
                        browser.close()
            except (FetchError, RendererUnavailableError):
                raise
            except PlaywrightTimeoutError as exc:
                raise FetchError(url, f"render timed out: {exc}") from exc
            except PlaywrightError as exc:
                raise FetchError(url, f"render failed: {exc}") from exc

    def _render_page(self, browser, url: str) -> FetchResult:
        page = browser.new_page(user_agent=self.settings.user_agents[0] if self.settings.user_agents else None)
        try:
            response = page.goto(url, wait_until="domcontentloaded", timeout=self.settings.navigation_timeout_ms)
            status = response.status if response is not None else 200
            if not 200 <= status < 300:
                raise FetchError(url, f"HTTP {status}", status=status)
            page.wait_for_timeout(self.settings.settle_delay_ms)
            self._dismiss_consent(page)
            self._scroll_to_bottom(page)
            page.wait_for_timeout(self.settings.settle_delay_ms)
            return FetchResult(url=page.url, html=page.content(), status=status, strategy=RENDERED)
        finally:
            page.close()

    @staticmethod
    def _dismiss_consent(page) -> None:
        for selector in CONSENT_SELECTORS:
            try:
                button = page.query_selector(selector)
                if button and button.is_visible():
                    button.click(timeout=2000)
                    logger.debug("Dismissed consent dialog via %s", selector)
                    return
            except PlaywrightError as exc:
                logger.debug("Consent selector %s failed: %s", selector, exc)

    def _scroll_to_bottom(self, page) -> None:
        deadline = time.monotonic() + self.settings.scroll_timeout_ms / 1000
        while time.monotonic() < deadline:
            reached, total = page.evaluate(_SCROLL_STEP_JS, self.settings.scroll_step_px)
            if total and reached >= total * 0.95:
                break
            page.wait_for_timeout(250)


class PageFetcher:
    """Strategy front door used by the pipeline: direct first, rendered as fallback."""

    def __init__(
        self,
        settings: Settings,
        *,
        direct: Optional[DirectFetcher] = None,
        renderer: Optional[PlaywrightRenderer] = None,
    ) -> None:
        self.settings = settings
        self.direct = direct or DirectFetcher(settings)
        self._renderer = renderer
        self._renderer_lock = threading.Lock()
        self.render_enabled = settings.render_enabled or renderer is not None

    def _get_renderer(self) -> PlaywrightRenderer:
        with self._renderer_lock:
            if self._renderer is None:
                self._renderer = PlaywrightRenderer(self.settings)
            return self._renderer

    def strategies(self) -> Sequence[str]:
        return (DIRECT, RENDERED) if self.render_enabled else (DIRECT,)

    def fetch(self, url: str, strategy: str = DIRECT) -> FetchResult:
        if strategy == RENDERED:
            return self._get_renderer().render(url)
        return self.direct.fetch(url)

    def fetch_first(
        self,
        url: str,
        accept: Optional[Callable[[FetchResult], bool]] = None,
        strategies: Optional[Sequence[str]] = None,
    ) -> Tuple[Optional[FetchResult], List[FetchAttempt]]:
        """Try each strategy in order; the first result ``accept`` approves wins.

        A result that fetched fine but was rejected is still returned when no
        later strategy does better, so callers can tell "empty" from "failed".
        """

        attempts: List[FetchAttempt] = []
        fallback: Optional[FetchResult] = None
        for strategy in strategies or self.strategies():
            try:
                result = self.fetch(url, strategy)
            except FetchError as exc:
                logger.warning("%s fetch failed for %s: %s", strategy, url, exc)
                attempts.append(FetchAttempt(strategy, False, str(exc)))
                continue
            if accept is None or accept(result):
                attempts.append(FetchAttempt(strategy, True))
                return result, attempts
            logger.info("%s fetch of %s returned nothing usable", strategy, url)
            attempts.append(FetchAttempt(strategy, False, "rejected"))
            fallback = fallback or result
        return fallback, attempts

    def close(self) -> None:
        self.direct.close()
