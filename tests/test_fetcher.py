import pytest
import requests

from salesrank.core import fetcher
from salesrank.core.config import Settings
from salesrank.core.fetcher import (
    DIRECT,
    RENDERED,
    DirectFetcher,
    FetchError,
    FetchResult,
    PageFetcher,
    RendererUnavailableError,
)


class DummyResponse:
    def __init__(self, status_code=200, text="<html></html>", url=None):
        self.status_code = status_code
        self.text = text
        self.url = url


class DummySession:
    def __init__(self, response=None, exc=None):
        self.response = response or DummyResponse()
        self.exc = exc
        self.calls = []
        self.closed = False

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc:
            raise self.exc
        return self.response

    def close(self):
        self.closed = True


class DummyDirect:
    def __init__(self, html=None, exc=None):
        self.html = html
        self.exc = exc
        self.closed = False

    def fetch(self, url):
        if self.exc:
            raise self.exc
        return FetchResult(url=url, html=self.html, status=200, strategy=DIRECT)

    def close(self):
        self.closed = True


class DummyRenderer:
    def __init__(self, html="<a>rendered</a>"):
        self.html = html
        self.calls = []

    def render(self, url):
        self.calls.append(url)
        return FetchResult(url=url, html=self.html, status=200, strategy=RENDERED)


def test_direct_fetch_sends_browser_headers_and_rotates_agents():
    settings = Settings(user_agents=("agent-a", "agent-b"), request_timeout=7)
    session = DummySession(DummyResponse(text="<p>hi</p>", url="https://final.example/page"))
    direct = DirectFetcher(settings, session=session)

    result = direct.fetch("https://start.example/page")
    direct.fetch("https://start.example/page")

    assert result.html == "<p>hi</p>"
    assert result.url == "https://final.example/page"
    assert result.strategy == DIRECT
    first, second = (kwargs for _, kwargs in session.calls)
    assert first["timeout"] == 7
    assert first["allow_redirects"] is True
    assert first["headers"]["User-Agent"] == "agent-a"
    assert second["headers"]["User-Agent"] == "agent-b"
    assert first["headers"]["Accept-Language"].startswith("en-NZ")


def test_direct_fetch_raises_on_non_2xx():
    direct = DirectFetcher(Settings(), session=DummySession(DummyResponse(status_code=403)))

    with pytest.raises(FetchError) as excinfo:
        direct.fetch("https://blocked.example")

    assert excinfo.value.status == 403
    assert "HTTP 403" in str(excinfo.value)


def test_direct_fetch_wraps_network_errors():
    session = DummySession(exc=requests.ConnectionError("boom"))
    direct = DirectFetcher(Settings(), session=session)

    with pytest.raises(FetchError):
        direct.fetch("https://down.example")

    direct.close()
    assert session.closed is True


def test_fetch_first_returns_first_accepted_strategy():
    renderer = DummyRenderer(html="<a href='x'>links</a>")
    page_fetcher = PageFetcher(Settings(), direct=DummyDirect(html="<p>shell</p>"), renderer=renderer)

    result, attempts = page_fetcher.fetch_first("https://list.example", accept=lambda res: "href" in res.html)

    assert result.strategy == RENDERED
    assert [(item.strategy, item.ok) for item in attempts] == [(DIRECT, False), (RENDERED, True)]
    assert attempts[0].detail == "rejected"


def test_fetch_first_falls_back_after_fetch_error():
    renderer = DummyRenderer()
    page_fetcher = PageFetcher(
        Settings(),
        direct=DummyDirect(exc=FetchError("https://list.example", "HTTP 500", status=500)),
        renderer=renderer,
    )

    result, attempts = page_fetcher.fetch_first("https://list.example")

    assert result.strategy == RENDERED
    assert attempts[0].ok is False
    assert "HTTP 500" in attempts[0].detail
    assert renderer.calls == ["https://list.example"]


def test_fetch_first_keeps_rejected_result_when_nothing_better():
    page_fetcher = PageFetcher(Settings(), direct=DummyDirect(html="<p>empty</p>"))

    result, attempts = page_fetcher.fetch_first("https://list.example", accept=lambda res: False)

    assert page_fetcher.strategies() == (DIRECT,)
    assert result.html == "<p>empty</p>"
    assert [item.ok for item in attempts] == [False]


def test_fetch_first_reports_total_failure():
    page_fetcher = PageFetcher(Settings(), direct=DummyDirect(exc=FetchError("u", "timeout")))

    result, attempts = page_fetcher.fetch_first("u")

    assert result is None
    assert len(attempts) == 1


def test_renderer_unavailable_without_playwright(monkeypatch):
    monkeypatch.setattr(fetcher, "sync_playwright", None)

    with pytest.raises(RendererUnavailableError):
        fetcher.PlaywrightRenderer(Settings())

    page_fetcher = PageFetcher(Settings(render_enabled=True), direct=DummyDirect(exc=FetchError("u", "HTTP 403")))
    with pytest.raises(RendererUnavailableError):
        page_fetcher.fetch_first("u")


class DummyPlaywrightError(Exception):
    pass


class DummyPlaywrightTimeout(DummyPlaywrightError):
    pass


class DummyButton:
    def __init__(self):
        self.clicked = False

    def is_visible(self):
        return True

    def click(self, timeout=None):
        self.clicked = True


class DummyGotoResponse:
    def __init__(self, status):
        self.status = status


class DummyPage:
    def __init__(self, status=200, total_height=2700, viewport=800):
        self.status = status
        self.total_height = total_height
        self.viewport = viewport
        self.scrolled = 0
        self.evaluate_calls = 0
        self.consent = DummyButton()
        self.url = None
        self.closed = False

    def goto(self, url, wait_until=None, timeout=None):
        self.url = url
        return DummyGotoResponse(self.status)

    def wait_for_timeout(self, ms):
        pass

    def query_selector(self, selector):
        if selector == "button:has-text('Accept all')":
            return self.consent
        return None

    def evaluate(self, script, step):
        self.evaluate_calls += 1
        self.scrolled += step
        return [self.scrolled + self.viewport, self.total_height]

    def content(self):
        return "<html><a href='/sold/1'>one</a></html>"

    def close(self):
        self.closed = True


class DummyBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    def new_page(self, user_agent=None):
        return self.page

    def close(self):
        self.closed = True


class DummyChromium:
    def __init__(self, browser=None, exc=None):
        self.browser = browser
        self.exc = exc

    def launch(self, headless=True):
        if self.exc:
            raise self.exc
        return self.browser


class DummyPlaywright:
    def __init__(self, chromium):
        self.chromium = chromium

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


@pytest.fixture
def fake_playwright(monkeypatch):
    monkeypatch.setattr(fetcher, "PlaywrightError", DummyPlaywrightError)
    monkeypatch.setattr(fetcher, "PlaywrightTimeoutError", DummyPlaywrightTimeout)

    def install(chromium):
        monkeypatch.setattr(fetcher, "sync_playwright", lambda: DummyPlaywright(chromium))

    return install


def test_render_dismisses_consent_and_scrolls_until_most_of_page_seen(fake_playwright):
    page = DummyPage(total_height=2700, viewport=800)
    browser = DummyBrowser(page)
    fake_playwright(DummyChromium(browser))
    renderer = fetcher.PlaywrightRenderer(Settings(scroll_step_px=900, settle_delay_ms=0))

    result = renderer.render("https://list.example/sold")

    assert result.strategy == RENDERED
    assert result.url == "https://list.example/sold"
    assert "/sold/1" in result.html
    assert page.consent.clicked is True
    # 1700 of 2700 after one step, 2600 (>= 95%) after the second.
    assert page.evaluate_calls == 2
    assert page.closed is True
    assert browser.closed is True


def test_render_stops_scrolling_when_time_runs_out(fake_playwright):
    page = DummyPage()
    fake_playwright(DummyChromium(DummyBrowser(page)))
    renderer = fetcher.PlaywrightRenderer(Settings(scroll_timeout_ms=0, settle_delay_ms=0))

    renderer.render("https://list.example/sold")

    assert page.evaluate_calls == 0


def test_render_raises_on_non_2xx(fake_playwright):
    page = DummyPage(status=404)
    browser = DummyBrowser(page)
    fake_playwright(DummyChromium(browser))
    renderer = fetcher.PlaywrightRenderer(Settings())

    with pytest.raises(FetchError) as excinfo:
        renderer.render("https://list.example/missing")

    assert excinfo.value.status == 404
    assert "HTTP 404" in str(excinfo.value)
    assert page.closed is True
    assert browser.closed is True


def test_render_wraps_playwright_timeouts(fake_playwright):
    page = DummyPage()

    def slow_goto(url, wait_until=None, timeout=None):
        raise DummyPlaywrightTimeout("navigation exceeded")

    page.goto = slow_goto
    fake_playwright(DummyChromium(DummyBrowser(page)))

    with pytest.raises(FetchError, match="render timed out"):
        fetcher.PlaywrightRenderer(Settings()).render("https://list.example/slow")


def test_render_reports_launch_failure_as_unavailable(fake_playwright):
    fake_playwright(DummyChromium(exc=DummyPlaywrightError("no chromium")))
    renderer = fetcher.PlaywrightRenderer(Settings())

    with pytest.raises(RendererUnavailableError, match="no chromium"):
        renderer.render("https://list.example/sold")


def test_renderers_share_one_process_wide_session_cap(fake_playwright):
    fake_playwright(DummyChromium(DummyBrowser(DummyPage())))
    settings = Settings(render_enabled=True, render_concurrency=2)

    first_fetcher = PageFetcher(settings, direct=DummyDirect())
    second_fetcher = PageFetcher(settings, direct=DummyDirect())
    first = first_fetcher._get_renderer()
    second = second_fetcher._get_renderer()

    assert first is not second
    assert first._semaphore is second._semaphore
    assert first._semaphore is fetcher.render_semaphore(2)
    assert first_fetcher._get_renderer() is first
