import pytest

from salesrank.core.config import Settings
from salesrank.vendors import serp_client


class DummyGoogleSearch:
    calls = []
    response = {}

    def __init__(self, params):
        DummyGoogleSearch.calls.append(params)

    def get_dict(self):
        if isinstance(DummyGoogleSearch.response, Exception):
            raise DummyGoogleSearch.response
        return DummyGoogleSearch.response


@pytest.fixture(autouse=True)
def fake_serpapi(monkeypatch):
    DummyGoogleSearch.calls = []
    DummyGoogleSearch.response = {}
    monkeypatch.setattr(serp_client, "GoogleSearch", DummyGoogleSearch)
    yield DummyGoogleSearch


def test_build_search_params_targets_nz_web_results():
    params = serp_client.build_search_params('  site:raywhite.co.nz "1 Alpha St" ', "key", num=5)
    assert params == {
        "engine": "google",
        "q": 'site:raywhite.co.nz "1 Alpha St"',
        "api_key": "key",
        "num": 5,
        "gl": "nz",
        "hl": "en",
    }

    with pytest.raises(ValueError):
        serp_client.build_search_params("  ", "key")


def test_parse_organic_links_keeps_rank_order():
    data = {
        "organic_results": [
            {"link": "https://a.example"},
            {"title": "no link"},
            "junk",
            {"link": " https://b.example "},
        ]
    }
    assert serp_client.parse_organic_links(data) == [{"link": "https://a.example"}, {"link": "https://b.example"}]
    assert serp_client.parse_organic_links({"search_metadata": {}}) == []
    assert serp_client.parse_organic_links(None) == []


def test_client_without_key_never_calls_serpapi(fake_serpapi, caplog):
    with caplog.at_level("WARNING"):
        client = serp_client.SerpSearchClient(Settings(serpapi_api_key=""))

    assert client("anything") == []
    assert fake_serpapi.calls == []
    assert "SERPAPI_API_KEY missing" in " ".join(caplog.messages)


def test_client_returns_links(fake_serpapi):
    fake_serpapi.response = {"organic_results": [{"link": "https://www.raywhite.co.nz/1"}]}
    client = serp_client.SerpSearchClient(Settings(serpapi_api_key="secret"))

    assert client("query") == [{"link": "https://www.raywhite.co.nz/1"}]
    assert fake_serpapi.calls[0]["api_key"] == "secret"


def test_client_swallows_errors(fake_serpapi):
    client = serp_client.SerpSearchClient(Settings(serpapi_api_key="secret"))

    fake_serpapi.response = {"error": "Invalid API key."}
    assert client("query") == []

    fake_serpapi.response = RuntimeError("network down")
    assert client("query") == []
