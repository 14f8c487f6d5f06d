import pytest

from salesrank.core import config


def setup_function(function):
    config.get_settings.cache_clear()


def teardown_function(function):
    config.get_settings.cache_clear()


def test_get_settings_reads_env(monkeypatch):
    monkeypatch.setenv("SERPAPI_API_KEY", "abc123")
    monkeypatch.setenv("WORKER_PORT", "9100")
    monkeypatch.setenv("RENDER_ENABLED", "true")
    monkeypatch.setenv("FETCH_WORKERS", "8")
    monkeypatch.setenv("LIST_ORIGIN", "https://insights.example.nz/")
    monkeypatch.setenv("PRICE_TOLERANCE_PCT", "2.5")
    monkeypatch.setenv("AGENCY_DOMAINS", "RayWhite.co.nz, barfoot.co.nz,")

    settings = config.get_settings()

    assert settings.serpapi_api_key == "abc123"
    assert settings.worker_port == 9100
    assert settings.render_enabled is True
    assert settings.fetch_workers == 8
    assert settings.list_origin == "https://insights.example.nz"
    assert settings.price_tolerance_pct == 2.5
    assert settings.agency_domains == ("raywhite.co.nz", "barfoot.co.nz")
    assert settings.allowed_hosts[:2] == ("raywhite.co.nz", "barfoot.co.nz")
    assert "oneroof.co.nz" in settings.allowed_hosts


def test_get_settings_warns_when_missing(monkeypatch, caplog):
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)
    monkeypatch.delenv("RENDER_ENABLED", raising=False)
    monkeypatch.delenv("DATE_TOLERANCE_DAYS", raising=False)

    with caplog.at_level("INFO"):
        settings = config.get_settings()

    assert "SERPAPI_API_KEY is not configured" in " ".join(caplog.messages)
    assert settings.serpapi_api_key == ""
    assert settings.render_enabled is False
    assert settings.worker_port == 9000
    assert settings.date_tolerance_days == 7
    assert settings.max_agent_names == 6
    assert settings.min_plausible_amount == 10000


def test_get_settings_rejects_bad_numbers(monkeypatch):
    monkeypatch.setenv("REQUEST_TIMEOUT", "soon")

    with pytest.raises(config.ConfigError):
        config.get_settings()


def test_worker_counts_are_clamped(monkeypatch):
    monkeypatch.setenv("FETCH_WORKERS", "0")
    monkeypatch.setenv("RENDER_CONCURRENCY", "-3")

    settings = config.get_settings()

    assert settings.fetch_workers == 1
    assert settings.render_concurrency == 1
