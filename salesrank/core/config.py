"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENTS = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
)
DEFAULT_AGENCY_DOMAINS = (
    "raywhite.co.nz",
    "barfoot.co.nz",
    "harcourts.co.nz",
    "bayleys.co.nz",
    "ljhooker.co.nz",
    "century21.co.nz",
    "tallpoppy.co.nz",
    "mikepero.com",
    "propertybrokers.co.nz",
    "professionals.co.nz",
)
DEFAULT_PORTAL_DOMAINS = (
    "oneroof.co.nz",
    "homes.co.nz",
    "realestate.co.nz",
    "trademe.co.nz",
)
DEFAULT_BLOCKED_HOSTS = (
    "facebook.com",
    "fb.com",
    "instagram.com",
    "linkedin.com",
    "youtube.com",
    "tiktok.com",
    "twitter.com",
    "x.com",
    "pinterest.com",
)
DEFAULT_AGENCY_BRANDS = (
    "Barfoot & Thompson",
    "Ray White",
    "Harcourts",
    "Bayleys",
    "LJ Hooker",
    "Century 21",
    "Tall Poppy",
    "Mike Pero",
    "Property Brokers",
    "Professionals",
    "Sotheby's International Realty",
    "Ownly",
    "Quinovic",
)


class ConfigError(RuntimeError):
    """Raised when a configuration value cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    serpapi_api_key: str = ""
    worker_port: int = 9000
    render_enabled: bool = False
    render_concurrency: int = 2
    navigation_timeout_ms: int = 60000
    settle_delay_ms: int = 800
    scroll_step_px: int = 900
    scroll_timeout_ms: int = 20000
    request_timeout: int = 20
    fetch_workers: int = 4
    list_origin: str = "https://www.trademe.co.nz"
    list_path_template: str = "/a/property/insights/sold/{parent}/{child}"
    profile_path_prefix: str = "/a/property/insights/profile/"
    price_tolerance_pct: float = 1.0
    date_tolerance_days: int = 7
    max_agent_names: int = 6
    min_plausible_amount: int = 10000
    max_queries_per_address: int = 6
    max_links_per_query: int = 3
    user_agents: Tuple[str, ...] = DEFAULT_USER_AGENTS
    agency_domains: Tuple[str, ...] = DEFAULT_AGENCY_DOMAINS
    portal_domains: Tuple[str, ...] = DEFAULT_PORTAL_DOMAINS
    blocked_hosts: Tuple[str, ...] = DEFAULT_BLOCKED_HOSTS
    agency_brands: Tuple[str, ...] = DEFAULT_AGENCY_BRANDS

    @property
    def allowed_hosts(self) -> Tuple[str, ...]:
        return self.agency_domains + self.portal_domains


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    values = tuple(part.strip().lower() for part in raw.split(",") if part.strip())
    return values or default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    serpapi_api_key = os.getenv("SERPAPI_API_KEY", "")
    render_enabled = os.getenv("RENDER_ENABLED", "false").lower() in {"1", "true", "yes"}
    list_origin = (os.getenv("LIST_ORIGIN") or Settings.list_origin).rstrip("/")

    if not serpapi_api_key:
        logger.warning("SERPAPI_API_KEY is not configured; agent attribution searches will return nothing.")
    if not render_enabled:
        logger.info("RENDER_ENABLED is off; list pages will only be fetched directly.")

    return Settings(
        serpapi_api_key=serpapi_api_key,
        worker_port=_env_int("WORKER_PORT", 9000),
        render_enabled=render_enabled,
        render_concurrency=max(1, _env_int("RENDER_CONCURRENCY", 2)),
        navigation_timeout_ms=_env_int("NAVIGATION_TIMEOUT_MS", 60000),
        settle_delay_ms=_env_int("SETTLE_DELAY_MS", 800),
        request_timeout=_env_int("REQUEST_TIMEOUT", 20),
        fetch_workers=max(1, _env_int("FETCH_WORKERS", 4)),
        list_origin=list_origin,
        price_tolerance_pct=_env_float("PRICE_TOLERANCE_PCT", 1.0),
        date_tolerance_days=_env_int("DATE_TOLERANCE_DAYS", 7),
        max_agent_names=_env_int("MAX_AGENT_NAMES", 6),
        min_plausible_amount=_env_int("MIN_PLAUSIBLE_AMOUNT", 10000),
        max_queries_per_address=_env_int("MAX_QUERIES_PER_ADDRESS", 6),
        max_links_per_query=_env_int("MAX_LINKS_PER_QUERY", 3),
        agency_domains=_env_list("AGENCY_DOMAINS", DEFAULT_AGENCY_DOMAINS),
        portal_domains=_env_list("PORTAL_DOMAINS", DEFAULT_PORTAL_DOMAINS),
    )
