"""HTTP entrypoint that serves agent rankings (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from salesrank.core.config import get_settings
from salesrank.core.pipeline import run_pipeline
from salesrank.models import RunParams

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)

_INT_PARAMS = {
    "rows": "rows",
    "max_pages": "max_pages",
    "window_months": "window_months",
    "min_records": "min_records",
    "min_agents": "min_agents_for_ranking",
    "max_sources": "max_sources",
    "agent_rows": "agent_rows",
}


class BadRequest(ValueError):
    """Raised for query parameters that cannot be turned into a run."""


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "render_enabled": getattr(settings, "render_enabled", False),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.get("/agent-rankings")
def agent_rankings() -> Any:
    """
    Rank selling agents for an area.
    Required query params: suburb. Optional: region (default auckland), district,
    adjacent (comma separated), rows, max_pages, window_months, min_records,
    min_agents, max_sources, agent_rows, today (YYYY-MM-DD), debug.
    """
    try:
        params = _params_from_query(request.args)
    except BadRequest as exc:
        return jsonify({"error": str(exc)}), 400

    logger.info("Ranking request: region=%s suburb=%s", params.region, params.suburb)
    try:
        payload = run_pipeline(params, get_settings())
    except Exception as exc:  # noqa: BLE001
        logger.exception("Ranking failed for %s: %s", params.suburb, exc)
        return jsonify({"error": "ranking failed"}), 500

    status = 503 if payload.get("error") else 200
    return jsonify(payload), status


# ---------- Internals ----------


def _params_from_query(args: Dict[str, Any]) -> RunParams:
    suburb = (args.get("suburb") or "").strip()
    if not suburb:
        raise BadRequest("suburb required")
    region = (args.get("region") or "auckland").strip()

    numbers: Dict[str, int] = {}
    for query_key, field_name in _INT_PARAMS.items():
        raw = args.get(query_key)
        if raw is None or raw == "":
            continue
        try:
            numbers[field_name] = int(raw)
        except (TypeError, ValueError) as exc:
            raise BadRequest(f"{query_key} must be numeric") from exc

    today: Optional[date] = None
    if args.get("today"):
        try:
            today = date.fromisoformat(args["today"])
        except ValueError as exc:
            raise BadRequest("today must be YYYY-MM-DD") from exc

    adjacent = tuple(part.strip() for part in (args.get("adjacent") or "").split(",") if part.strip())
    debug = (args.get("debug") or "").lower() in {"1", "true", "yes"}

    try:
        return RunParams(
            region=region,
            suburb=suburb,
            district=(args.get("district") or "").strip() or None,
            adjacent_suburbs=adjacent,
            debug=debug,
            today=today,
            **numbers,
        )
    except ValueError as exc:
        raise BadRequest(str(exc)) from exc


def main() -> None:
    """Bind to the PORT Cloud Run injects, falling back to 8080 locally."""
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or 8080)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
