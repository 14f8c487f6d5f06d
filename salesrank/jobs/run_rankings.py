"""CLI job to rank selling agents for one area and print the JSON payload."""

import argparse
import json
import logging
from datetime import date
from typing import List, Optional

from salesrank.core.config import ConfigError, get_settings
from salesrank.core.pipeline import run_pipeline
from salesrank.models import RunParams

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rank agents by how far recent sales cleared capital value")
    parser.add_argument("--region", required=True, help="Region, e.g. auckland")
    parser.add_argument("--suburb", required=True, help="Suburb to rank, e.g. ponsonby")
    parser.add_argument("--district", help="Optional district used for fallback sources")
    parser.add_argument("--adjacent", nargs="*", default=[], help="Adjacent suburbs to widen the search")
    parser.add_argument("--rows", type=int, default=50, help="Rows per list page")
    parser.add_argument("--max-pages", dest="max_pages", type=int, default=3, help="Pages per source")
    parser.add_argument("--window-months", dest="window_months", type=int, default=12, help="Recency window")
    parser.add_argument("--min-records", dest="min_records", type=int, default=40, help="Sales to collect")
    parser.add_argument(
        "--min-agents",
        dest="min_agents_for_ranking",
        type=int,
        default=2,
        help="Minimum sales for an agent to be ranked",
    )
    parser.add_argument("--max-sources", dest="max_sources", type=int, default=6, help="Sources to try at most")
    parser.add_argument("--agent-rows", dest="agent_rows", type=int, default=40, help="Sales to attribute")
    parser.add_argument("--today", type=date.fromisoformat, help="Reference date (YYYY-MM-DD) for the window")
    parser.add_argument("--debug", action="store_true", help="Include diagnostic attempt logs in the output")
    return parser


def params_from_args(args: argparse.Namespace) -> RunParams:
    return RunParams(
        region=args.region,
        suburb=args.suburb,
        district=args.district,
        adjacent_suburbs=tuple(args.adjacent or ()),
        rows=args.rows,
        max_pages=args.max_pages,
        window_months=args.window_months,
        min_records=args.min_records,
        min_agents_for_ranking=args.min_agents_for_ranking,
        max_sources=args.max_sources,
        agent_rows=args.agent_rows,
        debug=args.debug,
        today=args.today,
    )


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    try:
        params = params_from_args(args)
        payload = run_pipeline(params, get_settings())
    except (ConfigError, ValueError) as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc

    print(json.dumps(payload, indent=2))
    if payload.get("error"):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
