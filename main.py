from __future__ import annotations

import argparse
import json
from typing import Tuple

from api_client import APISportsClient
from config import load_settings
from errors import ResultFeedError
from evaluator import SUPPORTED_MARKETS, evaluate, is_push, settle_market
from logging_config import setup_logging


def parse_score(raw: str) -> Tuple[int, int]:
    parts = raw.strip().replace(":", "-").split("-")
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        raise argparse.ArgumentTypeError(f"Score must look like 2-1, got '{raw}'")
    return int(parts[0]), int(parts[1])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Settle market tags against a final score")
    parser.add_argument("--market", action="append", required=True, help="Market tag, e.g. DNB_1 (repeatable)")
    parser.add_argument("--score", type=parse_score, help="Final score, e.g. 2-1")
    parser.add_argument("--ht", type=parse_score, default=(0, 0), help="Half-time score, e.g. 1-0")
    parser.add_argument("--fixture-id", type=int, help="Read the score from the result feed instead")
    parser.add_argument("--base-url", help="Result feed base URL (optional if API_BASE_URL is set)")
    parser.add_argument("--api-key", help="API-Sports key (optional if API_SPORTS_KEY is set)")
    return parser


def main() -> None:
    settings = load_settings()
    setup_logging("sportsbook-cli", settings.log_level, settings.log_dir)

    parser = build_parser()
    args = parser.parse_args()

    if args.fixture_id is not None:
        try:
            client = APISportsClient(
                base_url=args.base_url or settings.api_base_url, api_key=args.api_key or settings.api_key,
            )
            feed = client.get_final_score(args.fixture_id)
        except (ValueError, ResultFeedError) as exc:
            parser.exit(1, f"{exc}\n")
        score = (feed.home_goals, feed.away_goals)
        ht = (feed.halftime_home or 0, feed.halftime_away or 0)
    elif args.score is not None:
        score, ht = args.score, args.ht
    else:
        parser.error("Provide --score or --fixture-id")

    results = []
    for market in args.market:
        tag = market.strip().upper()
        results.append({
            "market": tag,
            "known": tag in SUPPORTED_MARKETS,
            "evaluate": evaluate(tag, score[0], score[1], ht[0], ht[1]).value,
            "push": is_push(tag, score[0], score[1]),
            "outcome": settle_market(tag, score[0], score[1], ht[0], ht[1]).value,
        })

    print(json.dumps({"score": f"{score[0]}-{score[1]}", "ht": f"{ht[0]}-{ht[1]}", "results": results}, indent=2))


if __name__ == "__main__":
    main()
