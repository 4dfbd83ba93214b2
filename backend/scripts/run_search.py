#!/usr/bin/env python3
"""Run a best-of-K crawl search from a JSON description and print the ranking.

Input file shape::

    {
      "config": {"start_address": "...", "end_address": "...",
                 "start_datetime": "2026-11-07T18:00:00+01:00",
                 "time_per_stop_minutes": 60, "num_groups": 6, "num_stops": 3},
      "participants": [{"name": "Ada", "address": "..."}, {"name": "Bo"}]
    }
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Optional, Sequence


def _ensure_package_on_path() -> None:
    """Ensure the backend/crawlplanner package is importable when running the script directly."""
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


_ensure_package_on_path()

from crawlplanner.errors import GroupFormationExhausted  # noqa: E402
from crawlplanner.logging_config import configure_logging  # noqa: E402
from crawlplanner.schemas import EventConfig, Participant  # noqa: E402
from crawlplanner.services.cache import GeoRouteCache  # noqa: E402
from crawlplanner.services.persistence import EventStore, dump_results  # noqa: E402
from crawlplanner.services.routing import RoutingClient  # noqa: E402
from crawlplanner.services.scheduling import EventScheduler  # noqa: E402
from crawlplanner.settings import get_settings  # noqa: E402
from crawlplanner.store import build_store  # noqa: E402


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search for the crawl plan with the least total travel time.")
    parser.add_argument("--input", required=True, type=Path, help="JSON file with 'config' and 'participants'.")
    parser.add_argument("--trials", type=_positive_int, default=None, help="Number of trials (default: CRAWL_MAX_TRIALS).")
    parser.add_argument("--top-k", type=_positive_int, default=None, help="Number of results to keep (default: CRAWL_TOP_K).")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible runs.")
    parser.add_argument("--output", type=Path, default=None, help="Write ranked results as JSON to this file.")
    parser.add_argument("--cache-file", type=Path, default=None, help="Load and save the geocode/route cache here.")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    data = json.loads(args.input.read_text(encoding="utf-8"))
    config = EventConfig.model_validate(data["config"])
    participants = [Participant.model_validate(p) for p in data.get("participants") or []]

    settings = get_settings()
    store = build_store(settings)
    await store.connect()
    cache = GeoRouteCache(store)
    if args.cache_file and args.cache_file.exists():
        loaded = await cache.load(args.cache_file.read_text(encoding="utf-8"))
        print(f"Loaded {loaded} cache entries from {args.cache_file}")

    client = RoutingClient(cache, settings)
    scheduler = EventScheduler(client, rng=random.Random(args.seed) if args.seed is not None else None)
    try:
        outcome = await scheduler.search(config, participants, trials=args.trials, top_k=args.top_k)
        await EventStore(store).save_results(outcome.ranked)
        if args.cache_file:
            args.cache_file.write_text(await cache.dump(), encoding="utf-8")
    except GroupFormationExhausted as exc:
        print(f"Infeasible input: {exc}", file=sys.stderr)
        return 2
    finally:
        await client.aclose()
        await store.close()

    print(f"Trials run: {outcome.trials_run} (failed: {outcome.trials_failed}) provider calls: {client.provider_calls}")
    for rank, result in enumerate(outcome.ranked, start=1):
        flag = " [flagged]" if result.flagged else ""
        print(f"#{rank}: {round(result.total_time_seconds / 60)} min total{flag}")
        print(result.event.describe())
    if args.output:
        args.output.write_text(dump_results(outcome.ranked), encoding="utf-8")
        print(f"Results written to {args.output}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    return asyncio.run(_run(parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
