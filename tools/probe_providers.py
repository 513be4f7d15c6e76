"""Run the upstream fetch adapter once and print the normalized snapshots.

Checks provider API keys and payload mapping without starting the server
or touching MongoDB.

Usage:
    python tools/probe_providers.py
    python tools/probe_providers.py --kind live --limit 10
    python tools/probe_providers.py --live-order football_data
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure backend is on sys.path so `trackit.*` imports work
_backend = Path(__file__).resolve().parent.parent / "backend"
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

from trackit.config import settings
from trackit.middleware.logging import setup_logging
from trackit.models.live import Snapshot
from trackit.services.live_engine import build_live_adapter


def _print_snapshot(kind: str, snapshot: Snapshot, limit: int) -> None:
    fetched = snapshot.fetched_at.isoformat() if snapshot.fetched_at else "-"
    print(f"[{kind}] source={snapshot.source} count={snapshot.count} fetched_at={fetched}")
    for match in snapshot.matches[:limit]:
        home = "-" if match.home_score is None else match.home_score
        away = "-" if match.away_score is None else match.away_score
        detail = f" {match.status_detail}" if match.status_detail else ""
        print(
            f"  {match.id:>12}  {match.home_team} {home}-{away} {match.away_team}"
            f"  [{match.status.value}{detail}]  {match.league}"
        )
    if snapshot.count > limit:
        print(f"  ... {snapshot.count - limit} more")


async def run(kinds: list[str], limit: int) -> int:
    adapter = build_live_adapter(settings)
    failures = 0
    try:
        for kind in kinds:
            snapshot = await (adapter.fetch_live() if kind == "live" else adapter.fetch_schedule())
            _print_snapshot(kind, snapshot, limit)
            failures += int(snapshot.is_failure)
    finally:
        await adapter.aclose()
    return failures


def main() -> None:
    parser = argparse.ArgumentParser(description="Probe live-score providers with the configured keys.")
    parser.add_argument("--kind", choices=["live", "schedule", "both"], default="both", help="Snapshot kind to fetch.")
    parser.add_argument("--limit", type=int, default=5, help="Matches to print per snapshot.")
    parser.add_argument("--live-order", type=str, default=None, help="Override LIVE_PROVIDER_ORDER.")
    parser.add_argument("--schedule-order", type=str, default=None, help="Override SCHEDULE_PROVIDER_ORDER.")
    parser.add_argument("--verbose", action="store_true", help="Log provider calls at DEBUG.")
    args = parser.parse_args()

    setup_logging("DEBUG" if args.verbose else "WARNING")
    if args.live_order is not None:
        settings.LIVE_PROVIDER_ORDER = args.live_order
    if args.schedule_order is not None:
        settings.SCHEDULE_PROVIDER_ORDER = args.schedule_order

    kinds = ["live", "schedule"] if args.kind == "both" else [args.kind]
    failures = asyncio.run(run(kinds, max(0, args.limit)))
    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
