from __future__ import annotations

import argparse
import asyncio
import datetime
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from data_exchange import export_roster_data  # noqa: E402
from logging_config import setup_logging  # noqa: E402
from roster_store import RosterStore, build_store  # noqa: E402
from session_state import RosterSession  # noqa: E402
from local_cache import LocalCache  # noqa: E402
from settings import settings  # noqa: E402


async def run_export(
    week_start: datetime.date | None,
    *,
    offline: bool = False,
    output_dir: Path | None = None,
) -> Path:
    store = RosterStore(LocalCache()) if offline else build_store(settings)
    session = RosterSession(store, week_start=week_start)
    try:
        if not offline:
            connected = await session.connect()
            print(f"[export] Remote store {'connected' if connected else 'unavailable, using local cache'}.")
        await session.load_saved_data()
        await session.load_week()
        print(f"[export] Week {session.week_display} ({session.week_key})")
        for employee, hours in session.week_hours().items():
            totals = hours.rounded()
            print(
                f"[export]   {employee}: {totals.total:.2f}h "
                f"(regular {totals.regular:.2f}, overtime {totals.overtime:.2f}, leave {totals.leave_total:.2f})"
            )
        return export_roster_data(session, output_dir)
    finally:
        await session.close()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export a roster week, with employees and locations, to JSON.")
    parser.add_argument(
        "--week-start",
        help="ISO date (YYYY-MM-DD) inside the week to export. Defaults to the current week.",
    )
    parser.add_argument("--offline", action="store_true", help="Read from the local cache only.")
    parser.add_argument("--output-dir", type=Path, help="Directory for the export file.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging()
    week_start = None
    if args.week_start:
        try:
            week_start = datetime.date.fromisoformat(args.week_start)
        except ValueError as exc:
            raise SystemExit(f"Invalid --week-start value: {exc}") from exc
    path = asyncio.run(run_export(week_start, offline=args.offline, output_dir=args.output_dir))
    print(f"[export] Wrote {path}")


if __name__ == "__main__":
    main()
