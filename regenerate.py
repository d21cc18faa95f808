"""Rebuild positions and portfolio snapshots for one user.

Usage:
    python regenerate.py --user-id 1                          # every transaction date and today
    python regenerate.py --user-id 1 --date 2025-03-31        # one date (repeatable)
    python regenerate.py --user-id 1 --live-prices            # mark open positions to market
    python regenerate.py --user-id 1 --db /path/to/ledger.db
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

from config import DB_PATH
from db import SqliteRepository
from ledger.market_data import fetch_current_prices
from ledger.rebuild import recompute_positions, regenerate_snapshots
from models import ResultStatus

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("regenerate")


def run(user_id: int, dates: list[date] | None, live_prices: bool, db_path: str) -> int:
    """Recompute positions, then snapshots. Returns the process exit code."""
    repo = SqliteRepository(db_path)
    repo.init_db()

    replay = recompute_positions(repo, user_id)
    if replay.status == ResultStatus.REJECTED:
        logger.error("Every transaction failed validation, nothing to rebuild")
        for r in replay.rejected:
            logger.error("  #%s: %s", r.transaction_id, "; ".join(r.reasons))
        return 1

    today_prices = None
    if live_prices:
        today_prices = fetch_current_prices(replay.positions)
        logger.info("Fetched %d live prices", len(today_prices))
        replay = recompute_positions(repo, user_id, today_prices)

    for warning in replay.warnings:
        logger.warning(warning)

    def price_lookup(d: date):
        # Live quotes only describe today; history is left stale
        return today_prices if d == date.today() else None

    batch = regenerate_snapshots(repo, user_id, dates, price_lookup)
    for r in batch.results:
        if r.snapshot is not None:
            logger.info(
                "%s %-8s value=%.2f cash=%.2f realized=%.2f unrealized=%.2f open=%d",
                r.snapshot_date, r.status.value, r.snapshot.portfolio_value,
                r.snapshot.net_cash_flow, r.snapshot.total_realized_pl,
                r.snapshot.total_unrealized_pl, r.snapshot.open_positions_count,
            )
        else:
            logger.error("%s %-8s %s", r.snapshot_date, r.status.value, r.error)

    frame = repo.get_positions_frame(user_id)
    if not frame.empty:
        cols = ["symbol", "asset_type", "status", "side", "current_quantity",
                "total_cost_basis", "realized_pl", "unrealized_pl", "stale"]
        print(frame[cols].to_string(index=False))

    return 1 if batch.failed else 0


def main():
    parser = argparse.ArgumentParser(description="Rebuild positions and portfolio snapshots")
    parser.add_argument("--user-id", type=int, required=True)
    parser.add_argument("--date", action="append", type=date.fromisoformat, dest="dates",
                        help="Snapshot date YYYY-MM-DD (repeatable; "
                             "default: all trade dates and today)")
    parser.add_argument("--live-prices", action="store_true",
                        help="Fetch current quotes for open stock/crypto positions")
    parser.add_argument("--db", default=DB_PATH, help="SQLite database path")
    args = parser.parse_args()

    sys.exit(run(args.user_id, args.dates, args.live_prices, args.db))


if __name__ == "__main__":
    main()
