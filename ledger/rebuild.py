"""Recompute stored positions and snapshots from a repository.

These are the entry points the application calls after a transaction is
created, edited or deleted, and for the "regenerate snapshots" action.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Mapping, Optional

from db import SqliteRepository
from ledger.positions import replay_positions
from ledger.snapshots import compute_snapshot, daily_pl_change
from models import (
    ReplayResult,
    ResultStatus,
    SnapshotBatchResult,
    SnapshotResult,
)

logger = logging.getLogger(__name__)

PriceLookup = Callable[[date], Optional[Mapping[str, float]]]


def recompute_positions(
    repo: SqliteRepository,
    user_id: int,
    prices: Optional[Mapping[str, float]] = None,
) -> ReplayResult:
    """Rebuild every position for user_id from scratch and store them."""
    transactions = repo.list_transactions(user_id)
    result = replay_positions(user_id, transactions, prices)
    if result.status == ResultStatus.REJECTED:
        logger.warning("User %s: all %d transactions rejected, positions left as-is",
                       user_id, len(transactions))
        return result
    repo.replace_positions(user_id, result.positions)
    logger.info("User %s: stored %d positions (%s)",
                user_id, len(result.positions), result.status.value)
    return result


def regenerate_snapshot(
    repo: SqliteRepository,
    user_id: int,
    snapshot_date: date,
    prices: Optional[Mapping[str, float]] = None,
) -> SnapshotResult:
    """Recompute and upsert one date. Storage errors come back as FAILED.

    The daily change is taken against the latest snapshot already stored
    before snapshot_date, so batches must run oldest date first.
    """
    try:
        transactions = repo.list_transactions(user_id, up_to=snapshot_date)
        cash = repo.list_cash_transactions(user_id, up_to=snapshot_date)
        result = compute_snapshot(user_id, snapshot_date, transactions, cash, prices)
        if result.snapshot is not None:
            previous = repo.get_previous_snapshot(user_id, snapshot_date)
            change, pct = daily_pl_change(previous, result.snapshot)
            result.snapshot.daily_pl_change = change
            result.snapshot.daily_pl_change_pct = pct
            repo.upsert_snapshot(result.snapshot)
        return result
    except Exception as exc:
        logger.exception("User %s: snapshot for %s failed", user_id, snapshot_date)
        return SnapshotResult(
            snapshot_date=snapshot_date,
            status=ResultStatus.FAILED,
            error=f"{type(exc).__name__}: {exc}",
        )


def regenerate_snapshots(
    repo: SqliteRepository,
    user_id: int,
    dates: Optional[list[date]] = None,
    price_lookup: Optional[PriceLookup] = None,
) -> SnapshotBatchResult:
    """Regenerate snapshots for each date; one failure never stops the batch.

    With no dates, every distinct transaction date plus today is regenerated,
    so a live-priced snapshot for today exists even without a trade today.
    Each date re-reads history up to itself; only the stored daily change
    depends on the snapshot before it.
    """
    if dates is None:
        dates = repo.transaction_dates(user_id) + [date.today()]

    batch = SnapshotBatchResult(user_id=user_id)
    for snapshot_date in sorted(set(dates)):
        prices = None
        if price_lookup is not None:
            try:
                prices = price_lookup(snapshot_date)
            except Exception:
                logger.warning("User %s: price lookup for %s failed, using stale values",
                               user_id, snapshot_date, exc_info=True)
        batch.results.append(regenerate_snapshot(repo, user_id, snapshot_date, prices))

    logger.info("User %s: %d/%d snapshots regenerated",
                user_id, len(batch.succeeded), len(batch.results))
    return batch
