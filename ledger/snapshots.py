"""Portfolio snapshot roll-up for one user on one date."""

from __future__ import annotations

from datetime import date, datetime
from typing import Mapping, Optional

from config import MARGIN_CASH_CODES, MONEY_DECIMALS
from ledger.conventions import BREAKDOWN_KEYS, market_value
from ledger.positions import replay_positions
from models import (
    AssetBreakdown,
    CashTransaction,
    PortfolioSnapshot,
    Position,
    ResultStatus,
    SnapshotResult,
    Transaction,
)


def _money(value: float) -> float:
    # + 0.0 folds -0.0 into 0.0 so equal snapshots compare and serialize equal
    return round(value, MONEY_DECIMALS) + 0.0


def _is_calendar_date(value) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def net_cash_flow(cash_transactions: list[CashTransaction], as_of: date) -> float:
    """Sum of cash movements up to as_of, ignoring margin postings."""
    return sum(
        c.amount for c in cash_transactions
        if c.transaction_date <= as_of and c.transaction_code not in MARGIN_CASH_CODES
    )


def position_market_value(position: Position) -> float:
    if not position.is_open:
        return 0.0
    return market_value(
        position.asset_type, position.side, position.open_cost_basis, position.unrealized_pl
    )


def roll_up(
    user_id: int,
    snapshot_date: date,
    positions: list[Position],
    cash_flow: float,
) -> PortfolioSnapshot:
    """Aggregate positions and net cash flow into one snapshot."""
    breakdown = {key: AssetBreakdown() for key in BREAKDOWN_KEYS.values()}
    total_market_value = 0.0
    total_unrealized = 0.0
    open_count = 0
    stale_count = 0

    for p in positions:
        if not p.is_open:
            continue
        value = position_market_value(p)
        bucket = breakdown[BREAKDOWN_KEYS[p.asset_type]]
        bucket.count += 1
        bucket.value += value
        total_market_value += value
        total_unrealized += p.unrealized_pl
        open_count += 1
        if p.stale:
            stale_count += 1

    for bucket in breakdown.values():
        bucket.value = _money(bucket.value)

    total_realized = sum(p.realized_pl for p in positions)
    return PortfolioSnapshot(
        user_id=user_id,
        snapshot_date=snapshot_date,
        portfolio_value=_money(cash_flow + total_realized + total_market_value),
        net_cash_flow=_money(cash_flow),
        total_market_value=_money(total_market_value),
        total_realized_pl=_money(total_realized),
        total_unrealized_pl=_money(total_unrealized),
        open_positions_count=open_count,
        total_positions_count=len(positions),
        positions_breakdown=breakdown,
        stale_positions_count=stale_count,
    )


def compute_snapshot(
    user_id: int,
    snapshot_date: date,
    transactions: list[Transaction],
    cash_transactions: list[CashTransaction],
    prices: Optional[Mapping[str, float]] = None,
) -> SnapshotResult:
    """Replay everything on or before snapshot_date and roll it up.

    Stateless per date: nothing from an earlier snapshot is reused, so any
    historical date can be recomputed on its own.
    """
    # Rows without a usable date pass through for validation to reject
    txns = [
        t for t in transactions
        if not _is_calendar_date(t.activity_date) or t.activity_date <= snapshot_date
    ]
    replay = replay_positions(user_id, txns, prices)
    warnings = list(replay.warnings)
    warnings.extend(
        f"transaction {r.transaction_id} rejected: {'; '.join(r.reasons)}"
        for r in replay.rejected
    )

    if replay.status == ResultStatus.REJECTED:
        return SnapshotResult(
            snapshot_date=snapshot_date,
            status=ResultStatus.REJECTED,
            warnings=warnings,
            error="every transaction up to this date failed validation",
        )

    snapshot = roll_up(
        user_id, snapshot_date, replay.positions, net_cash_flow(cash_transactions, snapshot_date)
    )
    return SnapshotResult(
        snapshot_date=snapshot_date,
        status=replay.status,
        snapshot=snapshot,
        warnings=warnings,
    )


def daily_pl_change(
    previous: Optional[PortfolioSnapshot],
    current: PortfolioSnapshot,
) -> tuple[float, float]:
    """(absolute change, percent change) of portfolio value vs. previous."""
    if previous is None:
        return 0.0, 0.0
    change = current.portfolio_value - previous.portfolio_value
    if previous.portfolio_value == 0:
        return _money(change), 0.0
    pct = change / abs(previous.portfolio_value) * 100
    return _money(change), round(pct, 4) + 0.0
