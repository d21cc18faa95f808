"""Typed portfolio summary for downstream insight generation."""

from __future__ import annotations

from config import ASSET_TYPES
from models import PortfolioSnapshot, PortfolioSummary, Position


def build_portfolio_summary(
    snapshot: PortfolioSnapshot,
    positions: list[Position],
) -> PortfolioSummary:
    closed = [p for p in positions if not p.is_open]
    winners = [p for p in closed if p.realized_pl > 0]
    losers = [p for p in closed if p.realized_pl < 0]

    open_by_type = {asset: 0 for asset in ASSET_TYPES}
    for p in positions:
        if p.is_open:
            open_by_type[p.asset_type] += 1

    best = max(closed, key=lambda p: p.realized_pl, default=None)
    worst = min(closed, key=lambda p: p.realized_pl, default=None)

    return PortfolioSummary(
        user_id=snapshot.user_id,
        as_of=snapshot.snapshot_date,
        portfolio_value=snapshot.portfolio_value,
        net_cash_flow=snapshot.net_cash_flow,
        total_realized_pl=snapshot.total_realized_pl,
        total_unrealized_pl=snapshot.total_unrealized_pl,
        open_positions_count=snapshot.open_positions_count,
        closed_positions_count=len(closed),
        open_by_asset_type=open_by_type,
        winning_positions=len(winners),
        losing_positions=len(losers),
        win_rate=round(len(winners) / len(closed) * 100, 1) if closed else 0.0,
        largest_winner=best.instrument.label if best and best.realized_pl > 0 else None,
        largest_winner_pl=round(best.realized_pl, 2) if best and best.realized_pl > 0 else 0.0,
        largest_loser=worst.instrument.label if worst and worst.realized_pl < 0 else None,
        largest_loser_pl=round(worst.realized_pl, 2) if worst and worst.realized_pl < 0 else 0.0,
        stale_positions_count=snapshot.stale_positions_count,
    )
