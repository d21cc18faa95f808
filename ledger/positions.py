"""Fold ledger state and prices into Position views."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from config import QTY_EPSILON
from ledger.conventions import side_sign, signed_cost_basis, unrealized_pl
from ledger.lot_ledger import LotLedger
from ledger.matcher import MatchingEngine
from ledger.validation import partition_valid
from models import (
    Instrument,
    Lot,
    MatchEvent,
    Position,
    ReplayResult,
    ResultStatus,
    Transaction,
)

logger = logging.getLogger(__name__)


def build_position(
    user_id: int,
    instrument: Instrument,
    lots: list[Lot],
    realized_events: list[MatchEvent],
    current_price: Optional[float] = None,
) -> Position:
    """Build one position from every lot of a lot group and its match events.

    Unrealized P&L is marked per remaining lot at current_price. A missing
    price leaves unrealized at zero and flags the position stale.
    """
    if not lots:
        raise ValueError(f"position for {instrument.label} needs at least one lot")

    opening_qty = sum(lot.quantity_opened for lot in lots)
    current_qty = sum(lot.quantity_remaining for lot in lots)
    is_open = current_qty > QTY_EPSILON
    side = lots[0].side

    avg_price = (
        sum(lot.quantity_opened * lot.unit_cost for lot in lots) / opening_qty
        if opening_qty else 0.0
    )
    total_cost = sum(
        signed_cost_basis(lot.side, lot.quantity_opened, lot.unit_cost, lot.multiplier)
        for lot in lots
    )
    open_cost = sum(
        signed_cost_basis(lot.side, lot.quantity_remaining, lot.unit_cost, lot.multiplier)
        for lot in lots if lot.quantity_remaining > 0
    )
    closing_amount = sum(
        side_sign(e.side) * e.close_price * e.matched_quantity * e.multiplier
        for e in realized_events
    )
    fees = sum(e.fees for e in realized_events) + sum(
        lot.fee_per_unit * lot.quantity_remaining for lot in lots
    )

    unrealized = 0.0
    stale = False
    if is_open:
        if current_price is None:
            stale = True
        else:
            unrealized = sum(
                unrealized_pl(lot.side, lot.unit_cost, current_price,
                              lot.quantity_remaining, lot.multiplier)
                for lot in lots if lot.quantity_remaining > 0
            )

    closing_ids: list[int] = []
    for e in realized_events:
        if e.closing_transaction_id not in closing_ids:
            closing_ids.append(e.closing_transaction_id)

    opening_ids: list[int] = []
    for lot in lots:
        if lot.opening_transaction_id not in opening_ids:
            opening_ids.append(lot.opening_transaction_id)

    return Position(
        user_id=user_id,
        symbol=instrument.symbol,
        asset_type=instrument.asset_type,
        option_type=instrument.option_type,
        strike_price=instrument.strike_price,
        expiration_date=instrument.expiration_date,
        status="open" if is_open else "closed",
        side=side,
        opening_quantity=opening_qty,
        current_quantity=current_qty if is_open else 0.0,
        average_opening_price=avg_price,
        total_cost_basis=total_cost,
        open_cost_basis=open_cost if is_open else 0.0,
        total_closing_amount=closing_amount,
        realized_pl=sum(e.realized_pl for e in realized_events),
        unrealized_pl=unrealized,
        multiplier=lots[0].multiplier,
        opened_at=min(lot.opened_at for lot in lots),
        closed_at=None if is_open else max(
            (e.closed_at for e in realized_events), default=lots[-1].opened_at
        ),
        total_fees=fees,
        current_price=current_price,
        stale=stale,
        flipped_from_over_close=lots[0].from_over_close,
        opening_transaction_ids=opening_ids,
        closing_transaction_ids=closing_ids,
    )


def build_positions(
    user_id: int,
    ledger: LotLedger,
    prices: Optional[Mapping[str, float]] = None,
) -> list[Position]:
    """One position per lot group, in the order instruments were first traded."""
    prices = prices or {}
    positions: list[Position] = []
    for group in ledger.groups():
        price = prices.get(group.instrument.label)
        if price is not None and price < 0:
            logger.warning("Ignoring negative price %s for %s", price, group.instrument.label)
            price = None
        positions.append(build_position(
            user_id, group.instrument, group.lots, group.events, price,
        ))
    return positions


def replay_positions(
    user_id: int,
    transactions: list[Transaction],
    prices: Optional[Mapping[str, float]] = None,
) -> ReplayResult:
    """Validate, match and aggregate one user's transactions from scratch."""
    accepted, rejected = partition_valid(transactions, user_id)
    if transactions and not accepted:
        return ReplayResult(status=ResultStatus.REJECTED, rejected=rejected)

    engine = MatchingEngine()
    engine.replay(accepted)
    positions = build_positions(user_id, engine.ledger, prices)

    warnings = list(engine.warnings)
    stale = [p for p in positions if p.stale]
    if stale:
        warnings.append(
            "No current price for " + ", ".join(p.instrument.label for p in stale)
        )
    degraded = bool(rejected or warnings)
    return ReplayResult(
        status=ResultStatus.DEGRADED if degraded else ResultStatus.OK,
        positions=positions,
        events=list(engine.events),
        warnings=warnings,
        rejected=rejected,
    )
