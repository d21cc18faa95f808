"""FIFO lot queues, one per instrument."""

from __future__ import annotations

import copy
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from config import QTY_EPSILON
from ledger.conventions import lot_side_for, realized_pl
from models import Instrument, Lot, MatchEvent, Transaction


@dataclass
class LotGroup:
    """Every lot opened between two flat points of one instrument.

    A group becomes a Position: it opens with the first lot on a flat
    instrument and closes when its queue empties again.
    """
    group_id: int
    instrument: Instrument
    side: str
    opened_at: date
    lots: list[Lot] = field(default_factory=list)
    events: list[MatchEvent] = field(default_factory=list)
    closing_transaction_ids: list[int] = field(default_factory=list)
    closed_at: Optional[date] = None

    @property
    def is_open(self) -> bool:
        return self.closed_at is None


class LotLedger:
    """Ordered queues of open lots keyed by instrument.

    Lots are matched strictly oldest-first. Callers must feed transactions
    in (activity_date, id) order; the ledger does not re-sort.
    """

    def __init__(self):
        self._queues: dict[Instrument, deque[Lot]] = defaultdict(deque)
        self._groups: dict[Instrument, list[LotGroup]] = defaultdict(list)
        self._next_lot_id = 1
        self._next_group_id = 1
        # Conservation counters: opened - matched == remaining
        self.quantity_opened = 0.0
        self.quantity_matched = 0.0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def instruments(self) -> list[Instrument]:
        return list(self._groups.keys())

    def open_lots(self, instrument: Instrument) -> list[Lot]:
        return list(self._queues.get(instrument, ()))

    def open_quantity(self, instrument: Instrument) -> float:
        return sum(lot.quantity_remaining for lot in self._queues.get(instrument, ()))

    def open_side(self, instrument: Instrument) -> Optional[str]:
        """Side of the open lots, or None when the instrument is flat."""
        queue = self._queues.get(instrument)
        return queue[0].side if queue else None

    def total_open_quantity(self) -> float:
        return sum(lot.quantity_remaining for q in self._queues.values() for lot in q)

    def groups(self, instrument: Optional[Instrument] = None) -> list[LotGroup]:
        if instrument is not None:
            return list(self._groups.get(instrument, ()))
        return [g for groups in self._groups.values() for g in groups]

    def copy(self) -> "LotLedger":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_open(
        self,
        txn: Transaction,
        quantity: Optional[float] = None,
        from_over_close: bool = False,
    ) -> Lot:
        """Append a new lot for txn at the back of its instrument's queue."""
        instrument = txn.instrument
        qty = txn.quantity if quantity is None else quantity
        side = lot_side_for(txn.side)
        queue = self._queues[instrument]

        if not queue:
            self._groups[instrument].append(LotGroup(
                group_id=self._next_group_id,
                instrument=instrument,
                side=side,
                opened_at=txn.activity_date,
            ))
            self._next_group_id += 1

        lot = Lot(
            lot_id=self._next_lot_id,
            opening_transaction_id=txn.id,
            side=side,
            quantity_opened=qty,
            quantity_remaining=qty,
            unit_cost=txn.price or 0.0,
            multiplier=txn.contract_multiplier,
            opened_at=txn.activity_date,
            fee_per_unit=txn.fees / txn.quantity if txn.quantity else 0.0,
            from_over_close=from_over_close,
        )
        self._next_lot_id += 1
        queue.append(lot)
        self._groups[instrument][-1].lots.append(lot)
        self.quantity_opened += qty
        return lot

    def apply_close(
        self,
        txn: Transaction,
        close_price: Optional[float] = None,
        allow_flip: bool = True,
    ) -> tuple[list[MatchEvent], float]:
        """Consume txn.quantity FIFO from the front of the queue.

        Returns (events, excess). When allow_flip is set, an excess opens a
        new lot on the transaction's own side; otherwise it is dropped and
        reported to the caller.
        """
        instrument = txn.instrument
        queue = self._queues[instrument]
        price = txn.price if close_price is None else close_price
        closing_fee_per_unit = txn.fees / txn.quantity if txn.quantity else 0.0
        remaining = txn.quantity
        events: list[MatchEvent] = []

        group = self._groups[instrument][-1] if queue else None

        while remaining > QTY_EPSILON and queue:
            lot = queue[0]
            match_qty = min(remaining, lot.quantity_remaining)
            fees = (lot.fee_per_unit + closing_fee_per_unit) * match_qty

            event = MatchEvent(
                lot_id=lot.lot_id,
                opening_transaction_id=lot.opening_transaction_id,
                closing_transaction_id=txn.id,
                side=lot.side,
                matched_quantity=match_qty,
                open_price=lot.unit_cost,
                close_price=price,
                multiplier=lot.multiplier,
                fees=fees,
                realized_pl=realized_pl(
                    lot.side, lot.unit_cost, price, match_qty, lot.multiplier, fees
                ),
                closed_at=txn.activity_date,
            )
            events.append(event)
            group.events.append(event)

            lot.quantity_remaining -= match_qty
            remaining -= match_qty
            self.quantity_matched += match_qty

            if lot.quantity_remaining < QTY_EPSILON:
                lot.quantity_remaining = 0.0
                queue.popleft()

        if group is not None and events:
            if txn.id not in group.closing_transaction_ids:
                group.closing_transaction_ids.append(txn.id)
            if not queue:
                group.closed_at = txn.activity_date

        excess = remaining if remaining > QTY_EPSILON else 0.0
        if excess and allow_flip:
            self.apply_open(txn, quantity=excess, from_over_close=True)
        return events, excess
