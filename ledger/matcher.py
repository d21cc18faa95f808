"""Replay transactions through the lot ledger and emit realized P&L events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from config import OPTION_TERMINAL_ACTIONS
from ledger.conventions import lot_side_for
from ledger.lot_ledger import LotLedger
from models import MatchEvent, Transaction

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """What one transaction did to the ledger."""
    transaction_id: int
    events: list[MatchEvent] = field(default_factory=list)
    opened_lot_ids: list[int] = field(default_factory=list)
    over_close_quantity: float = 0.0
    warnings: list[str] = field(default_factory=list)


def sort_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """Order by (activity_date, id); FIFO results depend on it."""
    return sorted(transactions, key=lambda t: t.sort_key)


def terminal_close_price(txn: Transaction) -> float:
    """Price used to retire an option on expiration, assignment or exercise.

    An explicit price wins. Otherwise the contract closes at zero, which books
    the full premium as a loss on a long and as a gain on a short.
    """
    return txn.price if txn.price is not None else 0.0


class MatchingEngine:
    """Stateful FIFO matcher over one user's transaction stream.

    Transactions must already be validated. Processing is a fold: the same
    transactions in the same order always produce the same ledger.
    """

    def __init__(self, ledger: LotLedger | None = None):
        self.ledger = ledger if ledger is not None else LotLedger()
        self.events: list[MatchEvent] = []
        self.warnings: list[str] = []
        self._last_key = None

    def process(self, txn: Transaction) -> StepOutcome:
        key = txn.sort_key
        if self._last_key is not None and key < self._last_key:
            # Out-of-order input silently corrupts FIFO results
            raise ValueError(
                f"transaction {txn.id} ({txn.activity_date}) arrived after "
                f"{self._last_key}; replay must be in (activity_date, id) order"
            )
        self._last_key = key

        if txn.action in OPTION_TERMINAL_ACTIONS:
            outcome = self._retire(txn)
        else:
            outcome = self._trade(txn)

        self.events.extend(outcome.events)
        self.warnings.extend(outcome.warnings)
        return outcome

    def replay(self, transactions: list[Transaction]) -> list[StepOutcome]:
        return [self.process(txn) for txn in sort_transactions(transactions)]

    # ------------------------------------------------------------------

    def _trade(self, txn: Transaction) -> StepOutcome:
        outcome = StepOutcome(transaction_id=txn.id)
        instrument = txn.instrument
        held_side = self.ledger.open_side(instrument)
        txn_lot_side = lot_side_for(txn.side)

        if held_side is None or held_side == txn_lot_side:
            if txn.is_closing_flagged:
                # STC/BTC with nothing on the other side to close
                self._note_over_close(outcome, txn, txn.quantity, 0.0)
            lot = self.ledger.apply_open(txn, from_over_close=txn.is_closing_flagged)
            outcome.opened_lot_ids.append(lot.lot_id)
            return outcome

        available = self.ledger.open_quantity(instrument)
        events, excess = self.ledger.apply_close(txn)
        outcome.events.extend(events)
        if excess:
            self._note_over_close(outcome, txn, excess, available)
            outcome.opened_lot_ids.append(self.ledger.open_lots(instrument)[-1].lot_id)
        return outcome

    def _retire(self, txn: Transaction) -> StepOutcome:
        outcome = StepOutcome(transaction_id=txn.id)
        instrument = txn.instrument
        if self.ledger.open_side(instrument) is None:
            msg = (f"{txn.action} transaction {txn.id} for {instrument.label} "
                   f"has no open contracts to retire")
            logger.warning(msg)
            outcome.warnings.append(msg)
            return outcome

        events, excess = self.ledger.apply_close(
            txn, close_price=terminal_close_price(txn), allow_flip=False,
        )
        outcome.events.extend(events)
        if excess:
            msg = (f"{txn.action} transaction {txn.id} for {instrument.label} "
                   f"exceeds open contracts by {excess:g}; excess ignored")
            logger.warning(msg)
            outcome.warnings.append(msg)
        return outcome

    def _note_over_close(self, outcome: StepOutcome, txn: Transaction,
                         excess: float, available: float):
        msg = (f"Over-close on {txn.instrument.label}: transaction {txn.id} "
               f"closes {txn.quantity:g} but only {available:g} open; "
               f"{excess:g} opened on the {lot_side_for(txn.side)} side")
        logger.warning(msg)
        outcome.over_close_quantity = excess
        outcome.warnings.append(msg)


def step(ledger: LotLedger, txn: Transaction) -> tuple[LotLedger, list[MatchEvent]]:
    """Pure form of MatchingEngine.process: the input ledger is untouched."""
    engine = MatchingEngine(ledger.copy())
    outcome = engine.process(txn)
    return engine.ledger, outcome.events


def match_transactions(transactions: list[Transaction]) -> MatchingEngine:
    """Replay transactions from an empty ledger and return the engine."""
    engine = MatchingEngine()
    engine.replay(transactions)
    return engine
