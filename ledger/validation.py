"""Boundary checks: malformed transactions never reach the matcher."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Optional

from config import (
    ASSET_TYPES,
    OPTION_OPEN_CLOSE_FLAGS,
    OPTION_TERMINAL_ACTIONS,
    OPTION_TYPES,
    SIDES,
    TRANSACTION_ACTIONS,
)
from models import Rejection, Transaction

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised when a transaction cannot be matched as entered."""

    def __init__(self, transaction_id: int, reasons: list[str]):
        self.transaction_id = transaction_id
        self.reasons = reasons
        super().__init__(f"transaction {transaction_id}: " + "; ".join(reasons))


def _bad_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return True
    return not math.isfinite(value)


def transaction_errors(txn: Transaction, user_id: Optional[int] = None) -> list[str]:
    """Return every problem with txn (empty list when valid).

    With user_id, a transaction belonging to anyone else is an error too.
    """
    errors: list[str] = []

    if user_id is not None and txn.user_id != user_id:
        errors.append(f"belongs to user {txn.user_id}, not {user_id}")
    # datetime is a date subclass but does not compare with plain dates
    if not isinstance(txn.activity_date, date) or isinstance(txn.activity_date, datetime):
        errors.append(f"activity date must be a calendar date, got {txn.activity_date!r}")

    if txn.asset_type not in ASSET_TYPES:
        errors.append(f"unknown asset type {txn.asset_type!r}")
    if not txn.symbol or not txn.symbol.strip():
        errors.append("missing symbol")
    if txn.side not in SIDES:
        errors.append(f"unknown side {txn.side!r}")
    if txn.action not in TRANSACTION_ACTIONS:
        errors.append(f"unknown action {txn.action!r}")

    if _bad_number(txn.quantity) or txn.quantity <= 0:
        errors.append(f"quantity must be positive, got {txn.quantity}")

    if txn.price is None:
        if txn.action not in OPTION_TERMINAL_ACTIONS:
            errors.append("price is required for trades")
    elif _bad_number(txn.price) or txn.price < 0:
        errors.append(f"price must be non-negative, got {txn.price}")

    if _bad_number(txn.fees) or txn.fees < 0:
        errors.append(f"fees must be non-negative, got {txn.fees}")
    if txn.multiplier is not None and (_bad_number(txn.multiplier) or txn.multiplier <= 0):
        errors.append(f"multiplier must be positive, got {txn.multiplier}")

    if txn.asset_type == "option":
        if txn.option_type not in OPTION_TYPES:
            errors.append(f"option type must be call or put, got {txn.option_type!r}")
        if txn.strike_price is None:
            errors.append("options require a strike price")
        elif _bad_number(txn.strike_price) or txn.strike_price <= 0:
            errors.append(f"strike price must be positive, got {txn.strike_price}")
        if txn.expiration_date is None:
            errors.append("options require an expiration date")
        if txn.open_close is not None:
            flag = OPTION_OPEN_CLOSE_FLAGS.get(txn.open_close)
            if flag is None:
                errors.append(f"unknown open/close flag {txn.open_close!r}")
            elif flag[0] != txn.side and txn.side in SIDES:
                errors.append(f"{txn.open_close} conflicts with side {txn.side!r}")
    else:
        if txn.open_close is not None:
            errors.append("open/close flags only apply to options")
        if txn.action in OPTION_TERMINAL_ACTIONS:
            errors.append(f"{txn.action!r} only applies to options")

    return errors


def validate_transaction(txn: Transaction, user_id: Optional[int] = None) -> Transaction:
    """Raise ValidationError if txn is malformed, else return it unchanged."""
    errors = transaction_errors(txn, user_id)
    if errors:
        raise ValidationError(txn.id, errors)
    return txn


def partition_valid(
    transactions: list[Transaction],
    user_id: Optional[int] = None,
) -> tuple[list[Transaction], list[Rejection]]:
    """Split into (accepted, rejected) without raising."""
    accepted: list[Transaction] = []
    rejected: list[Rejection] = []
    for txn in transactions:
        try:
            accepted.append(validate_transaction(txn, user_id))
        except ValidationError as exc:
            logger.warning("Rejected transaction %s: %s", txn.id, "; ".join(exc.reasons))
            rejected.append(Rejection(txn.id, tuple(exc.reasons)))
    return accepted, rejected
