"""Sign and valuation conventions, one function per asset class.

Cost basis is signed from the account's point of view: establishing a long
position pays cash (negative), establishing a short position receives cash
(positive). The same rule holds for stocks, options, crypto and futures.

Market value differs by asset class. Stocks, options and crypto carry their
cost on the books, so an open position is worth |cost| plus its unrealized
P&L (minus |cost| when short, since the position is a liability). Futures
carry no cash cost, only margin, so their market value is the unrealized P&L
alone.
"""

from __future__ import annotations

from typing import Callable


def side_sign(side: str) -> int:
    """+1 for long lots, -1 for short lots."""
    return 1 if side == "long" else -1


def lot_side_for(txn_side: str) -> str:
    """Side of a lot opened by a buy or sell."""
    return "long" if txn_side == "buy" else "short"


def signed_cost_basis(side: str, quantity: float, price: float, multiplier: float) -> float:
    """Cash attributed to establishing quantity at price: long < 0, short > 0."""
    return -side_sign(side) * quantity * price * multiplier


def realized_pl(
    side: str,
    open_price: float,
    close_price: float,
    quantity: float,
    multiplier: float,
    fees: float = 0.0,
) -> float:
    return side_sign(side) * (close_price - open_price) * quantity * multiplier - fees


def unrealized_pl(
    side: str,
    open_price: float,
    current_price: float,
    quantity: float,
    multiplier: float,
) -> float:
    return side_sign(side) * (current_price - open_price) * quantity * multiplier


# ---------------------------------------------------------------------------
# Market value per asset class
# ---------------------------------------------------------------------------

def _carried_cost_value(side: str, cost_basis: float, unrealized: float) -> float:
    if side == "long":
        return abs(cost_basis) + unrealized
    return -abs(cost_basis) + unrealized


def stock_market_value(side: str, cost_basis: float, unrealized: float) -> float:
    return _carried_cost_value(side, cost_basis, unrealized)


def option_market_value(side: str, cost_basis: float, unrealized: float) -> float:
    return _carried_cost_value(side, cost_basis, unrealized)


def crypto_market_value(side: str, cost_basis: float, unrealized: float) -> float:
    return _carried_cost_value(side, cost_basis, unrealized)


def futures_market_value(side: str, cost_basis: float, unrealized: float) -> float:
    # Only margin changes hands when a futures position opens
    return unrealized


MARKET_VALUE_BY_ASSET: dict[str, Callable[[str, float, float], float]] = {
    "stock": stock_market_value,
    "option": option_market_value,
    "crypto": crypto_market_value,
    "futures": futures_market_value,
}


def market_value(asset_type: str, side: str, cost_basis: float, unrealized: float) -> float:
    """Signed market value of an open position."""
    return MARKET_VALUE_BY_ASSET[asset_type](side, cost_basis, unrealized)


# Keys used in PortfolioSnapshot.positions_breakdown
BREAKDOWN_KEYS = {
    "stock": "stocks",
    "option": "options",
    "crypto": "crypto",
    "futures": "futures",
}
