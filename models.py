"""Data models for the transaction ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from config import OPTION_OPEN_CLOSE_FLAGS, default_multiplier


@dataclass(frozen=True)
class Instrument:
    """Matching key: lots never cross instruments."""
    symbol: str
    asset_type: str
    option_type: Optional[str] = None
    strike_price: Optional[float] = None
    expiration_date: Optional[date] = None

    @property
    def label(self) -> str:
        """Price-map key, e.g. "AAPL" or "AAPL 2025-01-17 150 call"."""
        if self.asset_type != "option":
            return self.symbol
        exp = self.expiration_date.isoformat() if self.expiration_date else "?"
        strike = f"{self.strike_price:g}" if self.strike_price is not None else "?"
        return f"{self.symbol} {exp} {strike} {self.option_type or '?'}"


@dataclass(frozen=True)
class Transaction:
    """One trade or option lifecycle event. Never mutated after creation."""
    id: int  # sequence id, breaks same-day ties
    user_id: int
    asset_type: str  # stock, option, crypto, futures
    symbol: str
    side: str  # buy or sell
    quantity: float
    price: Optional[float]  # None only for expired/assigned/exercised options
    activity_date: date
    fees: float = 0.0
    multiplier: Optional[float] = None  # None -> resolved from asset type
    option_type: Optional[str] = None  # call or put
    strike_price: Optional[float] = None
    expiration_date: Optional[date] = None
    open_close: Optional[str] = None  # BTO, STO, STC, BTC
    action: str = "trade"  # trade, expired, assigned, exercised
    description: str = ""

    @property
    def instrument(self) -> Instrument:
        return Instrument(
            symbol=self.symbol.upper().strip(),
            asset_type=self.asset_type,
            option_type=self.option_type if self.asset_type == "option" else None,
            strike_price=self.strike_price if self.asset_type == "option" else None,
            expiration_date=self.expiration_date if self.asset_type == "option" else None,
        )

    @property
    def sort_key(self) -> tuple[date, int]:
        return (self.activity_date, self.id)

    @property
    def contract_multiplier(self) -> float:
        if self.multiplier:
            return self.multiplier
        return default_multiplier(self.asset_type, self.symbol)

    @property
    def is_closing_flagged(self) -> bool:
        """True for STC/BTC, which should only ever reduce exposure."""
        flag = OPTION_OPEN_CLOSE_FLAGS.get(self.open_close or "")
        return flag is not None and not flag[1]


@dataclass(frozen=True)
class CashTransaction:
    """Deposit, withdrawal, dividend, margin posting, etc."""
    id: int
    user_id: int
    transaction_date: date
    transaction_code: str  # e.g. "DEPOSIT", "WITHDRAWAL", "FUTURES_MARGIN"
    amount: float  # positive = money in, negative = money out
    description: str = ""
    symbol: Optional[str] = None


@dataclass
class Lot:
    """A still-open (or historical) slice of a position."""
    lot_id: int
    opening_transaction_id: int
    side: str  # long or short
    quantity_opened: float
    quantity_remaining: float
    unit_cost: float
    multiplier: float
    opened_at: date
    fee_per_unit: float = 0.0
    from_over_close: bool = False  # opened by the excess of an over-close


@dataclass(frozen=True)
class MatchEvent:
    """Realized P&L from matching part of a closing transaction against one lot."""
    lot_id: int
    opening_transaction_id: int
    closing_transaction_id: int
    side: str  # side of the lot that was closed
    matched_quantity: float
    open_price: float
    close_price: float
    multiplier: float
    fees: float  # opening + closing fees allocated to this slice
    realized_pl: float
    closed_at: date


@dataclass
class Position:
    """Derived view over one lot group (flat -> exposure -> flat)."""
    user_id: int
    symbol: str
    asset_type: str
    status: str  # open or closed
    side: str  # long or short
    opening_quantity: float
    current_quantity: float
    average_opening_price: float
    total_cost_basis: float  # negative = debit (long), positive = credit (short)
    open_cost_basis: float  # same convention, remaining lots only
    total_closing_amount: float
    realized_pl: float
    unrealized_pl: float
    multiplier: float
    opened_at: date
    closed_at: Optional[date] = None
    option_type: Optional[str] = None
    strike_price: Optional[float] = None
    expiration_date: Optional[date] = None
    total_fees: float = 0.0
    current_price: Optional[float] = None
    stale: bool = False  # open but no price available
    flipped_from_over_close: bool = False
    opening_transaction_ids: list[int] = field(default_factory=list)
    closing_transaction_ids: list[int] = field(default_factory=list)

    @property
    def instrument(self) -> Instrument:
        return Instrument(self.symbol, self.asset_type, self.option_type,
                          self.strike_price, self.expiration_date)

    @property
    def is_open(self) -> bool:
        return self.status == "open"


@dataclass
class AssetBreakdown:
    count: int = 0
    value: float = 0.0


@dataclass
class PortfolioSnapshot:
    """Point-in-time portfolio totals for one user on one date."""
    user_id: int
    snapshot_date: date
    portfolio_value: float
    net_cash_flow: float
    total_market_value: float
    total_realized_pl: float
    total_unrealized_pl: float
    open_positions_count: int
    total_positions_count: int
    positions_breakdown: dict[str, AssetBreakdown]
    stale_positions_count: int = 0
    # vs. the latest stored snapshot before snapshot_date
    daily_pl_change: float = 0.0
    daily_pl_change_pct: float = 0.0


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class ResultStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"  # computed, but with stale prices or skipped input
    REJECTED = "rejected"  # input failed validation
    FAILED = "failed"  # computation or storage raised


@dataclass(frozen=True)
class Rejection:
    transaction_id: int
    reasons: tuple[str, ...]


@dataclass
class ReplayResult:
    """Outcome of replaying one user's transactions."""
    status: ResultStatus
    positions: list[Position] = field(default_factory=list)
    events: list[MatchEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)


@dataclass
class SnapshotResult:
    snapshot_date: date
    status: ResultStatus
    snapshot: Optional[PortfolioSnapshot] = None
    warnings: list[str] = field(default_factory=list)
    error: str = ""


@dataclass
class SnapshotBatchResult:
    user_id: int
    results: list[SnapshotResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[SnapshotResult]:
        return [r for r in self.results
                if r.status in (ResultStatus.OK, ResultStatus.DEGRADED)]

    @property
    def failed(self) -> list[SnapshotResult]:
        return [r for r in self.results
                if r.status in (ResultStatus.REJECTED, ResultStatus.FAILED)]


@dataclass
class PortfolioSummary:
    """Typed portfolio context handed to insight generation."""
    user_id: int
    as_of: date
    portfolio_value: float
    net_cash_flow: float
    total_realized_pl: float
    total_unrealized_pl: float
    open_positions_count: int
    closed_positions_count: int
    open_by_asset_type: dict[str, int]
    winning_positions: int
    losing_positions: int
    win_rate: float  # percent of closed positions with realized_pl > 0
    largest_winner: Optional[str] = None
    largest_winner_pl: float = 0.0
    largest_loser: Optional[str] = None
    largest_loser_pl: float = 0.0
    stale_positions_count: int = 0
