"""Tests for the portfolio summary handed to insight generation."""

from __future__ import annotations

from datetime import date

from ledger.positions import replay_positions
from ledger.snapshots import compute_snapshot
from ledger.summary import build_portfolio_summary
from models import CashTransaction, Transaction

D0 = date(2025, 8, 4)
CASH = [CashTransaction(1, 1, D0, "DEPOSIT", 5000.0)]
TXNS = [
    Transaction(1, 1, "stock", "AAPL", "buy", 10, 100.0, D0),
    Transaction(2, 1, "stock", "AAPL", "sell", 10, 120.0, D0),
    Transaction(3, 1, "stock", "TSLA", "buy", 5, 200.0, D0),
    Transaction(4, 1, "stock", "TSLA", "sell", 5, 190.0, D0),
    Transaction(5, 1, "stock", "NVDA", "buy", 2, 50.0, D0),
    Transaction(6, 1, "stock", "NVDA", "sell", 2, 55.0, D0),
    Transaction(7, 1, "crypto", "ETH", "buy", 1, 3000.0, D0),
]


def _summary(txns=TXNS, prices=None):
    prices = prices if prices is not None else {"ETH": 3100.0}
    snapshot = compute_snapshot(1, D0, txns, CASH, prices).snapshot
    positions = replay_positions(1, txns, prices).positions
    return build_portfolio_summary(snapshot, positions)


class TestPortfolioSummary:
    def test_totals_come_from_snapshot(self):
        s = _summary()
        assert s.user_id == 1
        assert s.as_of == D0
        assert s.net_cash_flow == 5000.0
        assert s.total_realized_pl == 160.0
        assert s.total_unrealized_pl == 100.0
        assert s.portfolio_value == 5000.0 + 160.0 + 3100.0

    def test_win_loss_counts(self):
        s = _summary()
        assert s.closed_positions_count == 3
        assert s.winning_positions == 2
        assert s.losing_positions == 1
        assert s.win_rate == 66.7
        assert s.largest_winner == "AAPL"
        assert s.largest_winner_pl == 200.0
        assert s.largest_loser == "TSLA"
        assert s.largest_loser_pl == -50.0

    def test_open_by_asset_type(self):
        s = _summary()
        assert s.open_positions_count == 1
        assert s.open_by_asset_type == {"stock": 0, "option": 0, "crypto": 1, "futures": 0}

    def test_no_closed_positions(self):
        s = _summary(txns=TXNS[-1:], prices={})
        assert s.win_rate == 0.0
        assert s.largest_winner is None
        assert s.largest_loser is None
        assert s.stale_positions_count == 1
