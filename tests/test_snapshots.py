"""Tests for the portfolio snapshot roll-up."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import date, timedelta

import pytest

from ledger.snapshots import compute_snapshot, daily_pl_change, net_cash_flow
from models import CashTransaction, ResultStatus, Transaction

D0 = date(2025, 3, 3)
EXP = date(2025, 3, 21)


def _txn(id, side, qty, price, day=0, symbol="AAPL", asset_type="stock", **kw) -> Transaction:
    return Transaction(
        id=id, user_id=1, asset_type=asset_type, symbol=symbol, side=side,
        quantity=qty, price=price, activity_date=D0 + timedelta(days=day), **kw,
    )


def _cash(id, amount, day=0, code="DEPOSIT") -> CashTransaction:
    return CashTransaction(id=id, user_id=1, transaction_date=D0 + timedelta(days=day),
                           transaction_code=code, amount=amount)


DEPOSIT = [_cash(1, 10000.0)]


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

class TestEndToEnd:
    def test_deposit_buy_sell(self):
        txns = [_txn(1, "buy", 10, 150.0), _txn(2, "sell", 10, 155.0)]
        result = compute_snapshot(1, D0, txns, DEPOSIT)
        assert result.status == ResultStatus.OK
        snap = result.snapshot
        assert snap.net_cash_flow == 10000.0
        assert snap.total_realized_pl == 50.0
        assert snap.open_positions_count == 0
        assert snap.total_positions_count == 1
        assert snap.total_market_value == 0.0
        assert snap.portfolio_value == 10050.0

    def test_recompute_is_identical(self):
        txns = [
            _txn(1, "buy", 3, 101.37, fees=0.65),
            _txn(2, "sell", 1, 99.91, day=1, fees=0.65),
            _txn(3, "buy", 0.5, 2450.1, symbol="ETH", asset_type="crypto"),
        ]
        prices = {"AAPL": 102.2, "ETH": 2500.0}
        first = compute_snapshot(1, D0 + timedelta(days=1), txns, DEPOSIT, prices)
        second = compute_snapshot(1, D0 + timedelta(days=1), txns, DEPOSIT, prices)
        assert first.snapshot == second.snapshot

    def test_expired_long_call_loses_premium(self):
        opt = dict(asset_type="option", option_type="call", strike_price=150.0,
                   expiration_date=EXP)
        txns = [
            _txn(1, "buy", 1, 5.5, open_close="BTO", **opt),
            _txn(2, "sell", 1, None, day=18, action="expired", **opt),
        ]
        snap = compute_snapshot(1, EXP, txns, [_cash(1, 1000.0)]).snapshot
        assert snap.total_realized_pl == -550.0
        assert snap.portfolio_value == 450.0
        assert snap.open_positions_count == 0


# ---------------------------------------------------------------------------
# Cash flow
# ---------------------------------------------------------------------------

class TestNetCashFlow:
    def test_margin_codes_excluded(self):
        cash = DEPOSIT + [
            _cash(2, -5000.0, code="FUTURES_MARGIN"),
            _cash(3, 5000.0, day=1, code="FUTURES_MARGIN_RELEASE"),
            _cash(4, -250.0, code="WITHDRAWAL"),
        ]
        assert net_cash_flow(cash, D0 + timedelta(days=1)) == 9750.0

    def test_later_cash_excluded(self):
        cash = DEPOSIT + [_cash(2, 500.0, day=5)]
        assert net_cash_flow(cash, D0) == 10000.0

    def test_later_transactions_excluded(self):
        txns = [_txn(1, "buy", 10, 150.0), _txn(2, "sell", 10, 155.0, day=1)]
        result = compute_snapshot(1, D0, txns, DEPOSIT, {"AAPL": 150.0})
        assert result.snapshot.open_positions_count == 1
        assert result.snapshot.total_realized_pl == 0.0


# ---------------------------------------------------------------------------
# Market value per asset class
# ---------------------------------------------------------------------------

class TestMarketValue:
    def test_long_stock(self):
        snap = compute_snapshot(1, D0, [_txn(1, "buy", 10, 150.0)], DEPOSIT,
                                {"AAPL": 152.0}).snapshot
        assert snap.total_unrealized_pl == 20.0
        assert snap.total_market_value == 1520.0
        assert snap.portfolio_value == 11520.0
        assert snap.positions_breakdown["stocks"].count == 1
        assert snap.positions_breakdown["stocks"].value == 1520.0

    def test_short_stock_is_a_liability(self):
        snap = compute_snapshot(1, D0, [_txn(1, "sell", 10, 50.0)], DEPOSIT,
                                {"AAPL": 45.0}).snapshot
        assert snap.total_unrealized_pl == 50.0
        assert snap.total_market_value == -450.0

    def test_futures_counts_unrealized_only(self):
        txns = [_txn(1, "buy", 1, 5000.0, symbol="ES", asset_type="futures")]
        cash = DEPOSIT + [_cash(2, -12000.0, code="FUTURES_MARGIN")]
        snap = compute_snapshot(1, D0, txns, cash, {"ES": 5010.0}).snapshot
        assert snap.total_market_value == 500.0
        assert snap.positions_breakdown["futures"].value == 500.0
        assert snap.portfolio_value == 10500.0

    def test_long_option_uses_multiplier(self):
        txns = [_txn(1, "buy", 1, 5.0, asset_type="option", option_type="call",
                     strike_price=150.0, expiration_date=EXP, open_close="BTO")]
        snap = compute_snapshot(1, D0, txns, DEPOSIT,
                                {"AAPL 2025-03-21 150 call": 6.0}).snapshot
        assert snap.total_market_value == 600.0
        assert snap.positions_breakdown["options"].count == 1

    def test_breakdown_has_every_asset_class(self):
        snap = compute_snapshot(1, D0, [], DEPOSIT).snapshot
        assert set(snap.positions_breakdown) == {"stocks", "options", "crypto", "futures"}
        assert all(b.count == 0 for b in snap.positions_breakdown.values())

    def test_money_fields_are_rounded(self):
        txns = [_txn(1, "buy", 3, 0.1), _txn(2, "sell", 3, 0.2)]
        snap = compute_snapshot(1, D0, txns, []).snapshot
        assert snap.total_realized_pl == 0.3
        assert math.copysign(1.0, snap.total_market_value) == 1.0


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

class TestStatus:
    def test_stale_position_degrades(self):
        result = compute_snapshot(1, D0, [_txn(1, "buy", 10, 150.0)], DEPOSIT)
        assert result.status == ResultStatus.DEGRADED
        assert result.snapshot.stale_positions_count == 1
        # stale position still carries its cost
        assert result.snapshot.total_market_value == 1500.0

    def test_rejected_input_is_reported(self):
        txns = [_txn(1, "buy", 10, 150.0), replace(_txn(2, "sell", 10, 155.0), fees=-1.0)]
        result = compute_snapshot(1, D0, txns, DEPOSIT, {"AAPL": 150.0})
        assert result.status == ResultStatus.DEGRADED
        assert any("transaction 2 rejected" in w for w in result.warnings)

    def test_undated_transaction_is_rejected(self):
        txns = [_txn(1, "buy", 10, 150.0), replace(_txn(2, "sell", 10, 155.0), activity_date=None)]
        result = compute_snapshot(1, D0, txns, DEPOSIT, {"AAPL": 150.0})
        assert result.status == ResultStatus.DEGRADED
        assert any("transaction 2 rejected" in w for w in result.warnings)
        assert result.snapshot.open_positions_count == 1

    def test_all_rejected(self):
        result = compute_snapshot(1, D0, [_txn(1, "buy", 0, 150.0)], DEPOSIT)
        assert result.status == ResultStatus.REJECTED
        assert result.snapshot is None
        assert result.error


# ---------------------------------------------------------------------------
# daily_pl_change
# ---------------------------------------------------------------------------

class TestDailyPlChange:
    def _snap(self, value):
        txns = [_txn(1, "buy", 1, 1.0), _txn(2, "sell", 1, 1.0)]
        return compute_snapshot(1, D0, txns, [_cash(1, value)]).snapshot

    def test_no_previous(self):
        assert daily_pl_change(None, self._snap(100.0)) == (0.0, 0.0)

    def test_change_and_percent(self):
        change, pct = daily_pl_change(self._snap(10000.0), self._snap(10050.0))
        assert change == 50.0
        assert pct == pytest.approx(0.5)

    def test_zero_previous_value(self):
        assert daily_pl_change(self._snap(0.0), self._snap(25.0)) == (25.0, 0.0)
