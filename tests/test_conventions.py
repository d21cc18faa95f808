"""Sign conventions per asset class."""

import pytest

from ledger.conventions import (
    crypto_market_value,
    futures_market_value,
    market_value,
    option_market_value,
    realized_pl,
    side_sign,
    signed_cost_basis,
    stock_market_value,
    unrealized_pl,
)

ASSET_TYPES = ["stock", "option", "crypto", "futures"]


class TestCostBasis:
    @pytest.mark.parametrize("multiplier", [1, 100, 50, 0.5])
    def test_long_is_debit_short_is_credit(self, multiplier):
        assert signed_cost_basis("long", 10, 4.0, multiplier) < 0
        assert signed_cost_basis("short", 10, 4.0, multiplier) > 0

    def test_long_stock(self):
        assert signed_cost_basis("long", 10, 150.0, 1) == -1500.0

    def test_short_option_credit(self):
        assert signed_cost_basis("short", 1, 5.0, 100) == 500.0

    def test_zero_price_is_zero(self):
        assert signed_cost_basis("long", 3, 0.0, 100) == 0


class TestPl:
    def test_side_sign(self):
        assert side_sign("long") == 1
        assert side_sign("short") == -1

    @pytest.mark.parametrize("side,open_,close,expected", [
        ("long", 100.0, 110.0, 100.0),
        ("long", 100.0, 90.0, -100.0),
        ("short", 100.0, 90.0, 100.0),
        ("short", 100.0, 110.0, -100.0),
    ])
    def test_realized_direction(self, side, open_, close, expected):
        assert realized_pl(side, open_, close, 10, 1) == pytest.approx(expected)

    def test_realized_subtracts_fees(self):
        assert realized_pl("long", 1.0, 2.0, 1, 100, fees=1.3) == pytest.approx(98.7)

    def test_unrealized_matches_realized_without_fees(self):
        assert unrealized_pl("short", 5.0, 3.0, 2, 100) == realized_pl("short", 5.0, 3.0, 2, 100)


class TestMarketValue:
    @pytest.mark.parametrize("fn", [stock_market_value, option_market_value, crypto_market_value])
    def test_cost_carrying_classes_long(self, fn):
        # cost sign on input does not matter, magnitude is used
        assert fn("long", -1500.0, 100.0) == pytest.approx(1600.0)

    @pytest.mark.parametrize("fn", [stock_market_value, option_market_value, crypto_market_value])
    def test_cost_carrying_classes_short(self, fn):
        assert fn("short", 500.0, 200.0) == pytest.approx(-300.0)

    @pytest.mark.parametrize("side", ["long", "short"])
    def test_futures_is_unrealized_only(self, side):
        assert futures_market_value(side, -250000.0, 1250.0) == 1250.0

    @pytest.mark.parametrize("asset_type", ASSET_TYPES)
    def test_dispatch_covers_every_asset_class(self, asset_type):
        value = market_value(asset_type, "long", -100.0, 10.0)
        assert value == (10.0 if asset_type == "futures" else 110.0)
