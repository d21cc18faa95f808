"""Constants, asset-class conventions and contract specifications."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

DB_PATH = os.environ.get(
    "LEDGER_DB_PATH",
    os.path.join(os.path.dirname(__file__), "data", "ledger.db"),
)

# ---------------------------------------------------------------------------
# Asset classes and transaction vocabulary
# ---------------------------------------------------------------------------

ASSET_TYPES = ("stock", "option", "crypto", "futures")

OPTION_TYPES = ("call", "put")

SIDES = ("buy", "sell")

# BTO/STO open exposure, STC/BTC reduce it
OPTION_OPEN_CLOSE_FLAGS = {
    "BTO": ("buy", True),
    "STO": ("sell", True),
    "STC": ("sell", False),
    "BTC": ("buy", False),
}

TRANSACTION_ACTIONS = ("trade", "expired", "assigned", "exercised")

# Actions that retire an option contract without a trade print
OPTION_TERMINAL_ACTIONS = ("expired", "assigned", "exercised")

# ---------------------------------------------------------------------------
# Multipliers
# ---------------------------------------------------------------------------

DEFAULT_OPTION_MULTIPLIER = 100

# symbol -> (name, multiplier, tick_size, tick_value)
FUTURES_CONTRACT_SPECS = {
    "ES": ("E-mini S&P 500", 50, 0.25, 12.50),
    "NQ": ("E-mini Nasdaq-100", 20, 0.25, 5.00),
    "YM": ("E-mini Dow ($5)", 5, 1.00, 5.00),
    "RTY": ("E-mini Russell 2000", 50, 0.10, 5.00),
    "MES": ("Micro E-mini S&P 500", 5, 0.25, 1.25),
    "MNQ": ("Micro E-mini Nasdaq-100", 2, 0.25, 0.50),
    "MYM": ("Micro E-mini Dow", 0.5, 1.00, 0.50),
    "M2K": ("Micro E-mini Russell 2000", 5, 0.10, 0.50),
    "CL": ("Crude Oil", 1000, 0.01, 10.00),
    "NG": ("Natural Gas", 10000, 0.001, 10.00),
    "RB": ("RBOB Gasoline", 42000, 0.0001, 4.20),
    "HO": ("Heating Oil", 42000, 0.0001, 4.20),
    "GC": ("Gold", 100, 0.10, 10.00),
    "SI": ("Silver", 5000, 0.005, 25.00),
    "HG": ("Copper", 25000, 0.0005, 12.50),
    "MGC": ("Micro Gold", 10, 0.10, 1.00),
    "SIL": ("Micro Silver", 1000, 0.005, 5.00),
    "ZB": ("30-Year Treasury Bond", 1000, 0.03125, 31.25),
    "ZN": ("10-Year Treasury Note", 1000, 0.015625, 15.625),
    "ZF": ("5-Year Treasury Note", 1000, 0.0078125, 7.8125),
    "ZT": ("2-Year Treasury Note", 2000, 0.00390625, 7.8125),
    "ZC": ("Corn", 50, 0.25, 12.50),
    "ZS": ("Soybeans", 50, 0.25, 12.50),
    "ZW": ("Wheat", 50, 0.25, 12.50),
}


def default_multiplier(asset_type: str, symbol: str) -> float:
    """Contract multiplier to use when a transaction does not carry one."""
    if asset_type == "option":
        return DEFAULT_OPTION_MULTIPLIER
    if asset_type == "futures":
        spec = FUTURES_CONTRACT_SPECS.get(symbol.upper().strip())
        return spec[1] if spec else 1
    return 1


# ---------------------------------------------------------------------------
# Cash flow
# ---------------------------------------------------------------------------

# Margin postings move collateral, not money in or out of the account
MARGIN_CASH_CODES = {"FUTURES_MARGIN", "FUTURES_MARGIN_RELEASE"}

# ---------------------------------------------------------------------------
# Numeric tolerances
# ---------------------------------------------------------------------------

QTY_EPSILON = 0.0001
MONEY_DECIMALS = 2

# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

PRICE_FETCH_TIMEOUT = float(os.environ.get("PRICE_FETCH_TIMEOUT", "10"))

# Crypto tickers are quoted against USD on the quote source
CRYPTO_QUOTE_SUFFIX = "-USD"
