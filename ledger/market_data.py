"""Best-effort current quotes for open positions.

Only stocks and crypto are quoted. Options and futures stay unpriced and are
reported stale by the position aggregator.
"""

from __future__ import annotations

import logging

import yfinance as yf

from config import CRYPTO_QUOTE_SUFFIX, PRICE_FETCH_TIMEOUT
from models import Position

logger = logging.getLogger(__name__)


def quote_ticker(symbol: str, asset_type: str) -> str | None:
    """Ticker to request from the quote source, or None if not quotable."""
    sym = symbol.upper().strip()
    if asset_type == "stock":
        return sym
    if asset_type == "crypto":
        return sym if sym.endswith(CRYPTO_QUOTE_SUFFIX) else sym + CRYPTO_QUOTE_SUFFIX
    return None


def fetch_last_price(ticker: str) -> float | None:
    """Last close for ticker. Returns None on any failure."""
    try:
        hist = yf.Ticker(ticker).history(period="5d", timeout=PRICE_FETCH_TIMEOUT)
        if hist.empty:
            logger.warning("%s: no quote data", ticker)
            return None
        price = float(hist["Close"].dropna().iloc[-1])
    except Exception:
        logger.warning("%s: quote fetch failed", ticker, exc_info=True)
        return None
    return price if price >= 0 else None


def fetch_current_prices(positions: list[Position]) -> dict[str, float]:
    """Map instrument label -> last price for every quotable open position.

    Symbols that cannot be priced are simply absent from the result.
    """
    prices: dict[str, float] = {}
    for p in positions:
        if not p.is_open:
            continue
        label = p.instrument.label
        if label in prices:
            continue
        ticker = quote_ticker(p.symbol, p.asset_type)
        if ticker is None:
            continue
        price = fetch_last_price(ticker)
        if price is not None:
            prices[label] = price
    return prices
