"""SQLite schema and repository for transactions, positions and snapshots."""

from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, replace
from datetime import date
from typing import Optional

import pandas as pd

from config import DB_PATH
from models import (
    AssetBreakdown,
    CashTransaction,
    PortfolioSnapshot,
    Position,
    Transaction,
)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        asset_type TEXT NOT NULL CHECK (asset_type IN ('stock', 'option', 'crypto', 'futures')),
        symbol TEXT NOT NULL,
        side TEXT NOT NULL CHECK (side IN ('buy', 'sell')),
        quantity REAL NOT NULL,
        price REAL,
        activity_date TEXT NOT NULL,
        fees REAL NOT NULL DEFAULT 0,
        multiplier REAL,
        option_type TEXT,
        strike_price REAL,
        expiration_date TEXT,
        open_close TEXT,
        action TEXT NOT NULL DEFAULT 'trade',
        description TEXT DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS cash_transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        transaction_date TEXT NOT NULL,
        transaction_code TEXT NOT NULL,
        amount REAL NOT NULL,
        description TEXT DEFAULT '',
        symbol TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS positions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        symbol TEXT NOT NULL,
        asset_type TEXT NOT NULL,
        option_type TEXT,
        strike_price REAL,
        expiration_date TEXT,
        status TEXT NOT NULL CHECK (status IN ('open', 'closed')),
        side TEXT NOT NULL CHECK (side IN ('long', 'short')),
        opening_quantity REAL NOT NULL,
        current_quantity REAL NOT NULL,
        average_opening_price REAL NOT NULL,
        total_cost_basis REAL NOT NULL,
        open_cost_basis REAL NOT NULL,
        total_closing_amount REAL NOT NULL,
        realized_pl REAL NOT NULL,
        unrealized_pl REAL NOT NULL,
        multiplier REAL NOT NULL,
        total_fees REAL NOT NULL DEFAULT 0,
        current_price REAL,
        stale INTEGER NOT NULL DEFAULT 0,
        flipped_from_over_close INTEGER NOT NULL DEFAULT 0,
        opened_at TEXT NOT NULL,
        closed_at TEXT,
        opening_transaction_ids TEXT NOT NULL,
        closing_transaction_ids TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS portfolio_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        snapshot_date TEXT NOT NULL,
        portfolio_value REAL NOT NULL,
        net_cash_flow REAL NOT NULL,
        total_market_value REAL NOT NULL,
        total_realized_pl REAL NOT NULL,
        total_unrealized_pl REAL NOT NULL,
        open_positions_count INTEGER NOT NULL,
        total_positions_count INTEGER NOT NULL,
        stale_positions_count INTEGER NOT NULL DEFAULT 0,
        daily_pl_change REAL NOT NULL DEFAULT 0,
        daily_pl_change_pct REAL NOT NULL DEFAULT 0,
        positions_breakdown TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(user_id, snapshot_date)
    );

    CREATE INDEX IF NOT EXISTS idx_transactions_user_date
        ON transactions(user_id, activity_date, id);
    CREATE INDEX IF NOT EXISTS idx_transactions_user_symbol
        ON transactions(user_id, symbol);
    CREATE INDEX IF NOT EXISTS idx_cash_transactions_user_date
        ON cash_transactions(user_id, transaction_date);
    CREATE INDEX IF NOT EXISTS idx_positions_user ON positions(user_id, symbol);
"""

_TXN_COLUMNS = (
    "user_id", "asset_type", "symbol", "side", "quantity", "price", "activity_date",
    "fees", "multiplier", "option_type", "strike_price", "expiration_date",
    "open_close", "action", "description",
)


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def _parse_date(s: Optional[str]) -> Optional[date]:
    return date.fromisoformat(s) if s else None


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        user_id=row["user_id"],
        asset_type=row["asset_type"],
        symbol=row["symbol"],
        side=row["side"],
        quantity=row["quantity"],
        price=row["price"],
        activity_date=_parse_date(row["activity_date"]),
        fees=row["fees"] or 0.0,
        multiplier=row["multiplier"],
        option_type=row["option_type"],
        strike_price=row["strike_price"],
        expiration_date=_parse_date(row["expiration_date"]),
        open_close=row["open_close"],
        action=row["action"],
        description=row["description"] or "",
    )


def _row_to_cash(row: sqlite3.Row) -> CashTransaction:
    return CashTransaction(
        id=row["id"],
        user_id=row["user_id"],
        transaction_date=_parse_date(row["transaction_date"]),
        transaction_code=row["transaction_code"],
        amount=row["amount"],
        description=row["description"] or "",
        symbol=row["symbol"],
    )


def _row_to_position(row: sqlite3.Row) -> Position:
    return Position(
        user_id=row["user_id"],
        symbol=row["symbol"],
        asset_type=row["asset_type"],
        option_type=row["option_type"],
        strike_price=row["strike_price"],
        expiration_date=_parse_date(row["expiration_date"]),
        status=row["status"],
        side=row["side"],
        opening_quantity=row["opening_quantity"],
        current_quantity=row["current_quantity"],
        average_opening_price=row["average_opening_price"],
        total_cost_basis=row["total_cost_basis"],
        open_cost_basis=row["open_cost_basis"],
        total_closing_amount=row["total_closing_amount"],
        realized_pl=row["realized_pl"],
        unrealized_pl=row["unrealized_pl"],
        multiplier=row["multiplier"],
        total_fees=row["total_fees"],
        current_price=row["current_price"],
        stale=bool(row["stale"]),
        flipped_from_over_close=bool(row["flipped_from_over_close"]),
        opened_at=_parse_date(row["opened_at"]),
        closed_at=_parse_date(row["closed_at"]),
        opening_transaction_ids=json.loads(row["opening_transaction_ids"]),
        closing_transaction_ids=json.loads(row["closing_transaction_ids"]),
    )


def _row_to_snapshot(row: sqlite3.Row) -> PortfolioSnapshot:
    breakdown = {
        key: AssetBreakdown(**value)
        for key, value in json.loads(row["positions_breakdown"]).items()
    }
    return PortfolioSnapshot(
        user_id=row["user_id"],
        snapshot_date=_parse_date(row["snapshot_date"]),
        portfolio_value=row["portfolio_value"],
        net_cash_flow=row["net_cash_flow"],
        total_market_value=row["total_market_value"],
        total_realized_pl=row["total_realized_pl"],
        total_unrealized_pl=row["total_unrealized_pl"],
        open_positions_count=row["open_positions_count"],
        total_positions_count=row["total_positions_count"],
        stale_positions_count=row["stale_positions_count"],
        daily_pl_change=row["daily_pl_change"],
        daily_pl_change_pct=row["daily_pl_change_pct"],
        positions_breakdown=breakdown,
    )


class SqliteRepository:
    """Storage for one database file. Passed to the rebuild functions.

    The matching engine never touches this class; callers load transactions
    through it and hand plain lists to the engine.
    """

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def get_db(self):
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self):
        """Create all tables if they don't exist."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self.get_db() as conn:
            conn.executescript(SCHEMA)

    # ---------------------------------------------------------------------------
    # Transactions
    # ---------------------------------------------------------------------------

    def create_transaction(self, txn: Transaction) -> Transaction:
        """Insert txn (its id is ignored) and return it with the assigned id."""
        with self.get_db() as conn:
            cur = conn.execute(
                f"""INSERT INTO transactions ({", ".join(_TXN_COLUMNS)})
                    VALUES ({", ".join("?" * len(_TXN_COLUMNS))})""",
                (txn.user_id, txn.asset_type, txn.symbol.upper().strip(), txn.side,
                 txn.quantity, txn.price, _iso(txn.activity_date), txn.fees,
                 txn.multiplier, txn.option_type, txn.strike_price,
                 _iso(txn.expiration_date), txn.open_close, txn.action, txn.description),
            )
            return replace(txn, id=cur.lastrowid, symbol=txn.symbol.upper().strip())

    def get_transaction(self, txn_id: int, user_id: int) -> Optional[Transaction]:
        with self.get_db() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id=? AND user_id=?",
                (txn_id, user_id),
            ).fetchone()
            return _row_to_transaction(row) if row else None

    def update_transaction(self, txn: Transaction) -> bool:
        """Replace every field of an existing transaction (data corrections)."""
        assignments = ", ".join(f"{col}=?" for col in _TXN_COLUMNS)
        with self.get_db() as conn:
            cur = conn.execute(
                f"UPDATE transactions SET {assignments} WHERE id=? AND user_id=?",
                (txn.user_id, txn.asset_type, txn.symbol.upper().strip(), txn.side,
                 txn.quantity, txn.price, _iso(txn.activity_date), txn.fees,
                 txn.multiplier, txn.option_type, txn.strike_price,
                 _iso(txn.expiration_date), txn.open_close, txn.action, txn.description,
                 txn.id, txn.user_id),
            )
            return cur.rowcount > 0

    def delete_transaction(self, txn_id: int, user_id: int) -> bool:
        with self.get_db() as conn:
            cur = conn.execute(
                "DELETE FROM transactions WHERE id=? AND user_id=?", (txn_id, user_id)
            )
            return cur.rowcount > 0

    def list_transactions(
        self,
        user_id: int,
        up_to: Optional[date] = None,
        symbol: Optional[str] = None,
    ) -> list[Transaction]:
        """Transactions in replay order, optionally cut off at up_to."""
        query = "SELECT * FROM transactions WHERE user_id=?"
        params: list = [user_id]
        if up_to:
            query += " AND activity_date<=?"
            params.append(up_to.isoformat())
        if symbol:
            query += " AND symbol=?"
            params.append(symbol.upper().strip())
        query += " ORDER BY activity_date, id"
        with self.get_db() as conn:
            return [_row_to_transaction(r) for r in conn.execute(query, params).fetchall()]

    def transaction_dates(self, user_id: int) -> list[date]:
        """Distinct activity dates, ascending."""
        with self.get_db() as conn:
            rows = conn.execute(
                "SELECT DISTINCT activity_date FROM transactions WHERE user_id=? "
                "ORDER BY activity_date",
                (user_id,),
            ).fetchall()
            return [_parse_date(r["activity_date"]) for r in rows]

    # ---------------------------------------------------------------------------
    # Cash transactions
    # ---------------------------------------------------------------------------

    def create_cash_transaction(self, cash: CashTransaction) -> CashTransaction:
        with self.get_db() as conn:
            cur = conn.execute(
                """INSERT INTO cash_transactions
                   (user_id, transaction_date, transaction_code, amount, description, symbol)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (cash.user_id, _iso(cash.transaction_date), cash.transaction_code,
                 cash.amount, cash.description, cash.symbol),
            )
            return replace(cash, id=cur.lastrowid)

    def list_cash_transactions(
        self, user_id: int, up_to: Optional[date] = None,
    ) -> list[CashTransaction]:
        query = "SELECT * FROM cash_transactions WHERE user_id=?"
        params: list = [user_id]
        if up_to:
            query += " AND transaction_date<=?"
            params.append(up_to.isoformat())
        query += " ORDER BY transaction_date, id"
        with self.get_db() as conn:
            return [_row_to_cash(r) for r in conn.execute(query, params).fetchall()]

    # ---------------------------------------------------------------------------
    # Positions
    # ---------------------------------------------------------------------------

    def replace_positions(self, user_id: int, positions: list[Position]):
        """Swap a user's positions for a fresh recomputation in one commit."""
        with self.get_db() as conn:
            conn.execute("DELETE FROM positions WHERE user_id=?", (user_id,))
            conn.executemany(
                """INSERT INTO positions
                   (user_id, symbol, asset_type, option_type, strike_price, expiration_date,
                    status, side, opening_quantity, current_quantity, average_opening_price,
                    total_cost_basis, open_cost_basis, total_closing_amount, realized_pl,
                    unrealized_pl, multiplier, total_fees, current_price, stale,
                    flipped_from_over_close, opened_at, closed_at,
                    opening_transaction_ids, closing_transaction_ids)
                   VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)""",
                [(user_id, p.symbol, p.asset_type, p.option_type, p.strike_price,
                  _iso(p.expiration_date), p.status, p.side, p.opening_quantity,
                  p.current_quantity, p.average_opening_price, p.total_cost_basis,
                  p.open_cost_basis, p.total_closing_amount, p.realized_pl,
                  p.unrealized_pl, p.multiplier, p.total_fees, p.current_price,
                  int(p.stale), int(p.flipped_from_over_close), _iso(p.opened_at),
                  _iso(p.closed_at), json.dumps(p.opening_transaction_ids),
                  json.dumps(p.closing_transaction_ids))
                 for p in positions],
            )

    def get_positions(self, user_id: int, status: Optional[str] = None) -> list[Position]:
        query = "SELECT * FROM positions WHERE user_id=?"
        params: list = [user_id]
        if status:
            query += " AND status=?"
            params.append(status)
        query += " ORDER BY id"
        with self.get_db() as conn:
            return [_row_to_position(r) for r in conn.execute(query, params).fetchall()]

    def get_positions_frame(self, user_id: int) -> pd.DataFrame:
        with self.get_db() as conn:
            df = pd.read_sql_query(
                "SELECT * FROM positions WHERE user_id=? ORDER BY id",
                conn,
                params=[user_id],
            )
            if not df.empty:
                df["opened_at"] = pd.to_datetime(df["opened_at"])
                df["closed_at"] = pd.to_datetime(df["closed_at"])
            return df

    # ---------------------------------------------------------------------------
    # Portfolio snapshots
    # ---------------------------------------------------------------------------

    def upsert_snapshot(self, snapshot: PortfolioSnapshot):
        """Insert or fully overwrite the (user_id, snapshot_date) row."""
        breakdown = json.dumps(
            {key: asdict(value) for key, value in snapshot.positions_breakdown.items()},
            sort_keys=True,
        )
        with self.get_db() as conn:
            conn.execute("""
                INSERT INTO portfolio_snapshots
                    (user_id, snapshot_date, portfolio_value, net_cash_flow,
                     total_market_value, total_realized_pl, total_unrealized_pl,
                     open_positions_count, total_positions_count,
                     stale_positions_count, daily_pl_change, daily_pl_change_pct,
                     positions_breakdown)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, snapshot_date) DO UPDATE SET
                    portfolio_value=excluded.portfolio_value,
                    net_cash_flow=excluded.net_cash_flow,
                    total_market_value=excluded.total_market_value,
                    total_realized_pl=excluded.total_realized_pl,
                    total_unrealized_pl=excluded.total_unrealized_pl,
                    open_positions_count=excluded.open_positions_count,
                    total_positions_count=excluded.total_positions_count,
                    stale_positions_count=excluded.stale_positions_count,
                    daily_pl_change=excluded.daily_pl_change,
                    daily_pl_change_pct=excluded.daily_pl_change_pct,
                    positions_breakdown=excluded.positions_breakdown,
                    updated_at=CURRENT_TIMESTAMP
            """, (snapshot.user_id, _iso(snapshot.snapshot_date), snapshot.portfolio_value,
                  snapshot.net_cash_flow, snapshot.total_market_value,
                  snapshot.total_realized_pl, snapshot.total_unrealized_pl,
                  snapshot.open_positions_count, snapshot.total_positions_count,
                  snapshot.stale_positions_count, snapshot.daily_pl_change,
                  snapshot.daily_pl_change_pct, breakdown))

    def get_snapshot(self, user_id: int, snapshot_date: date) -> Optional[PortfolioSnapshot]:
        with self.get_db() as conn:
            row = conn.execute(
                "SELECT * FROM portfolio_snapshots WHERE user_id=? AND snapshot_date=?",
                (user_id, _iso(snapshot_date)),
            ).fetchone()
            return _row_to_snapshot(row) if row else None

    def get_previous_snapshot(
        self, user_id: int, snapshot_date: date,
    ) -> Optional[PortfolioSnapshot]:
        """Latest stored snapshot strictly before snapshot_date."""
        with self.get_db() as conn:
            row = conn.execute(
                """SELECT * FROM portfolio_snapshots
                   WHERE user_id=? AND snapshot_date<?
                   ORDER BY snapshot_date DESC LIMIT 1""",
                (user_id, _iso(snapshot_date)),
            ).fetchone()
            return _row_to_snapshot(row) if row else None

    def get_snapshots_frame(self, user_id: int) -> pd.DataFrame:
        with self.get_db() as conn:
            df = pd.read_sql_query(
                """SELECT snapshot_date, portfolio_value, net_cash_flow, total_market_value,
                          total_realized_pl, total_unrealized_pl, open_positions_count,
                          total_positions_count, stale_positions_count,
                          daily_pl_change, daily_pl_change_pct
                   FROM portfolio_snapshots WHERE user_id=? ORDER BY snapshot_date""",
                conn,
                params=[user_id],
            )
            if not df.empty:
                df["snapshot_date"] = pd.to_datetime(df["snapshot_date"])
            return df
