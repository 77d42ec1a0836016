from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from etf_refresh.db.schema import SCHEMA_SQL
from etf_refresh.utils.parsing import optional_float

logger = logging.getLogger(__name__)


def get_connection(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()


def add_etfs(conn: sqlite3.Connection, symbols: Iterable[str], commit: bool = True) -> int:
    rows = [(symbol.strip().upper(),) for symbol in symbols if symbol and symbol.strip()]
    before = conn.total_changes
    conn.executemany("INSERT OR IGNORE INTO etfs (symbol, last_updated) VALUES (?, NULL)", rows)
    if commit:
        conn.commit()
    return conn.total_changes - before


def select_stale_symbols(conn: sqlite3.Connection, limit: int = 5) -> list[str]:
    rows = conn.execute(
        "SELECT symbol FROM etfs ORDER BY COALESCE(last_updated, 0) ASC LIMIT ?",
        (limit,),
    ).fetchall()
    return [row["symbol"] for row in rows]


def mark_updated(
    conn: sqlite3.Connection,
    symbol: str,
    updated_ms: int,
    commit: bool = True,
) -> None:
    conn.execute("UPDATE etfs SET last_updated = ? WHERE symbol = ?", (updated_ms, symbol))
    if commit:
        conn.commit()


def upsert_fundamentals(
    conn: sqlite3.Connection,
    symbol: str,
    expense_ratio: float | None,
    cagrs: dict[str, float],
    commit: bool = True,
) -> None:
    conn.execute(
        """
        INSERT INTO etf_fundamentals (etf, expense_ratio, "1yr_cagr", "3yr_cagr", "5yr_cagr")
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(etf) DO UPDATE SET
            expense_ratio = excluded.expense_ratio,
            "1yr_cagr" = excluded."1yr_cagr",
            "3yr_cagr" = excluded."3yr_cagr",
            "5yr_cagr" = excluded."5yr_cagr"
        """,
        (
            symbol,
            expense_ratio,
            cagrs.get("cagr_1yr", 0.0),
            cagrs.get("cagr_3yr", 0.0),
            cagrs.get("cagr_5yr", 0.0),
        ),
    )
    if commit:
        conn.commit()


def replace_holdings(
    conn: sqlite3.Connection,
    symbol: str,
    holdings: Iterable[dict[str, Any]],
    commit: bool = True,
) -> int:
    rows = []
    for holding in holdings:
        rows.append((symbol, holding.get("symbol"), optional_float(holding.get("weight"))))
    conn.execute("DELETE FROM etf_holdings WHERE etf = ?", (symbol,))
    if rows:
        conn.executemany(
            "INSERT INTO etf_holdings (etf, holding, weight) VALUES (?, ?, ?)",
            rows,
        )
    if commit:
        conn.commit()
    return len(rows)


def store_etf_data(
    conn: sqlite3.Connection,
    symbol: str,
    profile: dict[str, Any],
    cagrs: dict[str, float],
) -> int:
    """Write fundamentals and holdings for ``symbol`` as one transaction.

    Returns the number of holding rows written.
    """
    holdings = profile.get("holdings")
    if not isinstance(holdings, list):
        raise ValueError(f"profile for {symbol} has no holdings list")
    kept = [holding for holding in holdings if isinstance(holding, dict) and holding.get("symbol")]
    if len(kept) < len(holdings):
        logger.warning(
            "Dropped %d of %d holdings without a symbol for %s",
            len(holdings) - len(kept),
            len(holdings),
            symbol,
        )
    holdings = kept
    try:
        upsert_fundamentals(
            conn,
            symbol,
            optional_float(profile.get("net_expense_ratio")),
            cagrs,
            commit=False,
        )
        written = replace_holdings(conn, symbol, holdings, commit=False)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return written


def fetch_fundamentals(conn: sqlite3.Connection, symbol: str) -> dict[str, Any] | None:
    row = conn.execute(
        """
        SELECT etf, expense_ratio, "1yr_cagr" AS cagr_1yr, "3yr_cagr" AS cagr_3yr,
               "5yr_cagr" AS cagr_5yr
        FROM etf_fundamentals WHERE etf = ?
        """,
        (symbol,),
    ).fetchone()
    if row is None:
        return None
    return {
        "etf": row["etf"],
        "expense_ratio": row["expense_ratio"],
        "cagr_1yr": row["cagr_1yr"],
        "cagr_3yr": row["cagr_3yr"],
        "cagr_5yr": row["cagr_5yr"],
    }


def fetch_holdings(conn: sqlite3.Connection, symbol: str) -> list[dict[str, Any]]:
    rows = conn.execute(
        "SELECT holding, weight FROM etf_holdings WHERE etf = ? ORDER BY weight DESC, holding",
        (symbol,),
    ).fetchall()
    return [{"holding": row["holding"], "weight": row["weight"]} for row in rows]


def fetch_last_updated(conn: sqlite3.Connection, symbol: str) -> int | None:
    row = conn.execute("SELECT last_updated FROM etfs WHERE symbol = ?", (symbol,)).fetchone()
    return row["last_updated"] if row else None


def fetch_recently_updated(conn: sqlite3.Connection, limit: int = 10) -> list[dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT e.symbol, e.last_updated, f.expense_ratio,
               f."1yr_cagr" AS cagr_1yr, f."3yr_cagr" AS cagr_3yr, f."5yr_cagr" AS cagr_5yr,
               (SELECT COUNT(*) FROM etf_holdings h WHERE h.etf = e.symbol) AS holdings_count
        FROM etfs e
        LEFT JOIN etf_fundamentals f ON f.etf = e.symbol
        WHERE e.last_updated IS NOT NULL
        ORDER BY e.last_updated DESC
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(row) for row in rows]


def start_run(conn: sqlite3.Connection, started_at: str | None = None) -> int:
    cursor = conn.execute(
        "INSERT INTO update_runs (started_at, status) VALUES (?, ?)",
        (started_at or datetime.now(timezone.utc).isoformat(), "running"),
    )
    conn.commit()
    return int(cursor.lastrowid)


def finish_run(
    conn: sqlite3.Connection,
    run_id: int,
    diagnostics: dict[str, Any],
    finished_at: str | None = None,
) -> None:
    conn.execute(
        """
        UPDATE update_runs
        SET finished_at = ?, status = ?, symbols_selected = ?, symbols_updated = ?,
            symbols_failed = ?, error_message = ?
        WHERE run_id = ?
        """,
        (
            finished_at or datetime.now(timezone.utc).isoformat(),
            diagnostics.get("status"),
            diagnostics.get("symbols_selected", 0),
            diagnostics.get("symbols_updated", 0),
            diagnostics.get("symbols_failed", 0),
            diagnostics.get("error_message"),
            run_id,
        ),
    )
    conn.commit()


def fetch_latest_run(conn: sqlite3.Connection) -> dict[str, Any] | None:
    row = conn.execute("SELECT * FROM update_runs ORDER BY run_id DESC LIMIT 1").fetchone()
    return dict(row) if row else None
