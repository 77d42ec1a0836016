from __future__ import annotations

import logging
import sqlite3

import pytest

from etf_refresh.db import store


def _setup_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    store.init_db(conn)
    return conn


CAGRS = {"cagr_1yr": 0.1, "cagr_3yr": 0.2, "cagr_5yr": 0.3}


def test_selector_prefers_never_updated() -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY", "QQQ", "VTI", "IWM", "DIA", "EFA", "AGG"])
    store.mark_updated(conn, "SPY", 1_000)
    store.mark_updated(conn, "QQQ", 500)

    selected = store.select_stale_symbols(conn, 5)
    assert len(selected) == 5
    assert set(selected) == {"VTI", "IWM", "DIA", "EFA", "AGG"}

    selected_all = store.select_stale_symbols(conn, 7)
    assert selected_all[-2:] == ["QQQ", "SPY"]


def test_selector_empty_registry() -> None:
    conn = _setup_conn()
    assert store.select_stale_symbols(conn, 5) == []


def test_add_etfs_ignores_duplicates() -> None:
    conn = _setup_conn()
    assert store.add_etfs(conn, ["spy", "QQQ"]) == 2
    assert store.add_etfs(conn, ["SPY", " ", "VTI"]) == 1
    assert set(store.select_stale_symbols(conn, 10)) == {"SPY", "QQQ", "VTI"}


def test_fundamentals_upsert_keeps_one_row() -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY"])
    store.store_etf_data(conn, "SPY", {"net_expense_ratio": "0.0945", "holdings": []}, CAGRS)
    store.store_etf_data(
        conn,
        "SPY",
        {"net_expense_ratio": "0.0900", "holdings": []},
        {"cagr_1yr": 0.5, "cagr_3yr": 0.0, "cagr_5yr": -0.1},
    )

    count = conn.execute("SELECT COUNT(*) AS count FROM etf_fundamentals WHERE etf = 'SPY'").fetchone()
    assert count["count"] == 1
    fundamentals = store.fetch_fundamentals(conn, "SPY")
    assert fundamentals["expense_ratio"] == pytest.approx(0.09)
    assert fundamentals["cagr_1yr"] == pytest.approx(0.5)
    assert fundamentals["cagr_5yr"] == pytest.approx(-0.1)


def test_holdings_are_replaced_not_merged() -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY"])
    first = {
        "net_expense_ratio": "0.09",
        "holdings": [{"symbol": "A", "weight": "0.5"}, {"symbol": "B", "weight": "0.5"}],
    }
    second = {"net_expense_ratio": "0.09", "holdings": [{"symbol": "C", "weight": "1.0"}]}

    assert store.store_etf_data(conn, "SPY", first, CAGRS) == 2
    assert store.store_etf_data(conn, "SPY", second, CAGRS) == 1

    assert store.fetch_holdings(conn, "SPY") == [{"holding": "C", "weight": 1.0}]


def test_empty_holdings_clears_rows() -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY"])
    store.store_etf_data(
        conn, "SPY", {"net_expense_ratio": "0.09", "holdings": [{"symbol": "A", "weight": "1"}]}, CAGRS
    )
    store.store_etf_data(conn, "SPY", {"net_expense_ratio": "0.09", "holdings": []}, CAGRS)
    assert store.fetch_holdings(conn, "SPY") == []


def test_missing_holdings_list_leaves_existing_rows() -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY"])
    store.store_etf_data(
        conn, "SPY", {"net_expense_ratio": "0.09", "holdings": [{"symbol": "A", "weight": "1"}]}, CAGRS
    )
    with pytest.raises(ValueError):
        store.store_etf_data(conn, "SPY", {"net_expense_ratio": "0.05"}, CAGRS)

    assert store.fetch_holdings(conn, "SPY") == [{"holding": "A", "weight": 1.0}]
    assert store.fetch_fundamentals(conn, "SPY")["expense_ratio"] == pytest.approx(0.09)


def test_unparseable_expense_ratio_stored_as_null() -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY"])
    store.store_etf_data(conn, "SPY", {"net_expense_ratio": "n/a", "holdings": []}, CAGRS)
    assert store.fetch_fundamentals(conn, "SPY")["expense_ratio"] is None


def test_run_records() -> None:
    conn = _setup_conn()
    run_id = store.start_run(conn, "2026-01-01T00:00:00")
    store.finish_run(
        conn,
        run_id,
        {"status": "partial", "symbols_selected": 5, "symbols_updated": 4, "symbols_failed": 1},
    )
    latest = store.fetch_latest_run(conn)
    assert latest["run_id"] == run_id
    assert latest["status"] == "partial"
    assert latest["symbols_updated"] == 4
    assert latest["finished_at"] is not None


def test_failed_insert_rolls_back_fundamentals_and_holdings() -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY"])
    store.store_etf_data(
        conn, "SPY", {"net_expense_ratio": "0.09", "holdings": [{"symbol": "A", "weight": "1"}]}, CAGRS
    )
    broken = {
        "net_expense_ratio": "0.50",
        "holdings": [{"symbol": {"nested": "B"}, "weight": "1"}],
    }

    with pytest.raises(sqlite3.Error):
        store.store_etf_data(conn, "SPY", broken, {"cagr_1yr": 9.0, "cagr_3yr": 9.0, "cagr_5yr": 9.0})

    assert store.fetch_holdings(conn, "SPY") == [{"holding": "A", "weight": 1.0}]
    fundamentals = store.fetch_fundamentals(conn, "SPY")
    assert fundamentals["expense_ratio"] == pytest.approx(0.09)
    assert fundamentals["cagr_1yr"] == pytest.approx(0.1)


def test_holdings_without_symbol_are_dropped_with_warning(caplog) -> None:
    conn = _setup_conn()
    store.add_etfs(conn, ["SPY"])
    profile = {
        "net_expense_ratio": "0.09",
        "holdings": [{"symbol": "A", "weight": "0.7"}, {"symbol": "", "weight": "0.2"}, {"weight": "0.1"}],
    }

    with caplog.at_level(logging.WARNING, logger="etf_refresh.db.store"):
        assert store.store_etf_data(conn, "SPY", profile, CAGRS) == 1

    assert "Dropped 2 of 3 holdings without a symbol for SPY" in caplog.text
    assert store.fetch_holdings(conn, "SPY") == [{"holding": "A", "weight": 0.7}]


def test_finish_run_uses_given_timestamp() -> None:
    conn = _setup_conn()
    run_id = store.start_run(conn, "2026-01-01T09:00:00+09:00")
    store.finish_run(conn, run_id, {"status": "success"}, finished_at="2026-01-01T09:05:00+09:00")
    assert store.fetch_latest_run(conn)["finished_at"] == "2026-01-01T09:05:00+09:00"
