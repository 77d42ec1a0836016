from __future__ import annotations

from pathlib import Path

from etf_refresh.config import load_config
from etf_refresh.db import store
from etf_refresh.utils.time import epoch_ms_to_datetime


def main() -> None:
    root = Path(__file__).resolve().parents[2]
    config = load_config(root / "config.yaml")
    db_path = root / config.database.path

    conn = store.get_connection(db_path)
    store.init_db(conn)
    run = store.fetch_latest_run(conn)
    if not run:
        print("No runs found.")
        conn.close()
        return
    recent = store.fetch_recently_updated(conn, limit=10)
    conn.close()

    print(f"latest_run: {run['run_id']} started_at={run['started_at']} status={run['status']}")
    print(
        f"counts: selected={run['symbols_selected']} updated={run['symbols_updated']} "
        f"failed={run['symbols_failed']}"
    )
    if run.get("error_message"):
        print(f"error: {run['error_message']}")
    print("recently_updated:")
    for row in recent:
        updated_at = epoch_ms_to_datetime(row.get("last_updated"))
        print(
            f"- {row['symbol']} updated={updated_at.isoformat() if updated_at else 'never'} "
            f"expense_ratio={_fmt(row.get('expense_ratio'), 4)} "
            f"cagr_1yr={_fmt(row.get('cagr_1yr'), 4)} cagr_3yr={_fmt(row.get('cagr_3yr'), 4)} "
            f"cagr_5yr={_fmt(row.get('cagr_5yr'), 4)} holdings={row.get('holdings_count')}"
        )


def _fmt(value: float | None, digits: int) -> str:
    if value is None:
        return "n/a"
    return f"{value:.{digits}f}"


if __name__ == "__main__":
    main()
