from __future__ import annotations

import argparse
from pathlib import Path

from etf_refresh.config import load_config
from etf_refresh.db import store


def main(argv: list[str] | None = None) -> None:
    root = Path(__file__).resolve().parents[2]
    parser = argparse.ArgumentParser(description="Add ETF symbols to the refresh registry")
    parser.add_argument("symbols", nargs="+")
    parser.add_argument("--config", default=str(root / "config.yaml"))
    args = parser.parse_args(argv)

    config = load_config(args.config)
    conn = store.get_connection(root / config.database.path)
    store.init_db(conn)
    added = store.add_etfs(conn, args.symbols)
    total = conn.execute("SELECT COUNT(*) AS count FROM etfs").fetchone()["count"]
    conn.close()
    print(f"added: {added}")
    print(f"registry_size: {total}")


if __name__ == "__main__":
    main()
