from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

import schedule
import yaml

from etf_refresh.api.alpha_vantage import AlphaVantageClient
from etf_refresh.config import AppConfig, ConfigError, load_config, resolve_api_key
from etf_refresh.db import store
from etf_refresh.pipeline.update_cycle import run_update_cycle
from etf_refresh.utils.time import local_now

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[2]


def run_once(config: AppConfig, root: Path = ROOT) -> dict | None:
    """One scheduled invocation. Never raises."""
    try:
        api_key = resolve_api_key(config)
    except ConfigError as exc:
        logger.error("%s; skipping update cycle", exc)
        return None

    try:
        conn = store.get_connection(root / config.database.path)
    except Exception:  # noqa: BLE001
        logger.exception("Could not open database %s", config.database.path)
        return None

    try:
        store.init_db(conn)
        run_id = store.start_run(conn, local_now(config.run.timezone).isoformat())
        client = AlphaVantageClient(
            api_key,
            base_url=config.api.base_url,
            timeout_s=config.api.request_timeout_s,
        )
        diagnostics = run_update_cycle(conn, client, batch_size=config.run.batch_size)
        store.finish_run(
            conn, run_id, diagnostics, finished_at=local_now(config.run.timezone).isoformat()
        )
        return diagnostics
    except Exception:  # noqa: BLE001
        logger.exception("Error in scheduled task")
        return None
    finally:
        conn.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Refresh ETF fundamentals from Alpha Vantage")
    parser.add_argument("--config", default=str(ROOT / "config.yaml"))
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    try:
        config = load_config(args.config)
    except (ConfigError, ValueError, yaml.YAMLError) as exc:
        logger.error("Invalid configuration %s: %s", args.config, exc)
        return

    run_once(config)
    if args.once:
        return

    schedule.every(config.run.interval_minutes).minutes.do(run_once, config)
    logger.info("Scheduled update cycle every %d minutes", config.run.interval_minutes)
    while True:
        schedule.run_pending()
        time.sleep(30)


if __name__ == "__main__":
    main()
