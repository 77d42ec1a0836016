from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from etf_refresh.analytics.cagr import compute_cagrs
from etf_refresh.api.alpha_vantage import AlphaVantageClient
from etf_refresh.db import store
from etf_refresh.utils.time import now_epoch_ms

DEFAULT_BATCH_SIZE = 5

logger = logging.getLogger(__name__)


def fetch_symbol_data(
    client: AlphaVantageClient,
    symbol: str,
) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    with ThreadPoolExecutor(max_workers=2) as executor:
        profile_future = executor.submit(client.fetch_etf_profile, symbol)
        series_future = executor.submit(client.fetch_monthly_adjusted, symbol)
        return profile_future.result(), series_future.result()


def update_symbol(
    conn: sqlite3.Connection,
    client: AlphaVantageClient,
    symbol: str,
    clock: Callable[[], int] = now_epoch_ms,
) -> bool:
    profile, series = fetch_symbol_data(client, symbol)
    if profile is None or series is None:
        logger.error("Failed to fetch data for %s", symbol)
        return False

    cagrs = compute_cagrs(series)
    holdings_written = store.store_etf_data(conn, symbol, profile, cagrs)
    store.mark_updated(conn, symbol, clock())
    logger.info(
        "Updated %s cagr_1yr=%.4f cagr_3yr=%.4f cagr_5yr=%.4f holdings=%d",
        symbol,
        cagrs["cagr_1yr"],
        cagrs["cagr_3yr"],
        cagrs["cagr_5yr"],
        holdings_written,
    )
    return True


def run_update_cycle(
    conn: sqlite3.Connection,
    client: AlphaVantageClient,
    batch_size: int = DEFAULT_BATCH_SIZE,
    clock: Callable[[], int] = now_epoch_ms,
) -> dict[str, Any]:
    diagnostics: dict[str, Any] = {
        "status": "running",
        "symbols_selected": 0,
        "symbols_updated": 0,
        "symbols_failed": 0,
        "updated": [],
        "failed": [],
        "error_message": None,
    }
    try:
        symbols = store.select_stale_symbols(conn, batch_size)
        diagnostics["symbols_selected"] = len(symbols)
        if not symbols:
            logger.info("No ETFs found in database")
            diagnostics["status"] = "empty"
            return diagnostics

        logger.info("Starting batch update for %d ETFs", len(symbols))
        for symbol in symbols:
            logger.info("Processing %s", symbol)
            try:
                ok = update_symbol(conn, client, symbol, clock=clock)
            except Exception:  # noqa: BLE001
                logger.exception("Error processing %s", symbol)
                ok = False
            if ok:
                diagnostics["updated"].append(symbol)
            else:
                diagnostics["failed"].append(symbol)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Error in update cycle")
        diagnostics["status"] = "failed"
        diagnostics["error_message"] = str(exc)
        return diagnostics
    finally:
        diagnostics["symbols_updated"] = len(diagnostics["updated"])
        diagnostics["symbols_failed"] = len(diagnostics["failed"])

    diagnostics["status"] = "success" if not diagnostics["failed"] else "partial"
    logger.info(
        "Cycle summary selected=%d updated=%d failed=%d failed_symbols=%s",
        diagnostics["symbols_selected"],
        diagnostics["symbols_updated"],
        diagnostics["symbols_failed"],
        diagnostics["failed"],
    )
    return diagnostics
