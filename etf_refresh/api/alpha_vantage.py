from __future__ import annotations

import logging
import threading
from typing import Any

import requests

BASE_URL = "https://www.alphavantage.co/query"
TIMEOUT_S = 30

SERIES_KEY = "Monthly Adjusted Time Series"
ADJUSTED_CLOSE_KEY = "5. adjusted close"
# Alpha Vantage reports these with HTTP 200.
API_MESSAGE_KEYS = ("Error Message", "Note", "Information")

logger = logging.getLogger(__name__)


class AlphaVantageClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout_s: int = TIMEOUT_S,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = (timeout_s, timeout_s)
        self._session = session
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        # requests.Session is not thread-safe; each worker thread gets its own.
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _get_json(self, function: str, symbol: str) -> dict[str, Any] | None:
        params = {"function": function, "symbol": symbol, "apikey": self.api_key}
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Request for %s %s failed: %s", function, symbol, exc)
            return None
        if not response.ok:
            logger.error(
                "Error fetching %s for %s: %s %s",
                function,
                symbol,
                response.status_code,
                response.reason,
            )
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.error("Undecodable %s payload for %s", function, symbol)
            return None
        if not isinstance(payload, dict):
            logger.error("Unexpected %s payload for %s: %s", function, symbol, type(payload).__name__)
            return None
        for key in API_MESSAGE_KEYS:
            if key in payload:
                logger.error("Alpha Vantage %s for %s %s: %s", key, function, symbol, payload[key])
                return None
        return payload

    def fetch_etf_profile(self, symbol: str) -> dict[str, Any] | None:
        return self._get_json("ETF_PROFILE", symbol)

    def fetch_monthly_adjusted(self, symbol: str) -> dict[str, Any] | None:
        """Return ``{month date: adjusted close}`` for ``symbol`` or ``None``."""
        payload = self._get_json("TIME_SERIES_MONTHLY_ADJUSTED", symbol)
        if payload is None:
            return None
        return extract_adjusted_closes(payload)


def extract_adjusted_closes(payload: dict[str, Any]) -> dict[str, Any] | None:
    series = payload.get(SERIES_KEY)
    if not isinstance(series, dict):
        logger.error("Time series payload missing %r", SERIES_KEY)
        return None
    closes: dict[str, Any] = {}
    for month, point in series.items():
        if isinstance(point, dict):
            closes[month] = point.get(ADJUSTED_CLOSE_KEY)
    return closes
