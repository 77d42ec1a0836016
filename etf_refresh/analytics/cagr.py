from __future__ import annotations

import math
from typing import Any, Mapping

from etf_refresh.utils.parsing import optional_float
from etf_refresh.utils.time import parse_calendar_date

HORIZONS_YEARS = (1, 3, 5)
MONTHS_PER_YEAR = 12


def cagr(latest: float | None, past: float | None, years: int) -> float:
    """Compound annual growth rate between ``past`` and ``latest``.

    A missing or non-positive price on either end is
    reported as 0.0, the same value used when history is too short.
    """
    if latest is None or past is None:
        return 0.0
    if past <= 0 or latest <= 0 or years <= 0:
        return 0.0
    value = (latest / past) ** (1 / years) - 1
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return value


def sorted_closes(series: Mapping[str, Any]) -> list[float | None]:
    """Prices ordered most recent month first.

    Keys are ordered by calendar date rather than as strings; keys that do
    not parse as dates are dropped. Closes that do not parse are kept as
    ``None`` so the month still counts toward the lookback index.
    """
    dated = []
    for raw_date, price in series.items():
        parsed = parse_calendar_date(raw_date)
        if parsed is None:
            continue
        dated.append((parsed, optional_float(price)))
    dated.sort(key=lambda item: item[0], reverse=True)
    return [price for _, price in dated]


def compute_cagrs(series: Mapping[str, Any]) -> dict[str, float]:
    """Trailing 1/3/5 year CAGR from a ``{month: adjusted close}`` mapping.

    The lookback for ``h`` years is the price ``h * 12`` rows back, so gaps in
    the monthly series shift the effective window. Horizons without enough
    history come back as 0.0.
    """
    closes = sorted_closes(series)
    result = {f"cagr_{years}yr": 0.0 for years in HORIZONS_YEARS}
    if not closes:
        return result

    latest = closes[0]
    for years in HORIZONS_YEARS:
        index = years * MONTHS_PER_YEAR
        if index >= len(closes):
            continue
        result[f"cagr_{years}yr"] = cagr(latest, closes[index], years)
    return result
