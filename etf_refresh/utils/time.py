from __future__ import annotations

import time
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from dateutil import parser


def local_now(timezone_name: str) -> datetime:
    return datetime.now(ZoneInfo(timezone_name))


def now_epoch_ms() -> int:
    return int(time.time() * 1000)


def epoch_ms_to_datetime(value: int | float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def parse_calendar_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return parser.isoparse(value).date()
    except (ValueError, TypeError):
        return None
