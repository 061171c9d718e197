"""
Time helpers.

Fixes, alerts and cooldowns are compared as timezone-aware datetimes. Mixing naive
and aware values raises at comparison time, so every timestamp entering the guide
goes through `ensure_tz` first.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_tz(dt: datetime, tz: str = "UTC") -> datetime:
    """Ensure `dt` has tzinfo; attach `tz` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)
