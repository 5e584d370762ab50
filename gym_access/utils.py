from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone


SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ceil_days(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def floor_days(delta: timedelta) -> int:
    return math.floor(delta.total_seconds() / SECONDS_PER_DAY)


def format_amount(cents: int) -> str:
    """Render minor units as a display amount, e.g. 6000000 -> '$60,000.00'."""
    return f"${cents / 100:,.2f}"


def plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"
