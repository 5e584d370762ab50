from __future__ import annotations

import time
from typing import Tuple

from fastapi import HTTPException, Request, status

from .config import get_settings


# (bucket, caller key, ip, minute) -> count
_window_counts: dict[Tuple[str, str, str, int], int] = {}
# Past-minute windows are dropped once the table grows beyond this
MAX_TRACKED_WINDOWS = 10_000


def _hit(bucket: str, request: Request, key: str, limit: int) -> None:
    ip = request.client.host if request.client else "unknown"
    minute = int(time.time() // 60)
    if len(_window_counts) > MAX_TRACKED_WINDOWS:
        for stale in [w for w in _window_counts if w[3] < minute]:
            del _window_counts[stale]
    window = (bucket, key, ip, minute)
    count = _window_counts.get(window, 0) + 1
    _window_counts[window] = count
    if count > limit:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")


def rate_limit_check(request: Request, token: str) -> None:
    settings = get_settings()
    if not settings.rate_limit_enabled:
        return
    _hit("api", request, token, settings.rate_limit_per_minute)


def qr_validate_limit_check(request: Request, token: str) -> None:
    """Per token+IP budget for QR validations, bounding brute-force guessing of codes."""
    settings = get_settings()
    if not settings.rate_limit_enabled:
        return
    _hit("qr_validate", request, token, settings.qr_validate_per_minute)
