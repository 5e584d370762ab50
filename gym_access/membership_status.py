from __future__ import annotations

"""
Effective membership status.

The stored status can be stale: the expiry batch may not have run yet. The calculated status
is always derived from ``ends_at`` and the current time, except for statuses that time alone
cannot resolve (frozen, cancelled, pending_payment), which are kept as stored.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .utils import ceil_days, floor_days


STICKY_STATUSES = ("frozen", "cancelled", "pending_payment")


@dataclass(frozen=True)
class MembershipStatusResult:
    calculated_status: str
    days_remaining: int


def calculate_membership_status(
    status: str,
    ends_at: datetime,
    frozen_at: Optional[datetime],
    now: datetime,
) -> MembershipStatusResult:
    """Pure function of its inputs.

    - sticky status: keep it, days_remaining = max(0, ceil((ends_at - now) / day))
    - otherwise: days_remaining = ceil((ends_at - now) / day); <= 0 means expired with 0 days
    """
    days_remaining = ceil_days(ends_at - now)
    if status in STICKY_STATUSES:
        return MembershipStatusResult(calculated_status=status, days_remaining=max(0, days_remaining))
    if days_remaining <= 0:
        return MembershipStatusResult(calculated_status="expired", days_remaining=0)
    return MembershipStatusResult(calculated_status="active", days_remaining=days_remaining)


def days_past_due(ends_at: datetime, now: datetime) -> int:
    """Whole days elapsed since ``ends_at``; negative while the membership is still running."""
    return floor_days(now - ends_at)
