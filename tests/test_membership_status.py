from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gym_access.membership_status import calculate_membership_status, days_past_due


NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.mark.parametrize(
    "ends_at",
    [NOW - timedelta(seconds=1), NOW - timedelta(days=3), NOW - timedelta(days=400), NOW],
)
def test_stale_active_is_expired_with_zero_days(ends_at: datetime) -> None:
    # Stored status is still "active" because the expiry batch never ran
    result = calculate_membership_status("active", ends_at, None, NOW)
    assert result.calculated_status == "expired"
    assert result.days_remaining == 0


def test_active_rounds_partial_days_up() -> None:
    result = calculate_membership_status("active", NOW + timedelta(seconds=1), None, NOW)
    assert result.calculated_status == "active"
    assert result.days_remaining == 1

    result = calculate_membership_status("active", NOW + timedelta(days=10, hours=2), None, NOW)
    assert result.days_remaining == 11

    result = calculate_membership_status("active", NOW + timedelta(days=10), None, NOW)
    assert result.days_remaining == 10


@pytest.mark.parametrize("status", ["frozen", "cancelled", "pending_payment"])
def test_sticky_statuses_ignore_time(status: str) -> None:
    future = calculate_membership_status(status, NOW + timedelta(days=4, hours=1), NOW, NOW)
    assert future.calculated_status == status
    assert future.days_remaining == 5

    past = calculate_membership_status(status, NOW - timedelta(days=30), NOW, NOW)
    assert past.calculated_status == status
    assert past.days_remaining == 0


def test_frozen_with_future_end_stays_frozen_for_any_now() -> None:
    ends_at = NOW + timedelta(days=20)
    for offset in (0, 5, 19, 60):
        result = calculate_membership_status("frozen", ends_at, NOW, NOW + timedelta(days=offset))
        assert result.calculated_status == "frozen"


def test_days_past_due_floors() -> None:
    assert days_past_due(NOW - timedelta(days=7, hours=23), NOW) == 7
    assert days_past_due(NOW - timedelta(hours=1), NOW) == 0
    assert days_past_due(NOW + timedelta(hours=1), NOW) == -1
