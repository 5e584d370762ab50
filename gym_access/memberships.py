from __future__ import annotations

"""
Membership lookups and lifecycle transitions.

Memberships are never deleted; every change is a status transition. Callers own the
transaction: functions here add/flush but do not commit.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from .errors import InvalidTransitionError, NotFoundError
from .gym_settings import ConfigProvider
from .membership_status import MembershipStatusResult, calculate_membership_status, days_past_due
from .models import CURRENT_MEMBERSHIP_STATUSES, Member, Membership, Plan


@dataclass(frozen=True)
class OverdueStatus:
    is_overdue: bool
    days_past_due: int
    overdue_amount_cents: int


def membership_status(membership: Membership, now: datetime) -> MembershipStatusResult:
    return calculate_membership_status(membership.status, membership.ends_at, membership.frozen_at, now)


def current_membership(db: Session, member_id: str) -> Optional[Membership]:
    """The member's membership in active/frozen/pending_payment with the latest end date."""
    stmt = (
        select(Membership)
        .where(and_(Membership.member_id == member_id, Membership.status.in_(CURRENT_MEMBERSHIP_STATUSES)))
        .order_by(Membership.ends_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def latest_active_or_expired(db: Session, member_id: str) -> Optional[Membership]:
    stmt = (
        select(Membership)
        .where(and_(Membership.member_id == member_id, Membership.status.in_(("active", "expired"))))
        .order_by(Membership.ends_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def check_member_overdue(db: Session, member_id: str, tolerance_days: int, now: datetime) -> OverdueStatus:
    """Morosity: the latest active/expired membership ended more than ``tolerance_days`` ago."""
    membership = latest_active_or_expired(db, member_id)
    if membership is None:
        return OverdueStatus(is_overdue=False, days_past_due=0, overdue_amount_cents=0)
    past_due = days_past_due(membership.ends_at, now)
    if past_due > tolerance_days:
        return OverdueStatus(is_overdue=True, days_past_due=past_due, overdue_amount_cents=membership.plan.price_cents)
    return OverdueStatus(is_overdue=False, days_past_due=0, overdue_amount_cents=0)


def _initial_status(config: ConfigProvider) -> str:
    return "pending_payment" if config.partial_payments().require_payment_to_activate else "active"


def _load_plan(db: Session, plan_id: str) -> Plan:
    plan = db.get(Plan, plan_id)
    if plan is None:
        raise NotFoundError("Plan not found")
    return plan


def _load_member(db: Session, member_id: str) -> Member:
    member = db.get(Member, member_id)
    if member is None:
        raise NotFoundError("Member not found")
    return member


def _load_membership(db: Session, membership_id: str) -> Membership:
    membership = db.get(Membership, membership_id)
    if membership is None:
        raise NotFoundError("Membership not found")
    return membership


def create_membership(
    db: Session,
    config: ConfigProvider,
    member_id: str,
    plan_id: str,
    now: datetime,
    starts_at: Optional[datetime] = None,
) -> Membership:
    _load_member(db, member_id)
    plan = _load_plan(db, plan_id)

    existing = current_membership(db, member_id)
    if existing is not None and membership_status(existing, now).calculated_status == "active":
        raise InvalidTransitionError("Member already has an active membership")

    start = starts_at or now
    membership = Membership(
        id=str(uuid.uuid4()),
        member_id=member_id,
        plan_id=plan.id,
        status=_initial_status(config),
        starts_at=start,
        ends_at=start + timedelta(days=plan.duration_days),
        total_amount_cents=plan.price_cents,
    )
    db.add(membership)
    db.flush()
    return membership


def renew_membership(db: Session, config: ConfigProvider, member_id: str, plan_id: str, now: datetime) -> Membership:
    """New membership starting where the current one ends (or now, if it already ended)."""
    _load_member(db, member_id)
    plan = _load_plan(db, plan_id)

    current = current_membership(db, member_id)
    start = current.ends_at if current is not None and current.ends_at > now else now
    if current is not None:
        current.status = "expired"
        db.add(current)

    membership = Membership(
        id=str(uuid.uuid4()),
        member_id=member_id,
        plan_id=plan.id,
        status=_initial_status(config),
        starts_at=start,
        ends_at=start + timedelta(days=plan.duration_days),
        total_amount_cents=plan.price_cents,
    )
    db.add(membership)
    db.flush()
    return membership


def activate_membership(db: Session, membership_id: str) -> Membership:
    """pending_payment -> active. Any other status is returned unchanged."""
    membership = _load_membership(db, membership_id)
    if membership.status == "pending_payment":
        membership.status = "active"
        db.add(membership)
        db.flush()
    return membership


def freeze_membership(db: Session, membership_id: str, days: int, now: datetime) -> Membership:
    membership = _load_membership(db, membership_id)
    if membership.status != "active":
        raise InvalidTransitionError("Only active memberships can be frozen")
    membership.status = "frozen"
    membership.frozen_at = now
    membership.frozen_days = (membership.frozen_days or 0) + days
    membership.ends_at = membership.ends_at + timedelta(days=days)
    db.add(membership)
    db.flush()
    return membership


def unfreeze_membership(db: Session, membership_id: str) -> Membership:
    membership = _load_membership(db, membership_id)
    if membership.status != "frozen":
        raise InvalidTransitionError("Only frozen memberships can be unfrozen")
    membership.status = "active"
    membership.frozen_at = None
    db.add(membership)
    db.flush()
    return membership


def cancel_membership(db: Session, membership_id: str, now: datetime) -> Membership:
    membership = _load_membership(db, membership_id)
    if membership.status == "cancelled":
        raise InvalidTransitionError("Membership already cancelled")
    membership.status = "cancelled"
    membership.cancelled_at = now
    db.add(membership)
    db.flush()
    return membership


def expire_lapsed_memberships(db: Session, now: datetime) -> int:
    """Persist active -> expired for memberships whose end date has passed."""
    result = db.execute(
        update(Membership)
        .where(and_(Membership.status == "active", Membership.ends_at <= now))
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def overdue_memberships(db: Session, tolerance_days: int, now: datetime) -> List[dict]:
    """Expired memberships that ended more than ``tolerance_days`` ago, oldest first."""
    cutoff = now - timedelta(days=tolerance_days)
    rows = db.execute(
        select(Membership)
        .where(and_(Membership.status == "expired", Membership.ends_at <= cutoff))
        .order_by(Membership.ends_at.asc())
    ).scalars().unique().all()
    return [{"membership": m, "days_past_due": days_past_due(m.ends_at, now)} for m in rows]
