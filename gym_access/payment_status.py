from __future__ import annotations

"""
Payment status of a membership under the partial-payments policy.

Formulas:
- pending_amount = max(0, total - paid)
- payment_deadline = starts_at + deadline_days
- days_until_deadline = ceil((payment_deadline - now) / day)

Status, first match wins:
1. pending_amount <= 0                                  -> paid
2. paid > 0 and days_until_deadline < -grace_period     -> overdue
3. paid > 0                                             -> partial
4. paid == 0 and days_until_deadline < -grace_period    -> overdue
5. paid == 0                                            -> pending

Cases 2 and 4 behave the same; only the user-facing wording around the pending amount
differs between "incomplete" and "never paid".
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from .gym_settings import PartialPaymentsConfig
from .ledger import paid_amount_cents
from .models import Membership
from .utils import ceil_days


PAID = "paid"
PARTIAL = "partial"
PENDING = "pending"
OVERDUE = "overdue"


@dataclass(frozen=True)
class PaymentInfo:
    total_amount: int
    paid_amount: int
    pending_amount: int
    payment_status: str
    payment_deadline: datetime
    days_until_deadline: int
    is_overdue_payment: bool


def compute_payment_info(
    total_amount: int,
    paid_amount: int,
    starts_at: datetime,
    deadline_days: int,
    grace_period_days: int,
    now: datetime,
) -> PaymentInfo:
    pending_amount = max(0, total_amount - paid_amount)
    payment_deadline = starts_at + timedelta(days=deadline_days)
    days_until_deadline = ceil_days(payment_deadline - now)
    past_grace = days_until_deadline < -grace_period_days

    if pending_amount <= 0:
        status = PAID
    elif paid_amount > 0:
        status = OVERDUE if past_grace else PARTIAL
    else:
        status = OVERDUE if past_grace else PENDING

    return PaymentInfo(
        total_amount=total_amount,
        paid_amount=paid_amount,
        pending_amount=pending_amount,
        payment_status=status,
        payment_deadline=payment_deadline,
        days_until_deadline=days_until_deadline,
        is_overdue_payment=status == OVERDUE,
    )


def membership_total_cents(membership: Membership) -> int:
    """Price snapshot of the membership, falling back to the plan's current price."""
    if membership.total_amount_cents is not None:
        return int(membership.total_amount_cents)
    return int(membership.plan.price_cents)


def membership_payment_info(
    db: Session, membership: Membership, config: PartialPaymentsConfig, now: datetime
) -> PaymentInfo:
    return compute_payment_info(
        total_amount=membership_total_cents(membership),
        paid_amount=paid_amount_cents(db, membership.id),
        starts_at=membership.starts_at,
        deadline_days=config.deadline_days,
        grace_period_days=config.grace_period_days,
        now=now,
    )


def pending_payments_report(db: Session, config: PartialPaymentsConfig, now: datetime) -> List[dict]:
    """Active memberships that still owe money, most urgent deadline first."""
    if not config.enabled:
        return []
    memberships = db.execute(select(Membership).where(Membership.status == "active")).scalars().unique().all()
    rows = []
    for m in memberships:
        info = membership_payment_info(db, m, config, now)
        if info.pending_amount <= 0:
            continue
        rows.append({"membership": m, "payment_info": info})
    rows.sort(key=lambda r: r["payment_info"].days_until_deadline)
    return rows
