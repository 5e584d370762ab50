from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from .errors import InvalidTransitionError, NotFoundError
from .memberships import activate_membership
from .models import Member, Membership, Payment


def record_payment(
    db: Session,
    member_id: str,
    amount_cents: int,
    method: str,
    now: datetime,
    membership_id: Optional[str] = None,
    received_by: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> Payment:
    """Record a payment. Without an explicit membership it settles the member's latest
    pending_payment membership, which is then activated."""
    if db.get(Member, member_id) is None:
        raise NotFoundError("Member not found")

    if membership_id:
        membership = db.get(Membership, membership_id)
        if membership is None or membership.member_id != member_id:
            raise NotFoundError("Membership not found")
    else:
        pending = db.execute(
            select(Membership)
            .where(and_(Membership.member_id == member_id, Membership.status == "pending_payment"))
            .order_by(Membership.created_at.desc())
            .limit(1)
        ).scalars().first()
        membership_id = pending.id if pending else None

    payment = Payment(
        id=str(uuid.uuid4()),
        member_id=member_id,
        membership_id=membership_id,
        amount_cents=amount_cents,
        method=method,
        received_by=received_by,
        reference=reference,
        notes=notes,
        paid_at=now,
    )
    db.add(payment)
    db.flush()

    if membership_id:
        activate_membership(db, membership_id)
    return payment


def cancel_payment(db: Session, payment_id: str, cancelled_by: Optional[str], reason: str, now: datetime) -> Payment:
    """Void a payment. The row stays for the audit trail and drops out of every sum."""
    payment = db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    if payment.cancelled_at is not None:
        raise InvalidTransitionError("Payment already cancelled")
    payment.cancelled_at = now
    payment.cancelled_by = cancelled_by
    payment.cancellation_reason = reason
    db.add(payment)
    db.flush()
    return payment
