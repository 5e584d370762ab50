from __future__ import annotations

"""
Payment ledger reads. Voided payments (``cancelled_at`` set) are filtered here explicitly so
that no sum anywhere in the service includes them.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from .models import Payment


def active_payments_for_membership(db: Session, membership_id: str) -> List[Payment]:
    stmt = (
        select(Payment)
        .where(and_(Payment.membership_id == membership_id, Payment.cancelled_at.is_(None)))
        .order_by(Payment.paid_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def paid_amount_cents(db: Session, membership_id: str) -> int:
    total = db.execute(
        select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(
            and_(Payment.membership_id == membership_id, Payment.cancelled_at.is_(None))
        )
    ).scalar_one()
    return int(total or 0)


def revenue_cents(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
    """Sum and count of non-voided payments, optionally within [start, end]."""
    conditions = [Payment.cancelled_at.is_(None)]
    if start is not None:
        conditions.append(Payment.paid_at >= start)
    if end is not None:
        conditions.append(Payment.paid_at <= end)
    total, count = db.execute(
        select(func.coalesce(func.sum(Payment.amount_cents), 0), func.count()).select_from(Payment).where(and_(*conditions))
    ).one()
    return {"total_cents": int(total or 0), "count": int(count or 0)}
