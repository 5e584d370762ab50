from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import storage_errors
from ..deps import get_clock, get_config, get_db, require_token
from ..gym_settings import DbConfigProvider
from ..ledger import revenue_cents
from ..models import PAYMENT_METHODS, Payment
from ..payment_status import pending_payments_report
from ..payments import cancel_payment, record_payment
from ..schemas import (
    PaymentCancel,
    PaymentCreate,
    PaymentInfoOut,
    PaymentOut,
    PaymentsListResponse,
    PendingPaymentOut,
    PendingPaymentsResponse,
    RevenueOut,
)


router = APIRouter(prefix="/api", tags=["payments"], dependencies=[Depends(require_token)])


@router.post("/payments.create", response_model=PaymentOut)
def payments_create(
    payload: PaymentCreate, db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)
):
    with storage_errors():
        p = record_payment(
            db,
            member_id=payload.member_id,
            amount_cents=payload.amount_cents,
            method=payload.method,
            now=clock(),
            membership_id=payload.membership_id,
            received_by=payload.received_by,
            reference=payload.reference,
            notes=payload.notes,
        )
        db.commit()
        db.refresh(p)
    return p


@router.post("/payments.cancel", response_model=PaymentOut)
def payments_cancel(
    payload: PaymentCancel, db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)
):
    with storage_errors():
        p = cancel_payment(db, payload.id, payload.cancelled_by, payload.reason, clock())
        db.commit()
        db.refresh(p)
    return p


@router.get("/payments.list", response_model=PaymentsListResponse)
def payments_list(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    member_id: Optional[str] = None,
    membership_id: Optional[str] = None,
    method: Optional[str] = None,
    include_cancelled: bool = True,
    db: Session = Depends(get_db),
):
    if method and method not in PAYMENT_METHODS:
        raise HTTPException(status_code=400, detail="Invalid payment method")
    stmt = select(Payment)
    if member_id:
        stmt = stmt.where(Payment.member_id == member_id)
    if membership_id:
        stmt = stmt.where(Payment.membership_id == membership_id)
    if method:
        stmt = stmt.where(Payment.method == method)
    if not include_cancelled:
        stmt = stmt.where(Payment.cancelled_at.is_(None))
    with storage_errors():
        total = db.execute(stmt.order_by(Payment.paid_at.desc())).scalars().all()
    items = total[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(total)}


@router.get("/payments.pending", response_model=PendingPaymentsResponse)
def payments_pending(
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with storage_errors():
        rows = pending_payments_report(db, config.partial_payments(), clock())
    items = [
        PendingPaymentOut(
            membership_id=r["membership"].id,
            member_id=r["membership"].member_id,
            member_name=r["membership"].member.full_name,
            plan_name=r["membership"].plan.name,
            payment_info=PaymentInfoOut.model_validate(r["payment_info"]),
        )
        for r in rows
    ]
    return {"items": items, "total": len(items)}


@router.get("/payments.revenue", response_model=RevenueOut)
def payments_revenue(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    with storage_errors():
        return revenue_cents(db, start, end)
