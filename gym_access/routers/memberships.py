from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import storage_errors
from ..deps import get_clock, get_config, get_db, require_token
from ..gym_settings import DbConfigProvider
from ..memberships import (
    cancel_membership,
    create_membership,
    freeze_membership,
    membership_status,
    overdue_memberships,
    renew_membership,
    unfreeze_membership,
)
from ..models import MEMBERSHIP_STATUSES, Membership
from ..schemas import (
    MembershipAction,
    MembershipCreate,
    MembershipFreeze,
    MembershipOut,
    MembershipRenew,
    MembershipsListResponse,
    OverdueMembershipOut,
    OverdueMembershipsResponse,
)


router = APIRouter(prefix="/api", tags=["memberships"], dependencies=[Depends(require_token)])


def _membership_out(m: Membership, now: datetime) -> MembershipOut:
    status = membership_status(m, now)
    return MembershipOut(
        id=m.id,
        member_id=m.member_id,
        plan_id=m.plan_id,
        status=m.status,
        calculated_status=status.calculated_status,
        days_remaining=status.days_remaining,
        starts_at=m.starts_at,
        ends_at=m.ends_at,
        frozen_at=m.frozen_at,
        frozen_days=m.frozen_days,
        cancelled_at=m.cancelled_at,
        total_amount_cents=m.total_amount_cents,
    )


@router.post("/memberships.create", response_model=MembershipOut)
def memberships_create(
    payload: MembershipCreate,
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    now = clock()
    with storage_errors():
        m = create_membership(db, config, payload.member_id, payload.plan_id, now, starts_at=payload.starts_at)
        db.commit()
        db.refresh(m)
        return _membership_out(m, now)


@router.post("/memberships.renew", response_model=MembershipOut)
def memberships_renew(
    payload: MembershipRenew,
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    now = clock()
    with storage_errors():
        m = renew_membership(db, config, payload.member_id, payload.plan_id, now)
        db.commit()
        db.refresh(m)
        return _membership_out(m, now)


@router.post("/memberships.freeze", response_model=MembershipOut)
def memberships_freeze(
    payload: MembershipFreeze, db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)
):
    now = clock()
    with storage_errors():
        m = freeze_membership(db, payload.id, payload.days, now)
        db.commit()
        db.refresh(m)
        return _membership_out(m, now)


@router.post("/memberships.unfreeze", response_model=MembershipOut)
def memberships_unfreeze(
    payload: MembershipAction, db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)
):
    with storage_errors():
        m = unfreeze_membership(db, payload.id)
        db.commit()
        db.refresh(m)
        return _membership_out(m, clock())


@router.post("/memberships.cancel", response_model=MembershipOut)
def memberships_cancel(
    payload: MembershipAction, db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)
):
    now = clock()
    with storage_errors():
        m = cancel_membership(db, payload.id, now)
        db.commit()
        db.refresh(m)
        return _membership_out(m, now)


@router.get("/memberships.get", response_model=MembershipOut)
def memberships_get(
    id: str = Query(...), db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)
):
    with storage_errors():
        m = db.get(Membership, id)
    if not m:
        raise HTTPException(status_code=404, detail="Membership not found")
    return _membership_out(m, clock())


@router.get("/memberships.list", response_model=MembershipsListResponse)
def memberships_list(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    member_id: Optional[str] = None,
    status: Optional[str] = None,
):
    if status and status not in MEMBERSHIP_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    stmt = select(Membership)
    if member_id:
        stmt = stmt.where(Membership.member_id == member_id)
    if status:
        stmt = stmt.where(Membership.status == status)

    now = clock()
    with storage_errors():
        total = db.execute(stmt.order_by(Membership.created_at.desc())).scalars().unique().all()
    items = total[(page - 1) * page_size : page * page_size]
    return {"items": [_membership_out(m, now) for m in items], "total": len(total)}


@router.get("/memberships.overdue", response_model=OverdueMembershipsResponse)
def memberships_overdue(
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with storage_errors():
        rows = overdue_memberships(db, config.morosity_tolerance_days, clock())
    items = [
        OverdueMembershipOut(
            membership_id=r["membership"].id,
            member_id=r["membership"].member_id,
            member_name=r["membership"].member.full_name,
            plan_name=r["membership"].plan.name,
            ends_at=r["membership"].ends_at,
            days_past_due=r["days_past_due"],
        )
        for r in rows
    ]
    return {"items": items, "total": len(items)}
