from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..access import AccessDecisionEngine, register_manual_access
from ..database import storage_errors
from ..deps import get_clock, get_config, get_db, require_token
from ..gym_settings import DbConfigProvider
from ..models import AccessLog
from ..schemas import (
    AccessLogsListResponse,
    AccessResult,
    AccessStats,
    AccessValidateRequest,
    AccessVerdict,
    ManualCheckinRequest,
)


router = APIRouter(prefix="/api", tags=["access"], dependencies=[Depends(require_token)])


@router.post("/access.validate", response_model=AccessVerdict)
def access_validate(
    payload: AccessValidateRequest,
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Dry run: the verdict a check-in would get right now. Nothing is logged."""
    return AccessDecisionEngine(db, config, clock).evaluate(payload.member_id)


@router.post("/access.checkin", response_model=AccessResult)
def access_checkin(
    payload: ManualCheckinRequest,
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    log, verdict = register_manual_access(db, config, payload.member_id, payload.verified_by, clock)
    return {"access_log": log, "verdict": verdict}


@router.get("/access.logs", response_model=AccessLogsListResponse)
def access_logs(
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    member_id: Optional[str] = None,
    allowed: Optional[bool] = None,
    method: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    stmt = select(AccessLog)
    if member_id:
        stmt = stmt.where(AccessLog.member_id == member_id)
    if allowed is not None:
        stmt = stmt.where(AccessLog.allowed.is_(allowed))
    if method:
        stmt = stmt.where(AccessLog.method == method)
    if start:
        stmt = stmt.where(AccessLog.accessed_at >= start)
    if end:
        stmt = stmt.where(AccessLog.accessed_at <= end)

    with storage_errors():
        total = db.execute(stmt.order_by(AccessLog.accessed_at.desc())).scalars().all()
    items = total[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(total)}


@router.get("/access.stats", response_model=AccessStats)
def access_stats(db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)):
    """Attempts since midnight (UTC)."""
    day_start = clock().replace(hour=0, minute=0, second=0, microsecond=0)
    with storage_errors():
        total, allowed = db.execute(
            select(
                func.count(),
                func.coalesce(func.sum(case((AccessLog.allowed.is_(True), 1), else_=0)), 0),
            ).select_from(AccessLog).where(AccessLog.accessed_at >= day_start)
        ).one()
    total = int(total or 0)
    allowed = int(allowed or 0)
    return {"total": total, "allowed": allowed, "denied": total - allowed}
