from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import storage_errors
from ..deps import get_db, require_token
from ..models import Plan
from ..schemas import PlanCreate, PlanOut, PlansListResponse, PlanUpdate


router = APIRouter(prefix="/api", tags=["plans"], dependencies=[Depends(require_token)])


@router.post("/plans.create", response_model=PlanOut)
def plans_create(payload: PlanCreate, db: Session = Depends(get_db)):
    plan = Plan(
        id=str(uuid.uuid4()),
        name=payload.name,
        description=payload.description,
        duration_days=payload.duration_days,
        price_cents=payload.price_cents,
    )
    with storage_errors():
        db.add(plan)
        db.commit()
        db.refresh(plan)
    return plan


@router.post("/plans.update", response_model=PlanOut)
def plans_update(payload: PlanUpdate, db: Session = Depends(get_db)):
    # Price changes only affect memberships created afterwards (they carry a snapshot)
    with storage_errors():
        plan = db.get(Plan, payload.id)
        if not plan:
            raise HTTPException(status_code=404, detail="Plan not found")
        for field in ["name", "description", "price_cents", "active"]:
            value = getattr(payload, field)
            if value is not None:
                setattr(plan, field, value)
        db.add(plan)
        db.commit()
        db.refresh(plan)
    return plan


@router.get("/plans.list", response_model=PlansListResponse)
def plans_list(db: Session = Depends(get_db), active: Optional[bool] = Query(default=None)):
    stmt = select(Plan)
    if active is not None:
        stmt = stmt.where(Plan.active.is_(active))
    with storage_errors():
        rows = db.execute(stmt.order_by(Plan.price_cents.asc())).scalars().all()
    return {"items": rows, "total": len(rows)}
