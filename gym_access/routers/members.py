from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..database import storage_errors
from ..deps import get_db, require_token
from ..models import Member
from ..schemas import MemberCreate, MemberUpdate, MembersListResponse, MemberOut


router = APIRouter(prefix="/api", tags=["members"], dependencies=[Depends(require_token)])


def _email_taken(db: Session, email: str, exclude_id: Optional[str] = None) -> bool:
    stmt = select(Member.id).where(Member.email == email)
    if exclude_id:
        stmt = stmt.where(Member.id != exclude_id)
    return db.execute(stmt).first() is not None


@router.post("/members.create", response_model=MemberOut)
def members_create(payload: MemberCreate, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    with storage_errors():
        if _email_taken(db, email):
            raise HTTPException(status_code=400, detail="Email already registered")
        member = Member(
            id=str(uuid.uuid4()),
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            phone=payload.phone,
            emergency_contact=payload.emergency_contact,
            notes=payload.notes,
            active=payload.active,
        )
        db.add(member)
        db.commit()
        db.refresh(member)
    return member


@router.post("/members.update", response_model=MemberOut)
def members_update(payload: MemberUpdate, db: Session = Depends(get_db)):
    with storage_errors():
        member: Optional[Member] = db.get(Member, payload.id)
        if not member:
            raise HTTPException(status_code=404, detail="Member not found")

        if payload.email is not None:
            email = payload.email.strip().lower()
            if _email_taken(db, email, exclude_id=member.id):
                raise HTTPException(status_code=400, detail="Email already registered")
            member.email = email

        for field in ["first_name", "last_name", "phone", "emergency_contact", "notes", "active"]:
            value = getattr(payload, field)
            if value is not None:
                setattr(member, field, value)

        db.add(member)
        db.commit()
        db.refresh(member)
    return member


@router.get("/members.get", response_model=MemberOut)
def members_get(id: str = Query(...), db: Session = Depends(get_db)):
    with storage_errors():
        member = db.get(Member, id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


@router.get("/members.list", response_model=MembersListResponse)
def members_list(
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    active: Optional[bool] = None,
    q: Optional[str] = None,
):
    stmt = select(Member)
    if active is not None:
        stmt = stmt.where(Member.active.is_(active))
    if q:
        term = f"%{q.strip()}%"
        stmt = stmt.where(or_(Member.first_name.ilike(term), Member.last_name.ilike(term), Member.email.ilike(term)))

    with storage_errors():
        total = db.execute(stmt.order_by(Member.created_at.desc())).scalars().all()
    items = total[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(total)}
