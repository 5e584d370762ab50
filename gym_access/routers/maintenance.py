from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import storage_errors
from ..deps import get_clock, get_config, get_db, require_token
from ..gym_settings import DbConfigProvider
from ..memberships import expire_lapsed_memberships
from ..qr_tokens import sweep_qr_tokens
from ..schemas import MaintenanceResult


router = APIRouter(prefix="/api", tags=["maintenance"], dependencies=[Depends(require_token)])
logger = logging.getLogger("maintenance")


@router.post("/maintenance.expire_memberships", response_model=MaintenanceResult)
def maintenance_expire_memberships(db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)):
    with storage_errors():
        affected = expire_lapsed_memberships(db, clock())
        db.commit()
    logger.info("expired memberships=%s", affected)
    return {"affected": affected}


@router.post("/maintenance.sweep_qr_tokens", response_model=MaintenanceResult)
def maintenance_sweep_qr_tokens(
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with storage_errors():
        affected = sweep_qr_tokens(db, config.qr_token_retention_hours, clock())
        db.commit()
    logger.info("swept qr tokens=%s", affected)
    return {"affected": affected}
