from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..deps import get_clock, get_config, get_db, require_token
from ..gym_settings import DbConfigProvider
from ..qr_tokens import QrTokenManager
from ..rate_limit import qr_validate_limit_check
from ..schemas import AccessResult, QrGenerateRequest, QrStatusOut, QrTokenOut, QrValidateRequest


router = APIRouter(prefix="/api", tags=["qr"], dependencies=[Depends(require_token)])


def get_qr_manager(
    db: Session = Depends(get_db),
    config: DbConfigProvider = Depends(get_config),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> QrTokenManager:
    return QrTokenManager(db, config, clock)


@router.post("/qr.generate", response_model=QrTokenOut)
def qr_generate(payload: QrGenerateRequest, manager: QrTokenManager = Depends(get_qr_manager)):
    issued = manager.issue(payload.member_id)
    return {"token": issued.token, "expires_at": issued.expires_at, "duration_seconds": issued.duration_seconds}


@router.post("/qr.validate", response_model=AccessResult)
def qr_validate(
    payload: QrValidateRequest,
    request: Request,
    api_token: str = Depends(require_token),
    manager: QrTokenManager = Depends(get_qr_manager),
):
    # Tokens travel in the body only, so they never show up in access logs or URLs.
    # The budget is keyed on the caller credential and IP, never on the client-chosen verified_by.
    qr_validate_limit_check(request, api_token)
    log, verdict = manager.validate(payload.token.strip(), payload.verified_by)
    return {"access_log": log, "verdict": verdict}


@router.post("/qr.status", response_model=QrStatusOut)
def qr_status(payload: QrValidateRequest, manager: QrTokenManager = Depends(get_qr_manager)):
    status = manager.status(payload.token.strip())
    token = status.token
    return {
        "valid": status.valid,
        "reason": status.reason,
        "member_id": token.member_id if token else None,
        "expires_at": token.expires_at if token else None,
    }
