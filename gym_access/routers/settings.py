from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import storage_errors
from ..deps import get_config, get_db, require_token
from ..gym_settings import DEFAULT_SETTINGS, DbConfigProvider
from ..schemas import SettingSet, SettingsOut


router = APIRouter(prefix="/api", tags=["settings"], dependencies=[Depends(require_token)])


@router.get("/settings.get", response_model=SettingsOut)
def settings_get(config: DbConfigProvider = Depends(get_config)):
    with storage_errors():
        return {"values": config.all()}


@router.post("/settings.set", response_model=SettingsOut)
def settings_set(payload: SettingSet, db: Session = Depends(get_db), config: DbConfigProvider = Depends(get_config)):
    if payload.key not in DEFAULT_SETTINGS:
        raise HTTPException(status_code=400, detail="Unknown setting")
    with storage_errors():
        config.set(payload.key, payload.value.strip())
        db.commit()
        return {"values": config.all()}
