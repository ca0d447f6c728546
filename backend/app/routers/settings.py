"""Administrator access to the configuration store."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import require_admin
from ..services import SettingsError, SettingsService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/", response_model=schemas.SettingsRead)
def read_settings(db: Session = Depends(get_db)) -> schemas.SettingsRead:
    return schemas.SettingsRead(values=SettingsService.get_public_values(db))


@router.put("/", response_model=schemas.SettingsRead)
def update_settings(
    payload: schemas.SettingsUpdate, db: Session = Depends(get_db)
) -> schemas.SettingsRead:
    try:
        values = SettingsService.update_values(db, payload.values)
    except SettingsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return schemas.SettingsRead(values=values)
