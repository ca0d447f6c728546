"""Router for per-building shared (pump) cost settings."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import CallerIdentity, get_current_user
from ..services import BuildingAccessDenied, WaterInvoiceService

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/", response_model=list[schemas.SharedCostSettingRead])
def list_shared_costs(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
    building_id: Optional[str] = Query(None, description="Filter by building"),
) -> list[schemas.SharedCostSettingRead]:
    return WaterInvoiceService.list_shared_costs(db, caller=caller, building_id=building_id)


@router.put("/{building_id}", response_model=schemas.SharedCostSettingRead)
def upsert_shared_cost(
    building_id: str,
    setting_in: schemas.SharedCostSettingUpsert,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> schemas.SharedCostSettingRead:
    try:
        return WaterInvoiceService.upsert_shared_cost(db, building_id, setting_in, caller=caller)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BuildingAccessDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
