"""Router exposing building water invoices."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import CallerIdentity, get_current_user
from ..services import (
    BuildingAccessDenied,
    InvoiceInUseError,
    WaterInvoiceError,
    WaterInvoiceService,
)

router = APIRouter(dependencies=[Depends(get_current_user)])


def _load_invoice(db: Session, invoice_id: str, caller: CallerIdentity):
    try:
        return WaterInvoiceService.get_invoice(db, invoice_id, caller=caller)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BuildingAccessDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/", response_model=schemas.WaterInvoiceListResponse)
def list_invoices(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
    building_id: Optional[str] = Query(None, description="Filter by building"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> schemas.WaterInvoiceListResponse:
    items, total = WaterInvoiceService.list_invoices(
        db, caller=caller, building_id=building_id, skip=skip, limit=limit
    )
    return schemas.WaterInvoiceListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("/", response_model=schemas.WaterInvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_in: schemas.WaterInvoiceCreate,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> schemas.WaterInvoiceRead:
    try:
        invoice = WaterInvoiceService.create_invoice(db, invoice_in, caller=caller)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BuildingAccessDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except WaterInvoiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return invoice


@router.get("/{invoice_id}", response_model=schemas.WaterInvoiceRead)
def get_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> schemas.WaterInvoiceRead:
    return _load_invoice(db, invoice_id, caller)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> Response:
    invoice = _load_invoice(db, invoice_id, caller)
    try:
        WaterInvoiceService.delete_invoice(db, invoice)
    except InvoiceInUseError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
