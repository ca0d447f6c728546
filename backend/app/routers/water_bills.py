"""Router exposing water bill generation, notification and bookkeeping."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import CallerIdentity, get_current_user, require_admin
from ..services import (
    BillNotificationService,
    BuildingAccessDenied,
    ConfigurationError,
    InvalidInvoiceError,
    InvoiceNotFoundError,
    MeterReadingSubmission,
    NotificationClient,
    NotificationSettings,
    SettingsService,
    WaterBillService,
    build_sms_client,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_current_user)])

SmsClientFactory = Callable[[NotificationSettings], NotificationClient]


def get_sms_client_factory() -> SmsClientFactory:
    """Return the callable used to build the outbound gateway client."""

    return build_sms_client


def _load_bill(service: WaterBillService, bill_id: str, caller: CallerIdentity):
    try:
        return service.get_bill(bill_id, caller=caller)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BuildingAccessDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/", response_model=schemas.WaterBillListResponse)
def list_bills(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
    building_id: Optional[str] = Query(None, description="Filter by building"),
    apartment_id: Optional[str] = Query(None, description="Filter by apartment"),
    invoice_id: Optional[str] = Query(None, description="Filter by invoice"),
    is_paid: Optional[bool] = Query(None, description="Filter by payment state"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> schemas.WaterBillListResponse:
    items, total = WaterBillService(db).list_bills(
        caller=caller,
        building_id=building_id,
        apartment_id=apartment_id,
        invoice_id=invoice_id,
        is_paid=is_paid,
        skip=skip,
        limit=limit,
    )
    return schemas.WaterBillListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("/generate", response_model=schemas.GenerateBillsResponse)
def generate_bills(
    payload: schemas.GenerateBillsRequest,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> schemas.GenerateBillsResponse:
    """Create one bill per submitted reading; failures are reported per item."""

    submissions = [
        MeterReadingSubmission(unit_id=item.unit_id, current_reading=item.current_reading)
        for item in payload.readings
    ]
    try:
        result = WaterBillService(db).generate_bills(
            payload.invoice_id, submissions, caller=caller
        )
    except InvoiceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BuildingAccessDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except InvalidInvoiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    reconciliation = result.reconciliation
    return schemas.GenerateBillsResponse(
        invoice_id=result.invoice_id,
        primary_rate=result.rates.primary_rate,
        shared_rate=result.rates.shared_rate,
        created=result.created_ids,
        errors=[
            schemas.BillGenerationErrorRead(
                unit_id=error.unit_id, reason=error.reason.value, detail=error.detail
            )
            for error in result.errors
        ],
        reconciliation=schemas.ConsumptionReconciliationRead(
            invoice_consumption=reconciliation.invoice_consumption,
            billed_consumption=reconciliation.billed_consumption,
            variance=reconciliation.variance,
            invoice_cost=reconciliation.invoice_cost,
            billed_cost=reconciliation.billed_cost,
            cost_variance=reconciliation.cost_variance,
        ),
    )


@router.post("/notifications", response_model=schemas.DispatchNotificationsResponse)
def dispatch_notifications(
    payload: schemas.DispatchNotificationsRequest,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
    client_factory: SmsClientFactory = Depends(get_sms_client_factory),
) -> schemas.DispatchNotificationsResponse:
    settings = SettingsService.load_notification_settings(db)
    try:
        settings.ensure_ready()
        service = BillNotificationService(
            db, settings=settings, client=client_factory(settings)
        )
        summary = service.dispatch(payload.bill_ids, caller=caller)
    except ConfigurationError as exc:
        LOGGER.warning("Bill notifications rejected: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return schemas.DispatchNotificationsResponse.model_validate(summary)


@router.get("/{bill_id}", response_model=schemas.WaterBillRead)
def get_bill(
    bill_id: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> schemas.WaterBillRead:
    return _load_bill(WaterBillService(db), bill_id, caller)


@router.patch("/{bill_id}", response_model=schemas.WaterBillRead)
def update_bill(
    bill_id: str,
    bill_in: schemas.WaterBillUpdate,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> schemas.WaterBillRead:
    service = WaterBillService(db)
    bill = _load_bill(service, bill_id, caller)
    return service.update_payment(
        bill, is_paid=bill_in.is_paid, payment_date=bill_in.payment_date
    )


@router.delete("/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bill(
    bill_id: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_admin),
) -> Response:
    service = WaterBillService(db)
    bill = _load_bill(service, bill_id, caller)
    service.delete_bill(bill)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{bill_id}/notifications", response_model=list[schemas.BillNotificationRead])
def list_bill_notifications(
    bill_id: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_user),
) -> list[schemas.BillNotificationRead]:
    bill = _load_bill(WaterBillService(db), bill_id, caller)
    return list(bill.notifications)
