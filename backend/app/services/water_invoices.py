"""Business logic for building water invoices and shared cost settings."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from ..db_types import is_valid_guid
from ..security import CallerIdentity
from .errors import BuildingAccessDenied, WaterInvoiceError

LOGGER = logging.getLogger(__name__)


class InvoiceInUseError(WaterInvoiceError):
    """Raised when deleting an invoice that bills still reference."""


class WaterInvoiceService:
    """Operations for recording building invoices and their shared costs."""

    @staticmethod
    def _get_building(
        db: Session, building_id: str, caller: CallerIdentity
    ) -> models.Building:
        building = None
        if is_valid_guid(building_id):
            building = (
                db.query(models.Building).filter(models.Building.id == building_id).first()
            )
        if building is None:
            raise LookupError("Building not found")
        if not caller.can_manage(building):
            raise BuildingAccessDenied("You don't manage this building")
        return building

    @staticmethod
    def list_invoices(
        db: Session,
        *,
        caller: CallerIdentity,
        building_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.WaterInvoice], int]:
        query = db.query(models.WaterInvoice).options(
            selectinload(models.WaterInvoice.building)
        )
        if building_id:
            query = query.filter(models.WaterInvoice.building_id == building_id)
        if not caller.is_admin:
            query = query.join(
                models.Building, models.Building.id == models.WaterInvoice.building_id
            ).filter(models.Building.manager_id == caller.user_id)

        total = query.count()
        items = (
            query.order_by(
                models.WaterInvoice.invoice_date.desc(),
                models.WaterInvoice.created_at.desc(),
            )
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def get_invoice(
        db: Session, invoice_id: str, *, caller: CallerIdentity
    ) -> models.WaterInvoice:
        invoice = None
        if is_valid_guid(invoice_id):
            invoice = (
                db.query(models.WaterInvoice)
                .options(selectinload(models.WaterInvoice.building))
                .filter(models.WaterInvoice.id == invoice_id)
                .first()
            )
        if invoice is None:
            raise LookupError("Invoice not found")
        if not caller.can_manage(invoice.building):
            raise BuildingAccessDenied("You do not manage the building of this invoice")
        return invoice

    @classmethod
    def create_invoice(
        cls,
        db: Session,
        data: schemas.WaterInvoiceCreate,
        *,
        caller: CallerIdentity,
    ) -> models.WaterInvoice:
        cls._get_building(db, data.building_id, caller)

        invoice_number = data.invoice_number.strip()
        duplicate = (
            db.query(models.WaterInvoice.id)
            .filter(models.WaterInvoice.invoice_number == invoice_number)
            .first()
        )
        if duplicate is not None:
            raise WaterInvoiceError("Invoice number already exists")

        payload = data.model_dump()
        payload["invoice_number"] = invoice_number
        invoice = models.WaterInvoice(**payload, created_by=caller.user_id)
        db.add(invoice)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise WaterInvoiceError("Invoice number already exists") from exc
        db.refresh(invoice)
        LOGGER.info(
            "Recorded water invoice %s for building %s", invoice.invoice_number, invoice.building_id
        )
        return invoice

    @staticmethod
    def delete_invoice(db: Session, invoice: models.WaterInvoice) -> None:
        bill_count = (
            db.query(models.WaterBill)
            .filter(models.WaterBill.invoice_id == invoice.id)
            .count()
        )
        if bill_count:
            raise InvoiceInUseError("Cannot delete invoice with associated water bills")
        db.delete(invoice)
        db.commit()

    @staticmethod
    def list_shared_costs(
        db: Session,
        *,
        caller: CallerIdentity,
        building_id: Optional[str] = None,
    ) -> list[models.SharedCostSetting]:
        query = db.query(models.SharedCostSetting).join(
            models.Building, models.Building.id == models.SharedCostSetting.building_id
        )
        if building_id:
            query = query.filter(models.SharedCostSetting.building_id == building_id)
        if not caller.is_admin:
            query = query.filter(models.Building.manager_id == caller.user_id)
        return query.order_by(models.Building.name).all()

    @classmethod
    def upsert_shared_cost(
        cls,
        db: Session,
        building_id: str,
        data: schemas.SharedCostSettingUpsert,
        *,
        caller: CallerIdentity,
    ) -> models.SharedCostSetting:
        cls._get_building(db, building_id, caller)
        setting = (
            db.query(models.SharedCostSetting)
            .filter(models.SharedCostSetting.building_id == building_id)
            .with_for_update()
            .first()
        )
        if setting is None:
            setting = models.SharedCostSetting(building_id=building_id)
        setting.total_shared_cost_per_period = data.total_shared_cost_per_period
        setting.is_active = data.is_active
        setting.notes = data.notes
        db.add(setting)
        db.commit()
        db.refresh(setting)
        return setting
