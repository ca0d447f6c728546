"""Generate per-apartment water bills from a building invoice and meter readings."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..db_types import is_valid_guid
from ..security import CallerIdentity
from .bill_calculator import calculate_bill
from .errors import BuildingAccessDenied, InvoiceNotFoundError
from .meter_readings import ReadingRejected, validate_reading
from .unit_locks import UNIT_LOCKS, UnitLockRegistry
from .water_rates import WaterRates, resolve_rates

LOGGER = logging.getLogger(__name__)


class BillingErrorReason(str, enum.Enum):
    """Reasons why a submitted reading did not produce a bill."""

    UNIT_NOT_FOUND = "UnitNotFound"
    DUPLICATE_BILL = "DuplicateBill"
    METER_REGRESSION = "MeterRegression"
    INVALID_READING = "InvalidReading"
    INTERNAL_ERROR = "InternalError"


@dataclass(frozen=True)
class MeterReadingSubmission:
    unit_id: str
    current_reading: Union[str, Decimal, int, float, None]


@dataclass(frozen=True)
class BillItemError:
    unit_id: str
    reason: BillingErrorReason
    detail: Optional[str] = None


@dataclass(frozen=True)
class ConsumptionReconciliation:
    """Declared invoice consumption and cost against what has been billed.

    Costs cover the invoice total and the primary amounts billed for it.
    ``cost_variance`` includes the remainder lost to rounding the rates, so a
    fully billed invoice can still show a small non-zero cost variance.
    """

    invoice_consumption: Decimal
    billed_consumption: Decimal
    invoice_cost: Decimal = Decimal("0")
    billed_cost: Decimal = Decimal("0")

    @property
    def variance(self) -> Decimal:
        return self.invoice_consumption - self.billed_consumption

    @property
    def cost_variance(self) -> Decimal:
        return self.invoice_cost - self.billed_cost


@dataclass
class BillGenerationResult:
    invoice_id: str
    rates: WaterRates
    created: list[models.WaterBill] = field(default_factory=list)
    errors: list[BillItemError] = field(default_factory=list)
    reconciliation: Optional[ConsumptionReconciliation] = None

    @property
    def created_ids(self) -> list[str]:
        return [bill.id for bill in self.created]

    def to_dict(self) -> dict[str, object]:
        return {
            "invoice_id": self.invoice_id,
            "created": len(self.created),
            "errors": len(self.errors),
        }


@dataclass(frozen=True)
class _InvoiceContext:
    invoice_id: str
    building_id: str
    period_start: date
    period_end: date


class WaterBillService:
    """Creates water bills and exposes the read/update operations on them."""

    def __init__(self, db: Session, *, locks: UnitLockRegistry = UNIT_LOCKS) -> None:
        self.db = db
        self.locks = locks

    def generate_bills(
        self,
        invoice_id: str,
        readings: Sequence[MeterReadingSubmission],
        *,
        caller: CallerIdentity,
    ) -> BillGenerationResult:
        """Bill every submitted apartment against ``invoice_id``.

        Items are processed in submission order and fail independently. Only a
        missing invoice, an invoice without a usable rate, or a caller who does
        not manage the building abort the call, and they do so before any item
        is touched.
        """

        if not is_valid_guid(invoice_id):
            raise InvoiceNotFoundError("Invoice not found")
        invoice = (
            self.db.query(models.WaterInvoice)
            .options(selectinload(models.WaterInvoice.building))
            .filter(models.WaterInvoice.id == invoice_id)
            .first()
        )
        if invoice is None:
            raise InvoiceNotFoundError("Invoice not found")
        if not caller.can_manage(invoice.building):
            raise BuildingAccessDenied("You do not manage the building of this invoice")

        shared_setting = (
            self.db.query(models.SharedCostSetting)
            .filter(models.SharedCostSetting.building_id == invoice.building_id)
            .filter(models.SharedCostSetting.is_active.is_(True))
            .first()
        )
        rates = resolve_rates(invoice, shared_setting)
        context = _InvoiceContext(
            invoice_id=invoice.id,
            building_id=invoice.building_id,
            period_start=invoice.billing_period_start,
            period_end=invoice.billing_period_end,
        )

        result = BillGenerationResult(invoice_id=context.invoice_id, rates=rates)
        for submission in readings:
            with self.locks.hold(submission.unit_id):
                outcome = self._bill_unit(context, rates, submission, caller)
            if isinstance(outcome, BillItemError):
                LOGGER.info(
                    "Skipping apartment %s for invoice %s: %s",
                    outcome.unit_id,
                    context.invoice_id,
                    outcome.reason.value,
                )
                result.errors.append(outcome)
            else:
                result.created.append(outcome)

        result.reconciliation = self.reconcile(context.invoice_id)
        if result.reconciliation.variance != 0:
            LOGGER.warning(
                "Invoice %s declares %s m3 but %s m3 have been billed",
                context.invoice_id,
                result.reconciliation.invoice_consumption,
                result.reconciliation.billed_consumption,
            )
        elif result.reconciliation.cost_variance != 0:
            LOGGER.warning(
                "Invoice %s is fully billed but rate rounding leaves %s unrecovered",
                context.invoice_id,
                result.reconciliation.cost_variance,
            )
        LOGGER.info("Water bill generation finished: %s", result.to_dict())
        return result

    def _bill_unit(
        self,
        context: _InvoiceContext,
        rates: WaterRates,
        submission: MeterReadingSubmission,
        caller: CallerIdentity,
    ) -> Union[models.WaterBill, BillItemError]:
        unit_id = str(submission.unit_id)
        try:
            return self._create_bill(context, rates, unit_id, submission.current_reading, caller)
        except IntegrityError:
            self.db.rollback()
            LOGGER.warning("Concurrent bill detected for apartment %s", unit_id)
            return BillItemError(
                unit_id,
                BillingErrorReason.DUPLICATE_BILL,
                "Bill already exists for this apartment and invoice",
            )
        except SQLAlchemyError:
            self.db.rollback()
            LOGGER.exception("Error creating water bill for apartment %s", unit_id)
            return BillItemError(
                unit_id, BillingErrorReason.INTERNAL_ERROR, "Internal error creating bill"
            )

    def _create_bill(
        self,
        context: _InvoiceContext,
        rates: WaterRates,
        unit_id: str,
        current_reading,
        caller: CallerIdentity,
    ) -> Union[models.WaterBill, BillItemError]:
        if not is_valid_guid(unit_id):
            return self._reject(
                unit_id,
                BillingErrorReason.UNIT_NOT_FOUND,
                "Apartment not found in this building",
            )
        apartment = (
            self.db.query(models.Apartment)
            .filter(models.Apartment.id == unit_id)
            .filter(models.Apartment.building_id == context.building_id)
            .with_for_update()
            .first()
        )
        if apartment is None:
            return self._reject(
                unit_id,
                BillingErrorReason.UNIT_NOT_FOUND,
                "Apartment not found in this building",
            )

        existing = (
            self.db.query(models.WaterBill.id)
            .filter(models.WaterBill.apartment_id == unit_id)
            .filter(models.WaterBill.invoice_id == context.invoice_id)
            .first()
        )
        if existing is not None:
            return self._reject(
                unit_id,
                BillingErrorReason.DUPLICATE_BILL,
                "Bill already exists for this apartment and invoice",
            )

        try:
            reading = validate_reading(apartment.water_meter_reading, current_reading)
        except ReadingRejected as exc:
            return self._reject(unit_id, BillingErrorReason(exc.reason), str(exc))

        breakdown = calculate_bill(reading.consumed, rates.primary_rate, rates.shared_rate)
        bill = models.WaterBill(
            apartment_id=unit_id,
            invoice_id=context.invoice_id,
            building_id=context.building_id,
            billing_period_start=context.period_start,
            billing_period_end=context.period_end,
            previous_reading=reading.previous_reading,
            current_reading=reading.current_reading,
            consumed=breakdown.consumed,
            primary_rate=breakdown.primary_rate,
            shared_rate=breakdown.shared_rate,
            primary_amount=breakdown.primary_amount,
            shared_amount=breakdown.shared_amount,
            total_amount=breakdown.total_amount,
            notification_status=models.NotificationStatus.NOT_SENT,
            created_by=caller.user_id,
        )
        apartment.water_meter_reading = reading.current_reading
        self.db.add(bill)
        # The bill and the meter update commit together or not at all.
        self.db.commit()
        return bill

    def _reject(
        self, unit_id: str, reason: BillingErrorReason, detail: str
    ) -> BillItemError:
        # Nothing is pending; ending the transaction releases the apartment row lock.
        self.db.commit()
        return BillItemError(unit_id=unit_id, reason=reason, detail=detail)

    def reconcile(self, invoice_id: str) -> ConsumptionReconciliation:
        """Compare the invoice with the primary amounts billed against it."""

        invoice_totals = (
            self.db.query(models.WaterInvoice.total_consumption, models.WaterInvoice.total_cost)
            .filter(models.WaterInvoice.id == invoice_id)
            .first()
        )
        billed_consumption, billed_cost = (
            self.db.query(
                func.sum(models.WaterBill.consumed), func.sum(models.WaterBill.primary_amount)
            )
            .filter(models.WaterBill.invoice_id == invoice_id)
            .one()
        )
        invoice_consumption, invoice_cost = invoice_totals or (0, 0)
        return ConsumptionReconciliation(
            invoice_consumption=Decimal(str(invoice_consumption or 0)),
            billed_consumption=Decimal(str(billed_consumption or 0)),
            invoice_cost=Decimal(str(invoice_cost or 0)),
            billed_cost=Decimal(str(billed_cost or 0)),
        )

    def _scoped_query(self, caller: CallerIdentity):
        query = self.db.query(models.WaterBill).options(
            selectinload(models.WaterBill.apartment),
            selectinload(models.WaterBill.building),
        )
        if not caller.is_admin:
            query = query.join(
                models.Building, models.Building.id == models.WaterBill.building_id
            ).filter(models.Building.manager_id == caller.user_id)
        return query

    def list_bills(
        self,
        *,
        caller: CallerIdentity,
        building_id: Optional[str] = None,
        apartment_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        is_paid: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.WaterBill], int]:
        query = self._scoped_query(caller)
        if building_id:
            query = query.filter(models.WaterBill.building_id == building_id)
        if apartment_id:
            query = query.filter(models.WaterBill.apartment_id == apartment_id)
        if invoice_id:
            query = query.filter(models.WaterBill.invoice_id == invoice_id)
        if is_paid is not None:
            query = query.filter(models.WaterBill.is_paid.is_(is_paid))

        total = query.count()
        items = (
            query.order_by(
                models.WaterBill.billing_period_start.desc(),
                models.WaterBill.created_at.desc(),
            )
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    def get_bill(self, bill_id: str, *, caller: CallerIdentity) -> models.WaterBill:
        if not is_valid_guid(bill_id):
            raise LookupError("Water bill not found")
        bill = (
            self.db.query(models.WaterBill)
            .options(
                selectinload(models.WaterBill.apartment),
                selectinload(models.WaterBill.building),
            )
            .filter(models.WaterBill.id == bill_id)
            .first()
        )
        if bill is None:
            raise LookupError("Water bill not found")
        if not caller.can_manage(bill.building):
            raise BuildingAccessDenied("You do not manage the building of this bill")
        return bill

    def update_payment(
        self,
        bill: models.WaterBill,
        *,
        is_paid: Optional[bool] = None,
        payment_date: Optional[date] = None,
    ) -> models.WaterBill:
        if is_paid is not None:
            bill.is_paid = is_paid
            if is_paid and payment_date is None and bill.payment_date is None:
                payment_date = date.today()
            if not is_paid:
                bill.payment_date = None
        if payment_date is not None:
            bill.payment_date = payment_date
        self.db.add(bill)
        self.db.commit()
        self.db.refresh(bill)
        return bill

    def delete_bill(self, bill: models.WaterBill) -> None:
        """Remove a bill without rewinding the apartment meter."""

        bill_id = bill.id
        self.db.delete(bill)
        self.db.commit()
        LOGGER.info("Deleted water bill %s", bill_id)
