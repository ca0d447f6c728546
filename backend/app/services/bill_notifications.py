"""Dispatch SMS notifications for generated water bills."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..db_types import is_valid_guid
from ..security import CallerIdentity
from .settings import NotificationSettings
from .sms_gateway import NotificationClient, NotificationError, NotificationResult, TextBeeSmsClient

LOGGER = logging.getLogger(__name__)

BILL_NOT_FOUND = "BillNotFound"
UNAUTHORIZED = "Unauthorized"
NO_CONTACT_MESSAGE = "Tenant has no phone number"
DELIVERY_FAILED = "SMS delivery failed"
OUTCOME_NOT_SAVED = "Notification outcome could not be saved"


@dataclass(frozen=True)
class SentNotification:
    bill_id: str
    unit_id: str
    apartment_number: str
    tenant_name: Optional[str]
    destination: str


@dataclass(frozen=True)
class FailedNotification:
    bill_id: str
    error: str
    unit_id: Optional[str] = None
    apartment_number: Optional[str] = None
    tenant_name: Optional[str] = None


@dataclass(frozen=True)
class NoContactNotification:
    bill_id: str
    unit_id: str
    apartment_number: str
    tenant_name: Optional[str]


@dataclass
class DispatchSummary:
    """Per-bill outcomes of one dispatch call, one entry per distinct bill id."""

    sent: list[SentNotification] = field(default_factory=list)
    failed: list[FailedNotification] = field(default_factory=list)
    no_contact: list[NoContactNotification] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        return {
            "sent": len(self.sent),
            "failed": len(self.failed),
            "no_contact": len(self.no_contact),
        }


@dataclass(frozen=True)
class _BillRef:
    """Identifying data of a bill, captured before any commit expires it."""

    bill_id: str
    unit_id: str
    apartment_number: str
    tenant_name: Optional[str]

    @classmethod
    def of(cls, bill: models.WaterBill) -> "_BillRef":
        apartment = bill.apartment
        return cls(
            bill_id=bill.id,
            unit_id=bill.apartment_id,
            apartment_number=apartment.apartment_number,
            tenant_name=apartment.tenant_name,
        )

    def sent(self, destination: str) -> SentNotification:
        return SentNotification(
            bill_id=self.bill_id,
            unit_id=self.unit_id,
            apartment_number=self.apartment_number,
            tenant_name=self.tenant_name,
            destination=destination,
        )

    def failed(self, error: str) -> FailedNotification:
        return FailedNotification(
            bill_id=self.bill_id,
            error=error,
            unit_id=self.unit_id,
            apartment_number=self.apartment_number,
            tenant_name=self.tenant_name,
        )

    def no_contact(self) -> NoContactNotification:
        return NoContactNotification(
            bill_id=self.bill_id,
            unit_id=self.unit_id,
            apartment_number=self.apartment_number,
            tenant_name=self.tenant_name,
        )


@dataclass(frozen=True)
class _DeliveryJob:
    ref: _BillRef
    destination: str
    message: str


def format_currency(amount, settings: NotificationSettings) -> str:
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if settings.currency_position == "before":
        return f"{settings.currency_symbol}{value}"
    return f"{value} {settings.currency_symbol}"


def _format_date(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if isinstance(value, date) else "-"


def render_bill_message(bill: models.WaterBill, settings: NotificationSettings) -> str:
    apartment = bill.apartment
    building_name = bill.building.name if bill.building is not None else ""
    consumed = Decimal(str(bill.consumed or 0)).normalize()
    lines = [
        f"Hello {apartment.tenant_name or 'Tenant'},",
        "",
        f"Your water bill for {building_name}, Apt {apartment.apartment_number}:",
        "",
        (
            f"Period: {_format_date(bill.billing_period_start)} - "
            f"{_format_date(bill.billing_period_end)}"
        ),
        f"Water used: {consumed:f} m³",
        f"Water charge: {format_currency(bill.primary_amount, settings)}",
        f"Pump charge: {format_currency(bill.shared_amount, settings)}",
        f"Total: {format_currency(bill.total_amount, settings)}",
        "",
        "Please contact management for payment details.",
        "",
        f"- {settings.sender_name}",
    ]
    return "\n".join(lines)


def resolve_destination(
    apartment: Optional[models.Apartment], settings: NotificationSettings
) -> Optional[str]:
    """Return the full phone number of the tenant or ``None`` when unusable."""

    if apartment is None:
        return None
    phone = "".join((apartment.tenant_phone or "").split())
    if not phone:
        return None
    if phone.startswith("+"):
        return phone
    country_code = (apartment.tenant_phone_country_code or settings.default_country_code).strip()
    return f"{country_code}{phone}"


def build_sms_client(settings: NotificationSettings) -> NotificationClient:
    return TextBeeSmsClient(
        api_key=settings.api_key,
        sender_name=settings.sender_name,
        endpoint=settings.api_url,
        timeout=settings.timeout_seconds,
    )


class BillNotificationService:
    """Classifies, delivers and records notifications for a set of bills.

    The settings and the gateway client are injected by the caller; nothing is
    read from process state.
    """

    def __init__(
        self,
        db: Session,
        *,
        settings: NotificationSettings,
        client: Optional[NotificationClient] = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self.client = client

    def dispatch(self, bill_ids: Sequence[str], *, caller: CallerIdentity) -> DispatchSummary:
        """Notify the tenant of every distinct bill in ``bill_ids``.

        Each outcome is committed on its own, so a storage error on one bill
        leaves the outcomes already recorded for the others in place and is
        reported as a failure of that bill alone.
        """

        self.settings.ensure_ready()
        client = self.client or build_sms_client(self.settings)

        summary = DispatchSummary()
        pending: list[_DeliveryJob] = []

        for bill_id in _unique(bill_ids):
            bill = self._load_bill(bill_id)
            if bill is None:
                summary.failed.append(FailedNotification(bill_id=bill_id, error=BILL_NOT_FOUND))
                continue

            ref = _BillRef.of(bill)
            if not caller.can_manage(bill.building):
                summary.failed.append(ref.failed(UNAUTHORIZED))
                continue

            destination = resolve_destination(bill.apartment, self.settings)
            if destination is None:
                # Committed before any gateway call so no row lock is held meanwhile.
                if self._save(ref, lambda: self._record_no_contact(bill, client.channel)):
                    summary.no_contact.append(ref.no_contact())
                else:
                    summary.failed.append(ref.failed(OUTCOME_NOT_SAVED))
                continue

            pending.append(
                _DeliveryJob(
                    ref=ref,
                    destination=destination,
                    message=render_bill_message(bill, self.settings),
                )
            )
        # End the read transaction before the gateway calls.
        self.db.commit()

        results = self._deliver_all(client, pending)
        for job, result in zip(pending, results):
            saved = self._save(
                job.ref, lambda: self._record_delivery(job, result, client.channel)
            )
            if not saved:
                summary.failed.append(job.ref.failed(OUTCOME_NOT_SAVED))
            elif result.success:
                summary.sent.append(job.ref.sent(job.destination))
            else:
                summary.failed.append(job.ref.failed(result.error or DELIVERY_FAILED))

        LOGGER.info("Bill notifications dispatched: %s", summary.to_dict())
        return summary

    def _save(self, ref: "_BillRef", record: Callable[[], None]) -> bool:
        try:
            record()
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            LOGGER.exception("Could not save notification outcome for bill %s", ref.bill_id)
            return False
        return True

    def _load_bill(self, bill_id: str) -> Optional[models.WaterBill]:
        if not is_valid_guid(bill_id):
            return None
        return (
            self.db.query(models.WaterBill)
            .options(
                selectinload(models.WaterBill.apartment),
                selectinload(models.WaterBill.building),
            )
            .filter(models.WaterBill.id == bill_id)
            .first()
        )

    def _deliver_all(
        self, client: NotificationClient, jobs: list[_DeliveryJob]
    ) -> list[NotificationResult]:
        if not jobs:
            return []
        workers = max(1, min(self.settings.max_concurrency, len(jobs)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sms") as pool:
            return list(pool.map(lambda job: self._deliver(client, job), jobs))

    @staticmethod
    def _deliver(client: NotificationClient, job: _DeliveryJob) -> NotificationResult:
        try:
            return client.send_message(destination=job.destination, message=job.message)
        except NotificationError as exc:
            LOGGER.warning("SMS delivery for bill %s failed: %s", job.ref.bill_id, exc)
            return NotificationResult(success=False, error=str(exc))
        except Exception as exc:
            LOGGER.exception("Unexpected gateway error for bill %s", job.ref.bill_id)
            return NotificationResult(success=False, error=str(exc) or exc.__class__.__name__)

    def _record_no_contact(self, bill: models.WaterBill, channel: str) -> None:
        self.db.add(
            models.BillNotification(
                water_bill_id=bill.id,
                apartment_id=bill.apartment_id,
                outcome=models.NotificationOutcome.NO_CONTACT,
                channel=channel,
                error_message=NO_CONTACT_MESSAGE,
            )
        )
        bill.notification_status = models.NotificationStatus.NO_CONTACT
        bill.notification_error = NO_CONTACT_MESSAGE

    def _record_delivery(
        self,
        job: _DeliveryJob,
        result: NotificationResult,
        channel: str,
    ) -> None:
        bill = self.db.get(models.WaterBill, job.ref.bill_id)
        if bill is None:
            raise NoResultFound(f"Water bill {job.ref.bill_id} disappeared during dispatch")

        now = datetime.now(timezone.utc)
        error = None if result.success else (result.error or DELIVERY_FAILED)
        self.db.add(
            models.BillNotification(
                water_bill_id=bill.id,
                apartment_id=bill.apartment_id,
                outcome=(
                    models.NotificationOutcome.SENT
                    if result.success
                    else models.NotificationOutcome.FAILED
                ),
                channel=channel,
                destination=job.destination,
                message=job.message,
                provider_message_id=result.provider_message_id,
                response_code=result.status_code,
                error_message=error,
                sent_at=now if result.success else None,
            )
        )
        bill.notification_status = (
            models.NotificationStatus.SENT
            if result.success
            else models.NotificationStatus.FAILED
        )
        bill.notification_error = error
        if result.success:
            bill.notified_at = now


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        key = str(value)
        if key not in seen:
            seen.add(key)
            ordered.append(key)
    return ordered
