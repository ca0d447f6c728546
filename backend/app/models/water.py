"""Models for water invoices, shared cost settings and per-apartment bills."""

from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_guid


class NotificationStatus(str, enum.Enum):
    """Delivery state of the notification attached to a bill."""

    NOT_SENT = "not_sent"
    SENT = "sent"
    FAILED = "failed"
    NO_CONTACT = "no_contact"


NOTIFICATION_STATUS_ENUM = SAEnum(
    NotificationStatus,
    name="water_bill_notification_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class WaterInvoice(Base):
    """Building-level utility purchase for a billing period."""

    __tablename__ = "water_invoices"
    __table_args__ = (
        CheckConstraint("total_consumption > 0", name="ck_water_invoices_consumption_positive"),
        CheckConstraint("total_cost > 0", name="ck_water_invoices_cost_positive"),
        CheckConstraint(
            "billing_period_end >= billing_period_start",
            name="ck_water_invoices_period_order",
        ),
    )

    id = Column(GUID(), primary_key=True, default=new_guid)
    building_id = Column(
        GUID(), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False
    )
    invoice_number = Column(String(100), nullable=False, unique=True)
    invoice_date = Column(Date, nullable=False)
    billing_period_start = Column(Date, nullable=False)
    billing_period_end = Column(Date, nullable=False)
    total_consumption = Column(Numeric(12, 2), nullable=False)
    total_cost = Column(Numeric(14, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(GUID(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    building = relationship("Building")
    bills = relationship("WaterBill", back_populates="invoice")


class SharedCostSetting(Base):
    """Secondary building cost (shared pump) spread over consumption."""

    __tablename__ = "shared_cost_settings"
    __table_args__ = (
        CheckConstraint(
            "total_shared_cost_per_period >= 0",
            name="ck_shared_cost_settings_cost_non_negative",
        ),
    )

    id = Column(GUID(), primary_key=True, default=new_guid)
    building_id = Column(
        GUID(),
        ForeignKey("buildings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    total_shared_cost_per_period = Column(Numeric(14, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    building = relationship("Building")


class WaterBill(Base):
    """Monetary water bill for one apartment and one invoice."""

    __tablename__ = "water_bills"
    __table_args__ = (
        UniqueConstraint("apartment_id", "invoice_id", name="water_bills_apartment_invoice_key"),
        CheckConstraint("consumed >= 0", name="ck_water_bills_consumed_non_negative"),
        CheckConstraint(
            "current_reading >= previous_reading",
            name="ck_water_bills_reading_monotonic",
        ),
    )

    id = Column(GUID(), primary_key=True, default=new_guid)
    apartment_id = Column(
        GUID(), ForeignKey("apartments.id", ondelete="CASCADE"), nullable=False
    )
    invoice_id = Column(
        GUID(), ForeignKey("water_invoices.id", ondelete="RESTRICT"), nullable=False
    )
    building_id = Column(
        GUID(), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False
    )
    billing_period_start = Column(Date, nullable=False)
    billing_period_end = Column(Date, nullable=False)
    previous_reading = Column(Numeric(12, 2), nullable=False)
    current_reading = Column(Numeric(12, 2), nullable=False)
    consumed = Column(Numeric(12, 2), nullable=False)
    primary_rate = Column(Numeric(14, 4), nullable=False)
    shared_rate = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    primary_amount = Column(Numeric(18, 6), nullable=False)
    shared_amount = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    total_amount = Column(Numeric(18, 6), nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    payment_date = Column(Date, nullable=True)
    notification_status = Column(
        NOTIFICATION_STATUS_ENUM,
        nullable=False,
        default=NotificationStatus.NOT_SENT,
    )
    notification_error = Column(Text, nullable=True)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(GUID(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    apartment = relationship("Apartment")
    building = relationship("Building")
    invoice = relationship("WaterInvoice", back_populates="bills")
    notifications = relationship(
        "BillNotification",
        back_populates="water_bill",
        cascade="all, delete-orphan",
        order_by="BillNotification.created_at",
    )


Index("water_bills_building_idx", WaterBill.building_id)
Index("water_bills_invoice_idx", WaterBill.invoice_id)
Index("water_bills_period_idx", WaterBill.billing_period_start)
