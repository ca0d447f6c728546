"""Append-only log of notification attempts for water bills."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_guid


class NotificationOutcome(str, enum.Enum):
    """Result recorded for a single dispatch attempt."""

    SENT = "sent"
    FAILED = "failed"
    NO_CONTACT = "no_contact"


NOTIFICATION_OUTCOME_ENUM = SAEnum(
    NotificationOutcome,
    name="bill_notification_outcome_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class BillNotification(Base):
    """Outcome of one notification attempt for a water bill."""

    __tablename__ = "bill_notifications"

    id = Column(GUID(), primary_key=True, default=new_guid)
    water_bill_id = Column(
        GUID(), ForeignKey("water_bills.id", ondelete="CASCADE"), nullable=False
    )
    apartment_id = Column(
        GUID(), ForeignKey("apartments.id", ondelete="SET NULL"), nullable=True
    )
    outcome = Column(NOTIFICATION_OUTCOME_ENUM, nullable=False)
    channel = Column(String(50), nullable=False)
    destination = Column(String(40), nullable=True)
    message = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    response_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    water_bill = relationship("WaterBill", back_populates="notifications")


Index("bill_notifications_bill_idx", BillNotification.water_bill_id)
Index("bill_notifications_created_at_idx", BillNotification.created_at)
