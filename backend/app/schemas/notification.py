"""Schemas for bill notification dispatch."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..models.notification import NotificationOutcome


class DispatchNotificationsRequest(BaseModel):
    bill_ids: list[str] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("bill_ids", "water_bill_ids"),
    )


class SentNotificationRead(BaseModel):
    bill_id: str
    unit_id: str
    apartment_number: str
    tenant_name: Optional[str] = None
    destination: str

    model_config = ConfigDict(from_attributes=True)


class FailedNotificationRead(BaseModel):
    bill_id: str
    error: str
    unit_id: Optional[str] = None
    apartment_number: Optional[str] = None
    tenant_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class NoContactNotificationRead(BaseModel):
    bill_id: str
    unit_id: str
    apartment_number: str
    tenant_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DispatchNotificationsResponse(BaseModel):
    """Each submitted bill appears in exactly one of the three lists."""

    sent: list[SentNotificationRead]
    failed: list[FailedNotificationRead]
    no_contact: list[NoContactNotificationRead]

    model_config = ConfigDict(from_attributes=True)


class BillNotificationRead(BaseModel):
    id: str
    water_bill_id: str
    apartment_id: Optional[str] = None
    outcome: NotificationOutcome
    channel: str
    destination: Optional[str] = None
    message: Optional[str] = None
    provider_message_id: Optional[str] = None
    response_code: Optional[int] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
