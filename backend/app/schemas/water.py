"""Schemas for water invoices, shared cost settings and water bills."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from ..models.water import NotificationStatus
from .common import PaginatedResponse


class WaterInvoiceBase(BaseModel):
    building_id: str = Field(..., description="Building the invoice was issued for")
    invoice_number: str = Field(..., min_length=1, max_length=100)
    invoice_date: date
    billing_period_start: date
    billing_period_end: date
    total_consumption: Decimal = Field(
        ..., gt=0, max_digits=12, decimal_places=2, description="Cubic metres billed to the building"
    )
    total_cost: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_period(self):
        if self.billing_period_end < self.billing_period_start:
            raise ValueError("billing_period_end must not be before billing_period_start")
        return self


class WaterInvoiceCreate(WaterInvoiceBase):
    """Schema used when recording a building invoice."""


class WaterInvoiceRead(WaterInvoiceBase):
    id: str
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WaterInvoiceListResponse(PaginatedResponse[WaterInvoiceRead]):
    """Paginated invoice listing."""


class SharedCostSettingUpsert(BaseModel):
    """Pump/common-area cost recovered from every apartment each period."""

    total_shared_cost_per_period: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    is_active: bool = True
    notes: Optional[str] = None


class SharedCostSettingRead(SharedCostSettingUpsert):
    id: str
    building_id: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MeterReadingInput(BaseModel):
    unit_id: str = Field(
        ...,
        validation_alias=AliasChoices("unit_id", "apartment_id"),
        description="Apartment whose meter was read",
    )
    # Kept loose so malformed values are reported per item instead of failing the request.
    current_reading: Union[Decimal, str, None] = None


class GenerateBillsRequest(BaseModel):
    invoice_id: str
    readings: list[MeterReadingInput] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("readings", "meter_readings"),
    )


class BillGenerationErrorRead(BaseModel):
    unit_id: str
    reason: str
    detail: Optional[str] = None


class ConsumptionReconciliationRead(BaseModel):
    invoice_consumption: Decimal
    billed_consumption: Decimal
    variance: Decimal
    invoice_cost: Decimal
    billed_cost: Decimal
    cost_variance: Decimal


class GenerateBillsResponse(BaseModel):
    invoice_id: str
    primary_rate: Decimal
    shared_rate: Decimal
    created: list[str]
    errors: list[BillGenerationErrorRead]
    reconciliation: ConsumptionReconciliationRead


class WaterBillRead(BaseModel):
    id: str
    apartment_id: str
    invoice_id: str
    building_id: str
    billing_period_start: date
    billing_period_end: date
    previous_reading: Decimal
    current_reading: Decimal
    consumed: Decimal
    primary_rate: Decimal
    shared_rate: Decimal
    primary_amount: Decimal
    shared_amount: Decimal
    total_amount: Decimal
    is_paid: bool
    payment_date: Optional[date] = None
    notification_status: NotificationStatus
    notification_error: Optional[str] = None
    notified_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WaterBillListResponse(PaginatedResponse[WaterBillRead]):
    """Paginated bill listing."""


class WaterBillUpdate(BaseModel):
    """Payment bookkeeping on an existing bill."""

    is_paid: Optional[bool] = None
    payment_date: Optional[date] = None
