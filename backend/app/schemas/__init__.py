"""Expose Pydantic schemas for convenient imports."""

from .auth import LoginRequest, TokenResponse
from .common import PaginatedResponse
from .notification import (
    BillNotificationRead,
    DispatchNotificationsRequest,
    DispatchNotificationsResponse,
    FailedNotificationRead,
    NoContactNotificationRead,
    SentNotificationRead,
)
from .settings import SettingsRead, SettingsUpdate
from .water import (
    BillGenerationErrorRead,
    ConsumptionReconciliationRead,
    GenerateBillsRequest,
    GenerateBillsResponse,
    MeterReadingInput,
    SharedCostSettingRead,
    SharedCostSettingUpsert,
    WaterBillListResponse,
    WaterBillRead,
    WaterBillUpdate,
    WaterInvoiceCreate,
    WaterInvoiceListResponse,
    WaterInvoiceRead,
)

__all__ = [
    "BillGenerationErrorRead",
    "BillNotificationRead",
    "ConsumptionReconciliationRead",
    "DispatchNotificationsRequest",
    "DispatchNotificationsResponse",
    "FailedNotificationRead",
    "GenerateBillsRequest",
    "GenerateBillsResponse",
    "LoginRequest",
    "MeterReadingInput",
    "NoContactNotificationRead",
    "PaginatedResponse",
    "SentNotificationRead",
    "SettingsRead",
    "SettingsUpdate",
    "SharedCostSettingRead",
    "SharedCostSettingUpsert",
    "TokenResponse",
    "WaterBillListResponse",
    "WaterBillRead",
    "WaterBillUpdate",
    "WaterInvoiceCreate",
    "WaterInvoiceListResponse",
    "WaterInvoiceRead",
]
