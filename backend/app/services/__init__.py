"""Service layer encapsulating business logic for API routers."""

from .bill_notifications import BillNotificationService, DispatchSummary, build_sms_client
from .errors import (
    BuildingAccessDenied,
    InvalidInvoiceError,
    InvoiceNotFoundError,
    WaterBillingError,
    WaterInvoiceError,
)
from .settings import NotificationSettings, SettingsError, SettingsService
from .sms_gateway import (
    ConfigurationError,
    FeatureDisabledError,
    GatewayNotConfiguredError,
    NotificationClient,
    NotificationError,
    NotificationResult,
    TextBeeSmsClient,
)
from .water_bills import (
    BillGenerationResult,
    BillingErrorReason,
    MeterReadingSubmission,
    WaterBillService,
)
from .water_invoices import InvoiceInUseError, WaterInvoiceService

__all__ = [
    "BillGenerationResult",
    "BillNotificationService",
    "BillingErrorReason",
    "BuildingAccessDenied",
    "ConfigurationError",
    "DispatchSummary",
    "FeatureDisabledError",
    "GatewayNotConfiguredError",
    "InvalidInvoiceError",
    "InvoiceInUseError",
    "InvoiceNotFoundError",
    "MeterReadingSubmission",
    "NotificationClient",
    "NotificationError",
    "NotificationResult",
    "NotificationSettings",
    "SettingsError",
    "SettingsService",
    "TextBeeSmsClient",
    "WaterBillService",
    "WaterBillingError",
    "WaterInvoiceError",
    "WaterInvoiceService",
    "build_sms_client",
]
