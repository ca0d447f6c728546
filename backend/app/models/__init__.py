"""Expose SQLAlchemy models for convenient imports."""

from .building import Apartment, Building
from .notification import BillNotification, NotificationOutcome
from .system_setting import SystemSetting
from .user import User, UserRole
from .water import NotificationStatus, SharedCostSetting, WaterBill, WaterInvoice

__all__ = [
    "Apartment",
    "Building",
    "BillNotification",
    "NotificationOutcome",
    "NotificationStatus",
    "SharedCostSetting",
    "SystemSetting",
    "User",
    "UserRole",
    "WaterBill",
    "WaterInvoice",
]
