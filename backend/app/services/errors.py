"""Exceptions raised by the water billing services."""

from __future__ import annotations


class WaterBillingError(RuntimeError):
    """Raised when a billing request cannot be processed at all."""


class InvoiceNotFoundError(WaterBillingError):
    """Raised when the referenced water invoice does not exist."""


class InvalidInvoiceError(WaterBillingError):
    """Raised when an invoice cannot produce a usable rate."""


class BuildingAccessDenied(WaterBillingError):
    """Raised when the caller does not manage the building involved."""


class WaterInvoiceError(WaterBillingError):
    """Raised when an invoice cannot be created or removed."""
