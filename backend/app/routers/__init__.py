"""Routers package."""

from .auth import router as auth_router
from .settings import router as settings_router
from .shared_costs import router as shared_costs_router
from .water_bills import router as water_bills_router
from .water_invoices import router as water_invoices_router

__all__ = [
    "auth_router",
    "settings_router",
    "shared_costs_router",
    "water_bills_router",
    "water_invoices_router",
]
