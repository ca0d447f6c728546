"""FastAPI application for water bill allocation and tenant notifications."""

import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Iterable, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .migrations import run_database_migrations
from .routers import (
    auth_router,
    settings_router,
    shared_costs_router,
    water_bills_router,
    water_invoices_router,
)

LOGGER = logging.getLogger(__name__)

ALLOWED_ORIGINS_ENV = "BACKEND_ALLOWED_ORIGINS"
RUN_MIGRATIONS_ENV = "RUN_MIGRATIONS_ON_STARTUP"
HOST_ENV = "BACKEND_HOST"
PORT_ENV = "BACKEND_PORT"

# Vite and CRA dev servers of the management dashboard.
DEV_SERVER_ORIGINS = tuple(
    f"http://{host}:{port}" for host in ("localhost", "127.0.0.1") for port in (3000, 5173)
)
LOOPBACK_ORIGIN_PATTERN = r"https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$"
_ORIGIN_SEPARATORS = re.compile(r"[\s,]+")

TRUTHY = {"1", "true", "yes", "on"}


def _split_raw_origins(raw_value: str) -> list[str]:
    """Origins may be separated by commas, whitespace or both."""

    return [item for item in _ORIGIN_SEPARATORS.split(raw_value) if item]


def _clean_origins(origins: Iterable[str]) -> list[str]:
    return sorted({origin.strip().rstrip("/") for origin in origins if origin.strip()})


def _resolve_allowed_origins(raw_value: Optional[str] = None) -> list[str]:
    if raw_value is None:
        raw_value = os.getenv(ALLOWED_ORIGINS_ENV, "")
    configured = _clean_origins(_split_raw_origins(raw_value))
    return configured or _clean_origins(DEV_SERVER_ORIGINS)


def _read_bool_env(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY


def ensure_database_is_ready() -> None:
    """Bring the schema to the latest revision unless disabled by environment."""

    if not _read_bool_env(RUN_MIGRATIONS_ENV, True):
        LOGGER.info("%s is off; not running migrations", RUN_MIGRATIONS_ENV)
        return
    run_database_migrations()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    yield


app = FastAPI(title="AMS Water Billing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_allowed_origins(),
    allow_origin_regex=LOOPBACK_ORIGIN_PATTERN,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(water_invoices_router, prefix="/water/invoices", tags=["water-invoices"])
app.include_router(shared_costs_router, prefix="/water/shared-costs", tags=["water-invoices"])
app.include_router(water_bills_router, prefix="/water/bills", tags=["water-bills"])
app.include_router(settings_router, prefix="/settings", tags=["settings"])


@app.get("/", tags=["health"])
def read_root() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    """Serve the API with uvicorn; ``BACKEND_HOST``/``BACKEND_PORT`` override the bind."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    host = os.getenv(HOST_ENV, "127.0.0.1")
    port = int(os.getenv(PORT_ENV, "8000"))
    LOGGER.info("Starting uvicorn on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")
