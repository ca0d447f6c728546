"""Apply Alembic migrations at startup, one process at a time."""

from __future__ import annotations

import errno
import logging
import os
import sys
import time
from pathlib import Path
from typing import IO, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from .database import engine_options, resolve_database_url

LOGGER = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parent.parent
LOCK_PATH = BACKEND_DIR / ".alembic-migration.lock"
LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"
DEFAULT_LOCK_TIMEOUT = 30.0
LOCK_POLL_INTERVAL = 0.25

# Tables that only exist once the billing schema has been created.
SCHEMA_MARKER_TABLE = "water_bills"

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl

    def _try_lock(handle: IO[str]) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock(handle: IO[str]) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

else:  # pragma: no cover - platform specific
    import msvcrt

    def _try_lock(handle: IO[str]) -> None:
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)

    def _unlock(handle: IO[str]) -> None:
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)


def lock_timeout_from_env() -> float:
    raw = os.getenv(LOCK_TIMEOUT_ENV, "").strip()
    if not raw:
        return DEFAULT_LOCK_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value <= 0:
        LOGGER.warning(
            "Ignoring %s=%r; waiting at most %.1f seconds", LOCK_TIMEOUT_ENV, raw, DEFAULT_LOCK_TIMEOUT
        )
        return DEFAULT_LOCK_TIMEOUT
    return value


def _held_elsewhere(error: OSError) -> bool:
    if isinstance(error, BlockingIOError):
        return True
    # Windows reports sharing (32) and lock (33) violations through winerror.
    return error.errno in {errno.EACCES, errno.EAGAIN, errno.EBUSY} or getattr(
        error, "winerror", None
    ) in {32, 33}


class MigrationLock:
    """Exclusive advisory lock on a file shared by every worker process."""

    def __init__(self, path: Path = LOCK_PATH, *, timeout: Optional[float] = None) -> None:
        self.path = path
        self.timeout = lock_timeout_from_env() if timeout is None else timeout
        self._handle: Optional[IO[str]] = None

    def __enter__(self) -> "MigrationLock":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+")
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                _try_lock(handle)
                break
            except OSError as error:
                if not _held_elsewhere(error):
                    handle.close()
                    raise
                if time.monotonic() >= deadline:
                    handle.close()
                    raise TimeoutError(
                        f"Timed out after {self.timeout:.1f}s waiting for {self.path}"
                    ) from error
                time.sleep(LOCK_POLL_INTERVAL)
        self._handle = handle
        LOGGER.debug("Acquired migration lock %s", self.path)
        return self

    def __exit__(self, *exc_info) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            _unlock(handle)
        except OSError:  # pragma: no cover - the file is closed next anyway
            LOGGER.debug("Could not release migration lock %s", self.path)
        finally:
            handle.close()


def build_alembic_config(database_url: Optional[str] = None) -> Config:
    """Alembic config for ``backend/alembic`` bound to ``database_url``.

    Without an explicit URL the application's own database settings apply.
    """

    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url or resolve_database_url())
    return config


def _adopt_unversioned_schema(config: Config, database_url: str) -> bool:
    """Stamp head on a schema built by ``create_all``; True when stamped."""

    engine = create_engine(database_url, **engine_options(database_url))
    try:
        inspector = inspect(engine)
        unversioned = not inspector.has_table("alembic_version") and inspector.has_table(
            SCHEMA_MARKER_TABLE
        )
    finally:
        engine.dispose()
    if unversioned:
        LOGGER.info("Billing tables exist without Alembic history; stamping head")
        command.stamp(config, "head")
    return unversioned


def run_database_migrations(database_url: Optional[str] = None) -> None:
    """Upgrade the database to the latest revision under :class:`MigrationLock`."""

    # env.py imports ``backend.app`` so the project root must be importable.
    project_root = str(BACKEND_DIR.parent)
    if project_root not in sys.path:
        sys.path.insert(0, project_root)

    config = build_alembic_config(database_url)
    url = config.get_main_option("sqlalchemy.url")
    with MigrationLock():
        if _adopt_unversioned_schema(config, url):
            return
        LOGGER.info("Upgrading database schema to head")
        command.upgrade(config, "head")
