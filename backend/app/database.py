"""Engine, session factory and declarative base for the billing store.

The connection string is taken from ``DATABASE_URL`` (or the legacy
``SQLALCHEMY_DATABASE_URL``). Without one a SQLite file next to the
``backend`` package is used, which is what local development and the
``ams-create-user`` script expect.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DATABASE_URL_ENVS = ("DATABASE_URL", "SQLALCHEMY_DATABASE_URL")
LOCAL_DATABASE_PATH = Path(__file__).resolve().parent.parent / "ams.db"

# (environment variable, engine keyword, default)
POOL_OPTIONS = (
    ("DATABASE_POOL_SIZE", "pool_size", 5),
    ("DATABASE_MAX_OVERFLOW", "max_overflow", 10),
    ("DATABASE_POOL_TIMEOUT", "pool_timeout", 30),
    ("DATABASE_POOL_RECYCLE", "pool_recycle", 1800),
)


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def resolve_database_url(raw_url: Optional[str] = None) -> str:
    """Return the configured URL, creating the SQLite parent folder if needed."""

    if raw_url is None:
        raw_url = next((os.environ[name] for name in DATABASE_URL_ENVS if os.getenv(name)), None)
    if not raw_url:
        LOCAL_DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{LOCAL_DATABASE_PATH.as_posix()}"

    url = make_url(raw_url)
    if url.drivername.startswith("sqlite") and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return url.render_as_string(hide_password=False)


def engine_options(database_url: str) -> Dict[str, Any]:
    """Keyword arguments for :func:`create_engine` suited to the backend."""

    if database_url.startswith("sqlite"):
        # FastAPI runs sync dependencies and endpoints in a threadpool.
        return {"connect_args": {"check_same_thread": False}}

    options: Dict[str, Any] = {"pool_pre_ping": True}
    for env_name, keyword, default in POOL_OPTIONS:
        options[keyword] = _read_int_env(env_name, default)
    return options


SQLALCHEMY_DATABASE_URL = resolve_database_url()

engine = create_engine(SQLALCHEMY_DATABASE_URL, **engine_options(SQLALCHEMY_DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back on error; for scripts outside FastAPI."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
