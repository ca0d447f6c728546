from __future__ import annotations

import pytest
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect, text

from backend.app.database import Base
from backend.app.migrations import (
    DEFAULT_LOCK_TIMEOUT,
    MigrationLock,
    build_alembic_config,
    lock_timeout_from_env,
    run_database_migrations,
)

EXPECTED_TABLES = {
    "users",
    "buildings",
    "apartments",
    "water_invoices",
    "shared_cost_settings",
    "water_bills",
    "bill_notifications",
    "system_settings",
}


def _current_head() -> str:
    return ScriptDirectory.from_config(build_alembic_config()).get_current_head()


def _version(url: str) -> str:
    engine = create_engine(url, connect_args={"check_same_thread": False})
    try:
        with engine.connect() as connection:
            return connection.scalar(text("SELECT version_num FROM alembic_version"))
    finally:
        engine.dispose()


def test_run_database_migrations_creates_schema(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'fresh.db'}"
    monkeypatch.setenv("DATABASE_URL", url)

    run_database_migrations()

    engine = create_engine(url, connect_args={"check_same_thread": False})
    tables = set(inspect(engine).get_table_names())
    engine.dispose()

    assert EXPECTED_TABLES <= tables
    assert _version(url) == _current_head()


def test_run_database_migrations_stamps_schema_created_without_alembic(
    tmp_path, monkeypatch
) -> None:
    url = f"sqlite:///{tmp_path / 'current.db'}"
    engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    monkeypatch.setenv("DATABASE_URL", url)

    run_database_migrations()

    assert _version(url) == _current_head()


def test_migrated_schema_enforces_one_bill_per_apartment_and_invoice(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'constraints.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    run_database_migrations()

    engine = create_engine(url, connect_args={"check_same_thread": False})
    inspector = inspect(engine)
    unique_sets = [
        tuple(constraint["column_names"])
        for constraint in inspector.get_unique_constraints("water_bills")
    ]
    engine.dispose()

    assert ("apartment_id", "invoice_id") in unique_sets


def test_migration_lock_times_out_while_another_holder_exists(tmp_path) -> None:
    lock_path = tmp_path / "migrate.lock"

    with MigrationLock(lock_path, timeout=1.0):
        with pytest.raises(TimeoutError):
            with MigrationLock(lock_path, timeout=0.3):
                pass

    with MigrationLock(lock_path, timeout=0.3):
        pass


@pytest.mark.parametrize("raw, expected", [("12.5", 12.5), ("-1", DEFAULT_LOCK_TIMEOUT), ("soon", DEFAULT_LOCK_TIMEOUT)])
def test_lock_timeout_from_env(monkeypatch, raw, expected) -> None:
    monkeypatch.setenv("ALEMBIC_MIGRATION_LOCK_TIMEOUT", raw)

    assert lock_timeout_from_env() == expected
