"""Alembic environment for the water billing schema.

The target URL comes from ``sqlalchemy.url`` which
:func:`backend.app.migrations.build_alembic_config` sets from the
application's database settings.
"""

from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import create_engine, pool

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.app import models  # noqa: E402,F401  (registers tables on Base)
from backend.app.database import Base, SQLALCHEMY_DATABASE_URL  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

database_url = config.get_main_option("sqlalchemy.url") or SQLALCHEMY_DATABASE_URL
# SQLite cannot ALTER most constraints in place.
batch_mode = database_url.startswith("sqlite")


def _run(**configure_kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        render_as_batch=batch_mode,
        compare_type=True,
        **configure_kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _run(url=database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    connectable = create_engine(
        database_url,
        poolclass=pool.NullPool,
        connect_args={"check_same_thread": False} if batch_mode else {},
    )
    with connectable.connect() as connection:
        _run(connection=connection)
