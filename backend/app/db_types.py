"""Column types shared by the billing models."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy.dialects import postgresql
from sqlalchemy.types import CHAR, TypeDecorator


def new_guid() -> str:
    """Primary key default; identifiers travel through the app as strings."""

    return str(uuid.uuid4())


def is_valid_guid(value: Any) -> bool:
    try:
        uuid.UUID(str(value))
    except (TypeError, ValueError):
        return False
    return True


class GUID(TypeDecorator):
    """UUID column: native ``UUID`` on PostgreSQL, ``CHAR(36)`` elsewhere.

    Bound values may be strings or :class:`uuid.UUID`; loaded values are
    always strings so they compare equal to path and body parameters.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value: Any, dialect) -> Optional[Any]:  # type: ignore[override]
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value: Any, dialect) -> Optional[str]:  # type: ignore[override]
        return None if value is None else str(value)
