"""Models for operators allowed to use the backoffice."""

from __future__ import annotations

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, String, func

from ..database import Base
from ..db_types import GUID, new_guid


class UserRole(str, enum.Enum):
    """Roles recognised by the authorization layer."""

    ADMIN = "admin"
    MANAGER = "manager"


USER_ROLE_ENUM = SAEnum(
    UserRole,
    name="user_role_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class User(Base):
    """Administrator or building manager account."""

    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=new_guid)
    username = Column(String(100), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(USER_ROLE_ENUM, nullable=False, default=UserRole.MANAGER)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
