"""Key/value configuration store editable by administrators."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text, func

from ..database import Base


class SystemSetting(Base):
    """Single configuration value identified by its key."""

    __tablename__ = "system_settings"

    setting_key = Column(String(100), primary_key=True)
    setting_value = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
