"""Schemas for the key/value configuration endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class SettingsRead(BaseModel):
    """Current configuration with credentials masked."""

    values: dict[str, str]


class SettingsUpdate(BaseModel):
    """Partial update of configuration keys."""

    values: dict[str, Optional[str]] = Field(..., min_length=1)
