"""Read and update the key/value configuration store."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.orm import Session

from .. import models
from .sms_gateway import (
    DEFAULT_SMS_API_URL,
    FeatureDisabledError,
    GatewayNotConfiguredError,
)

LOGGER = logging.getLogger(__name__)

SMS_API_KEY_ENV = "SMS_API_KEY"

SETTING_DEFAULTS: dict[str, str] = {
    "notification_sms_enabled": "false",
    "sms_api_key": "",
    "sms_sender_name": "AMS",
    "sms_api_url": DEFAULT_SMS_API_URL,
    "sms_timeout_seconds": "10",
    "sms_max_concurrency": "4",
    "default_phone_country_code": "+250",
    "currency_symbol": "FRw",
    "currency_position": "after",
}
SECRET_SETTINGS = frozenset({"sms_api_key"})
MASKED_VALUE = "********"


class SettingsError(ValueError):
    """Raised when an unknown or malformed setting is submitted."""


def _parse_bool(raw: Optional[str]) -> bool:
    if raw is None:
        return False
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_number(name: str, raw: Optional[str], default: float, *, minimum: float) -> float:
    try:
        value = float(raw) if raw not in (None, "") else default
    except ValueError:
        LOGGER.warning("Invalid value for %s=%s; using %s", name, raw, default)
        return default
    if value < minimum:
        LOGGER.warning("%s must be at least %s; using %s", name, minimum, default)
        return default
    return value


@dataclass(frozen=True)
class NotificationSettings:
    """Configuration required to render and deliver bill notifications."""

    enabled: bool = False
    api_key: Optional[str] = None
    sender_name: str = "AMS"
    api_url: str = DEFAULT_SMS_API_URL
    timeout_seconds: float = 10.0
    max_concurrency: int = 4
    default_country_code: str = "+250"
    currency_symbol: str = "FRw"
    currency_position: str = "after"

    def ensure_ready(self) -> None:
        """Fail before any per-bill work when notifications cannot be sent."""

        if not self.enabled:
            raise FeatureDisabledError("SMS notifications are disabled")
        if not self.api_key:
            raise GatewayNotConfiguredError("SMS gateway API key is not configured")

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> "NotificationSettings":
        merged = {**SETTING_DEFAULTS, **{k: v for k, v in values.items() if v is not None}}
        position = merged["currency_position"].strip().lower()
        return cls(
            enabled=_parse_bool(merged["notification_sms_enabled"]),
            api_key=merged["sms_api_key"].strip() or os.getenv(SMS_API_KEY_ENV) or None,
            sender_name=merged["sms_sender_name"].strip() or SETTING_DEFAULTS["sms_sender_name"],
            api_url=merged["sms_api_url"].strip() or DEFAULT_SMS_API_URL,
            timeout_seconds=_parse_number(
                "sms_timeout_seconds", merged["sms_timeout_seconds"], 10.0, minimum=0.1
            ),
            max_concurrency=int(
                _parse_number("sms_max_concurrency", merged["sms_max_concurrency"], 4, minimum=1)
            ),
            default_country_code=merged["default_phone_country_code"].strip(),
            currency_symbol=merged["currency_symbol"],
            currency_position="before" if position == "before" else "after",
        )


class SettingsService:
    """Access to ``system_settings`` rows."""

    @staticmethod
    def get_values(db: Session) -> dict[str, str]:
        rows = db.query(models.SystemSetting).all()
        stored = {row.setting_key: row.setting_value for row in rows}
        return {key: stored.get(key) or default for key, default in SETTING_DEFAULTS.items()}

    @classmethod
    def get_public_values(cls, db: Session) -> dict[str, str]:
        values = cls.get_values(db)
        for key in SECRET_SETTINGS:
            if values.get(key):
                values[key] = MASKED_VALUE
        return values

    @classmethod
    def update_values(cls, db: Session, values: Mapping[str, Optional[str]]) -> dict[str, str]:
        unknown = sorted(set(values) - set(SETTING_DEFAULTS))
        if unknown:
            raise SettingsError(f"Unknown settings: {', '.join(unknown)}")

        for key, value in values.items():
            if key in SECRET_SETTINGS and value == MASKED_VALUE:
                continue
            row = db.get(models.SystemSetting, key)
            if row is None:
                row = models.SystemSetting(setting_key=key)
            row.setting_value = value
            db.add(row)
        db.commit()
        LOGGER.info("Updated settings: %s", ", ".join(sorted(values)))
        return cls.get_public_values(db)

    @classmethod
    def load_notification_settings(cls, db: Session) -> NotificationSettings:
        return NotificationSettings.from_values(cls.get_values(db))
