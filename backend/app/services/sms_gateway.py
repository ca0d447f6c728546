"""Outbound SMS gateway clients used to deliver bill notifications."""

from __future__ import annotations

import abc
import json
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

LOGGER = logging.getLogger(__name__)

DEFAULT_SMS_API_URL = "https://api.textbee.rw/api/v1/sms/send"


class ConfigurationError(RuntimeError):
    """Raised when notifications cannot be sent with the current configuration."""


class FeatureDisabledError(ConfigurationError):
    """Raised when SMS notifications are switched off."""


class GatewayNotConfiguredError(ConfigurationError):
    """Raised when the gateway credential is missing."""


class NotificationError(RuntimeError):
    """Raised when the gateway cannot be reached."""


@dataclass
class NotificationResult:
    """Outcome returned by the messaging gateway."""

    success: bool
    status_code: Optional[int] = None
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationClient(abc.ABC):
    """Interface implemented by outbound messaging gateways."""

    channel: str

    @abc.abstractmethod
    def send_message(self, *, destination: str, message: str) -> NotificationResult:
        """Send ``message`` to ``destination`` and return the delivery result."""


class TextBeeSmsClient(NotificationClient):
    """Send SMS through the TextBee REST API using a bearer token."""

    channel = "sms"

    def __init__(
        self,
        *,
        api_key: str | None,
        sender_name: str = "AMS",
        endpoint: str = DEFAULT_SMS_API_URL,
        timeout: float = 10.0,
    ) -> None:
        if not api_key:
            raise GatewayNotConfiguredError("SMS gateway API key is not configured")
        self.api_key = api_key
        self.sender_name = sender_name
        self.endpoint = endpoint
        self.timeout = timeout

    def send_message(self, *, destination: str, message: str) -> NotificationResult:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "sender": self.sender_name,
            "recipients": [destination],
            "message": message,
        }
        try:
            response = httpx.post(
                self.endpoint,
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise NotificationError(f"SMS gateway timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise NotificationError(f"Failed to connect to SMS gateway: {exc}") from exc

        if response.status_code >= 400:
            return NotificationResult(
                success=False,
                status_code=response.status_code,
                error=_extract_error(response),
            )

        provider_message_id = None
        try:
            body = response.json()
        except json.JSONDecodeError:
            body = None
        if isinstance(body, dict):
            if body.get("success") is False:
                return NotificationResult(
                    success=False,
                    status_code=response.status_code,
                    error=str(body.get("message") or "SMS delivery failed"),
                )
            data = body.get("data")
            if isinstance(data, dict) and data.get("id") is not None:
                provider_message_id = str(data["id"])

        return NotificationResult(
            success=True,
            status_code=response.status_code,
            provider_message_id=provider_message_id,
        )


def _extract_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except json.JSONDecodeError:
        return response.text or "SMS delivery failed"
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return "SMS delivery failed"
