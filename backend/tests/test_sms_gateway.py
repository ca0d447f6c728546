from __future__ import annotations

import httpx
import pytest

from backend.app.services import sms_gateway
from backend.app.services.sms_gateway import (
    GatewayNotConfiguredError,
    NotificationError,
    TextBeeSmsClient,
)

ENDPOINT = "https://sms.example.test/api/v1/sms/send"


def _client() -> TextBeeSmsClient:
    return TextBeeSmsClient(api_key="secret", sender_name="AMS", endpoint=ENDPOINT, timeout=5)


def _respond(monkeypatch, response: httpx.Response, captured: dict) -> None:
    def fake_post(url, *, headers, json, timeout):
        captured.update(url=url, headers=headers, json=json, timeout=timeout)
        return response

    monkeypatch.setattr(sms_gateway.httpx, "post", fake_post)


def test_send_message_posts_bearer_request(monkeypatch) -> None:
    captured: dict = {}
    request = httpx.Request("POST", ENDPOINT)
    _respond(
        monkeypatch,
        httpx.Response(200, json={"success": True, "data": {"id": 42}}, request=request),
        captured,
    )

    result = _client().send_message(destination="+250788123456", message="Hello")

    assert result.success is True
    assert result.status_code == 200
    assert result.provider_message_id == "42"
    assert captured["url"] == ENDPOINT
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["json"] == {
        "sender": "AMS",
        "recipients": ["+250788123456"],
        "message": "Hello",
    }
    assert captured["timeout"] == 5


def test_error_status_returns_gateway_message(monkeypatch) -> None:
    request = httpx.Request("POST", ENDPOINT)
    _respond(
        monkeypatch,
        httpx.Response(401, json={"message": "Invalid API key"}, request=request),
        {},
    )

    result = _client().send_message(destination="+250788123456", message="Hello")

    assert result.success is False
    assert result.status_code == 401
    assert result.error == "Invalid API key"


def test_error_status_with_plain_text_body(monkeypatch) -> None:
    request = httpx.Request("POST", ENDPOINT)
    _respond(monkeypatch, httpx.Response(502, text="Bad Gateway", request=request), {})

    result = _client().send_message(destination="+250788123456", message="Hello")

    assert result.error == "Bad Gateway"


def test_unsuccessful_body_is_a_failure(monkeypatch) -> None:
    request = httpx.Request("POST", ENDPOINT)
    _respond(
        monkeypatch,
        httpx.Response(200, json={"success": False, "message": "Insufficient credit"}, request=request),
        {},
    )

    result = _client().send_message(destination="+250788123456", message="Hello")

    assert result.success is False
    assert result.error == "Insufficient credit"


@pytest.mark.parametrize(
    "exc, expected",
    [
        (httpx.ReadTimeout("read timed out"), "SMS gateway timed out after 5s"),
        (httpx.ConnectError("connection refused"), "Failed to connect to SMS gateway: connection refused"),
    ],
)
def test_transport_errors_raise_notification_error(monkeypatch, exc, expected) -> None:
    def fake_post(*args, **kwargs):
        raise exc

    monkeypatch.setattr(sms_gateway.httpx, "post", fake_post)

    with pytest.raises(NotificationError) as excinfo:
        _client().send_message(destination="+250788123456", message="Hello")

    assert str(excinfo.value) == expected


def test_client_requires_api_key() -> None:
    with pytest.raises(GatewayNotConfiguredError):
        TextBeeSmsClient(api_key="")
