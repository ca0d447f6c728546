from __future__ import annotations

import sqlite3
import uuid
from decimal import Decimal
from typing import Callable, Optional

import pytest
from sqlalchemy.exc import OperationalError

from backend.app import models
from backend.app.main import app
from backend.app.routers.water_bills import get_sms_client_factory
from backend.app.services import (
    BillNotificationService,
    FeatureDisabledError,
    GatewayNotConfiguredError,
    MeterReadingSubmission,
    NotificationClient,
    NotificationError,
    NotificationResult,
    NotificationSettings,
    WaterBillService,
)
from backend.app.services.bill_notifications import (
    OUTCOME_NOT_SAVED,
    format_currency,
    render_bill_message,
)

READY_SETTINGS = NotificationSettings(enabled=True, api_key="test-key", sender_name="AMS")


class FakeSmsClient(NotificationClient):
    channel = "sms"

    def __init__(
        self,
        respond: Optional[Callable[[str, str], NotificationResult]] = None,
    ) -> None:
        self.calls: list[tuple[str, str]] = []
        self._respond = respond or (
            lambda destination, message: NotificationResult(
                success=True, status_code=200, provider_message_id="msg-1"
            )
        )

    def send_message(self, *, destination: str, message: str) -> NotificationResult:
        self.calls.append((destination, message))
        return self._respond(destination, message)


class FailingSmsClient(FakeSmsClient):
    def __init__(self) -> None:
        super().__init__(
            lambda destination, message: NotificationResult(
                success=False, status_code=500, error="boom"
            )
        )


class ExplodingSmsClient(FakeSmsClient):
    def __init__(self, exc: Exception) -> None:
        super().__init__()
        self.exc = exc

    def send_message(self, *, destination: str, message: str) -> NotificationResult:
        self.calls.append((destination, message))
        raise self.exc


@pytest.fixture
def bills(db_session, seed_building, admin_identity) -> dict[str, str]:
    """One bill per apartment of the managed building plus one elsewhere."""

    service = WaterBillService(db_session)
    managed = service.generate_bills(
        seed_building["invoice"].id,
        [
            MeterReadingSubmission(unit_id=seed_building["unit_a"].id, current_reading="120"),
            MeterReadingSubmission(unit_id=seed_building["unit_b"].id, current_reading="210"),
            MeterReadingSubmission(unit_id=seed_building["unit_c"].id, current_reading="55"),
        ],
        caller=admin_identity,
    )
    foreign = service.generate_bills(
        seed_building["other_invoice"].id,
        [MeterReadingSubmission(unit_id=seed_building["foreign_unit"].id, current_reading="30")],
        caller=admin_identity,
    )
    by_unit = {bill.apartment_id: bill.id for bill in managed.created}
    return {
        "a": by_unit[seed_building["unit_a"].id],
        "b": by_unit[seed_building["unit_b"].id],
        "c": by_unit[seed_building["unit_c"].id],
        "foreign": foreign.created_ids[0],
    }


def _bill(db_session, bill_id: str) -> models.WaterBill:
    db_session.expire_all()
    return db_session.get(models.WaterBill, bill_id)


def _records(db_session, bill_id: str) -> list[models.BillNotification]:
    return (
        db_session.query(models.BillNotification)
        .filter(models.BillNotification.water_bill_id == bill_id)
        .all()
    )


def test_successful_delivery_marks_bill_sent(db_session, bills, admin_identity):
    client = FakeSmsClient()

    summary = BillNotificationService(
        db_session, settings=READY_SETTINGS, client=client
    ).dispatch([bills["a"]], caller=admin_identity)

    assert [item.bill_id for item in summary.sent] == [bills["a"]]
    assert summary.sent[0].destination == "+250788123456"
    assert summary.sent[0].tenant_name == "Alice Uwase"
    assert summary.failed == [] and summary.no_contact == []

    destination, message = client.calls[0]
    assert destination == "+250788123456"
    assert "Hello Alice Uwase," in message
    assert "Kigali Heights, Apt A1" in message
    assert "Period: 01/09/2026 - 30/09/2026" in message
    assert "Water used: 20 m³" in message
    assert "Water charge: 10000.00 FRw" in message
    assert "Pump charge: 1000.00 FRw" in message
    assert "Total: 11000.00 FRw" in message

    bill = _bill(db_session, bills["a"])
    assert bill.notification_status == models.NotificationStatus.SENT
    assert bill.notified_at is not None
    assert bill.notification_error is None
    [record] = _records(db_session, bills["a"])
    assert record.outcome == models.NotificationOutcome.SENT
    assert record.provider_message_id == "msg-1"
    assert record.sent_at is not None


def test_missing_phone_is_no_contact_without_gateway_call(db_session, bills, admin_identity):
    client = FakeSmsClient()

    summary = BillNotificationService(
        db_session, settings=READY_SETTINGS, client=client
    ).dispatch([bills["b"]], caller=admin_identity)

    assert client.calls == []
    assert [item.bill_id for item in summary.no_contact] == [bills["b"]]
    assert summary.sent == [] and summary.failed == []

    bill = _bill(db_session, bills["b"])
    assert bill.notification_status == models.NotificationStatus.NO_CONTACT
    [record] = _records(db_session, bills["b"])
    assert record.outcome == models.NotificationOutcome.NO_CONTACT
    assert record.message is None


def test_gateway_failure_is_recorded_verbatim(db_session, bills, admin_identity):
    summary = BillNotificationService(
        db_session, settings=READY_SETTINGS, client=FailingSmsClient()
    ).dispatch([bills["a"]], caller=admin_identity)

    assert [(item.bill_id, item.error) for item in summary.failed] == [(bills["a"], "boom")]
    bill = _bill(db_session, bills["a"])
    assert bill.notification_status == models.NotificationStatus.FAILED
    assert bill.notification_error == "boom"
    [record] = _records(db_session, bills["a"])
    assert record.outcome == models.NotificationOutcome.FAILED
    assert record.error_message == "boom"
    assert record.response_code == 500


def test_resending_appends_a_record_and_clears_the_error(db_session, bills, admin_identity):
    BillNotificationService(
        db_session, settings=READY_SETTINGS, client=FailingSmsClient()
    ).dispatch([bills["a"]], caller=admin_identity)
    [failed] = _records(db_session, bills["a"])
    failed_id = failed.id

    summary = BillNotificationService(
        db_session, settings=READY_SETTINGS, client=FakeSmsClient()
    ).dispatch([bills["a"]], caller=admin_identity)

    assert [item.bill_id for item in summary.sent] == [bills["a"]]
    bill = _bill(db_session, bills["a"])
    assert bill.notification_status == models.NotificationStatus.SENT
    assert bill.notification_error is None
    records = {record.id: record for record in _records(db_session, bills["a"])}
    assert len(records) == 2
    assert records[failed_id].outcome == models.NotificationOutcome.FAILED
    assert records[failed_id].error_message == "boom"
    assert records[failed_id].response_code == 500
    [resent] = [record for key, record in records.items() if key != failed_id]
    assert resent.outcome == models.NotificationOutcome.SENT
    assert resent.error_message is None


def test_storage_error_fails_only_the_bill_it_hit(committed_session, committed_seed, monkeypatch):
    admin = committed_seed["admin_identity"]
    created = WaterBillService(committed_session).generate_bills(
        committed_seed["invoice"].id,
        [
            MeterReadingSubmission(unit_id=committed_seed["unit_a"].id, current_reading="120"),
            MeterReadingSubmission(unit_id=committed_seed["unit_c"].id, current_reading="55"),
        ],
        caller=admin,
    )
    bill_a, bill_c = created.created_ids

    record_delivery = BillNotificationService._record_delivery
    calls = []

    def record_then_fail_second(self, job, result, channel):
        record_delivery(self, job, result, channel)
        calls.append(job.ref.bill_id)
        if len(calls) == 2:
            raise OperationalError(
                "INSERT INTO bill_notifications", {}, sqlite3.OperationalError("disk I/O error")
            )

    monkeypatch.setattr(BillNotificationService, "_record_delivery", record_then_fail_second)
    client = FakeSmsClient()

    summary = BillNotificationService(
        committed_session, settings=READY_SETTINGS, client=client
    ).dispatch([bill_a, bill_c], caller=admin)

    assert len(client.calls) == 2
    assert [item.bill_id for item in summary.sent] == [bill_a]
    assert [(item.bill_id, item.error) for item in summary.failed] == [
        (bill_c, OUTCOME_NOT_SAVED)
    ]

    assert _bill(committed_session, bill_a).notification_status == models.NotificationStatus.SENT
    assert len(_records(committed_session, bill_a)) == 1
    assert (
        _bill(committed_session, bill_c).notification_status
        == models.NotificationStatus.NOT_SENT
    )
    assert _records(committed_session, bill_c) == []


@pytest.mark.parametrize(
    "exc, expected",
    [
        (NotificationError("SMS gateway timed out after 10.0s"), "SMS gateway timed out after 10.0s"),
        (RuntimeError("gateway exploded"), "gateway exploded"),
    ],
)
def test_gateway_exceptions_fail_only_their_bill(db_session, bills, admin_identity, exc, expected):
    client = ExplodingSmsClient(exc)

    summary = BillNotificationService(
        db_session, settings=READY_SETTINGS, client=client
    ).dispatch([bills["a"], bills["b"]], caller=admin_identity)

    assert [(item.bill_id, item.error) for item in summary.failed] == [(bills["a"], expected)]
    assert [item.bill_id for item in summary.no_contact] == [bills["b"]]
    assert _bill(db_session, bills["a"]).notification_error == expected


def test_mixed_batch_yields_one_outcome_per_distinct_bill(db_session, bills, admin_identity):
    client = FakeSmsClient(
        lambda destination, message: NotificationResult(
            success=destination.startswith("+250"),
            status_code=200,
            error=None if destination.startswith("+250") else "Invalid recipient",
        )
    )

    summary = BillNotificationService(
        db_session, settings=READY_SETTINGS, client=client
    ).dispatch(
        [bills["a"], bills["b"], bills["c"], bills["a"]],
        caller=admin_identity,
    )

    assert [item.bill_id for item in summary.sent] == [bills["a"]]
    assert [item.bill_id for item in summary.no_contact] == [bills["b"]]
    assert [(item.bill_id, item.error) for item in summary.failed] == [
        (bills["c"], "Invalid recipient")
    ]
    assert sorted(destination for destination, _ in client.calls) == [
        "+250788123456",
        "+256700111222",
    ]
    assert len(_records(db_session, bills["a"])) == 1


def test_out_of_scope_and_unknown_bills_fail_per_item(
    db_session, bills, manager_identity
):
    client = FakeSmsClient()
    missing = str(uuid.uuid4())

    summary = BillNotificationService(
        db_session, settings=READY_SETTINGS, client=client
    ).dispatch([bills["foreign"], missing, "garbage", bills["a"]], caller=manager_identity)

    assert [item.bill_id for item in summary.sent] == [bills["a"]]
    assert [(item.bill_id, item.error) for item in summary.failed] == [
        (bills["foreign"], "Unauthorized"),
        (missing, "BillNotFound"),
        ("garbage", "BillNotFound"),
    ]
    assert len(client.calls) == 1
    foreign_bill = _bill(db_session, bills["foreign"])
    assert foreign_bill.notification_status == models.NotificationStatus.NOT_SENT
    assert _records(db_session, bills["foreign"]) == []


@pytest.mark.parametrize(
    "settings, error",
    [
        (NotificationSettings(enabled=False, api_key="test-key"), FeatureDisabledError),
        (NotificationSettings(enabled=True, api_key=None), GatewayNotConfiguredError),
    ],
)
def test_configuration_errors_abort_before_any_bill(
    db_session, bills, admin_identity, settings, error
):
    client = FakeSmsClient()

    with pytest.raises(error):
        BillNotificationService(db_session, settings=settings, client=client).dispatch(
            [bills["a"], bills["b"]], caller=admin_identity
        )

    assert client.calls == []
    assert _records(db_session, bills["b"]) == []
    assert _bill(db_session, bills["b"]).notification_status == models.NotificationStatus.NOT_SENT


def test_currency_formatting_follows_settings() -> None:
    before = NotificationSettings(currency_symbol="$", currency_position="before")
    after = NotificationSettings(currency_symbol="FRw", currency_position="after")

    assert format_currency(Decimal("11000.000000"), before) == "$11000.00"
    assert format_currency(Decimal("0.125"), after) == "0.13 FRw"


def test_message_falls_back_to_generic_tenant_name(db_session, bills):
    bill = _bill(db_session, bills["c"])

    message = render_bill_message(bill, READY_SETTINGS)

    assert message.startswith("Hello Tenant,")
    assert message.endswith("- AMS")


def test_dispatch_endpoint_uses_stored_settings(
    api_client, db_session, bills, admin_headers, manager_headers
):
    client = FakeSmsClient()
    app.dependency_overrides[get_sms_client_factory] = lambda: (lambda settings: client)
    try:
        disabled = api_client.post(
            "/water/bills/notifications",
            json={"bill_ids": [bills["a"]]},
            headers=manager_headers,
        )
        assert disabled.status_code == 400
        assert disabled.json()["detail"] == "SMS notifications are disabled"

        updated = api_client.put(
            "/settings/",
            json={"values": {"notification_sms_enabled": "true", "sms_api_key": "secret"}},
            headers=admin_headers,
        )
        assert updated.status_code == 200
        assert updated.json()["values"]["sms_api_key"] == "********"

        response = api_client.post(
            "/water/bills/notifications",
            json={"water_bill_ids": [bills["a"], bills["b"], bills["foreign"]]},
            headers=manager_headers,
        )
    finally:
        app.dependency_overrides.pop(get_sms_client_factory, None)

    assert response.status_code == 200, response.text
    payload = response.json()
    assert [item["bill_id"] for item in payload["sent"]] == [bills["a"]]
    assert [item["bill_id"] for item in payload["no_contact"]] == [bills["b"]]
    assert [(item["bill_id"], item["error"]) for item in payload["failed"]] == [
        (bills["foreign"], "Unauthorized")
    ]
    assert len(client.calls) == 1

    log = api_client.get(f"/water/bills/{bills['a']}/notifications", headers=manager_headers)
    assert log.status_code == 200
    assert [entry["outcome"] for entry in log.json()] == ["sent"]
