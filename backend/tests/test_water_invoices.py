from __future__ import annotations

from decimal import Decimal

from backend.app.services import MeterReadingSubmission, WaterBillService


def _invoice_payload(building_id: str, **overrides) -> dict:
    payload = {
        "building_id": building_id,
        "invoice_number": "WASAC-2026-10",
        "invoice_date": "2026-11-02",
        "billing_period_start": "2026-10-01",
        "billing_period_end": "2026-10-31",
        "total_consumption": "850.50",
        "total_cost": "425250",
        "notes": "October supply",
    }
    payload.update(overrides)
    return payload


def test_manager_records_invoice_for_managed_building(
    api_client, seed_building, manager_headers, manager_user
):
    building = seed_building["building"]

    response = api_client.post(
        "/water/invoices/", json=_invoice_payload(building.id), headers=manager_headers
    )

    assert response.status_code == 201, response.text
    created = response.json()
    assert created["invoice_number"] == "WASAC-2026-10"
    assert Decimal(created["total_consumption"]) == Decimal("850.50")
    assert created["created_by"] == manager_user.id

    listing = api_client.get(
        "/water/invoices/", params={"building_id": building.id}, headers=manager_headers
    )
    assert listing.status_code == 200
    assert listing.json()["total"] == 2


def test_invoice_validation(api_client, seed_building, admin_headers):
    building_id = seed_building["building"].id

    zero = api_client.post(
        "/water/invoices/",
        json=_invoice_payload(building_id, total_consumption="0"),
        headers=admin_headers,
    )
    reversed_period = api_client.post(
        "/water/invoices/",
        json=_invoice_payload(building_id, billing_period_end="2026-09-01"),
        headers=admin_headers,
    )
    duplicate = api_client.post(
        "/water/invoices/",
        json=_invoice_payload(building_id, invoice_number="WASAC-2026-09"),
        headers=admin_headers,
    )

    assert zero.status_code == 422
    assert reversed_period.status_code == 422
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Invoice number already exists"


def test_manager_cannot_use_foreign_building(api_client, seed_building, manager_headers):
    other_building_id = seed_building["other_building"].id

    create = api_client.post(
        "/water/invoices/", json=_invoice_payload(other_building_id), headers=manager_headers
    )
    read = api_client.get(
        f"/water/invoices/{seed_building['other_invoice'].id}", headers=manager_headers
    )
    listing = api_client.get("/water/invoices/", headers=manager_headers).json()

    assert create.status_code == 403
    assert read.status_code == 403
    assert [item["invoice_number"] for item in listing["items"]] == ["WASAC-2026-09"]


def test_invoice_with_bills_cannot_be_deleted(
    api_client, db_session, seed_building, admin_identity, admin_headers
):
    invoice_id = seed_building["invoice"].id
    other_invoice_id = seed_building["other_invoice"].id
    WaterBillService(db_session).generate_bills(
        invoice_id,
        [MeterReadingSubmission(unit_id=seed_building["unit_a"].id, current_reading="120")],
        caller=admin_identity,
    )

    blocked = api_client.delete(f"/water/invoices/{invoice_id}", headers=admin_headers)
    removed = api_client.delete(f"/water/invoices/{other_invoice_id}", headers=admin_headers)

    assert blocked.status_code == 409
    assert removed.status_code == 204
    assert api_client.get(f"/water/invoices/{other_invoice_id}", headers=admin_headers).status_code == 404


def test_shared_cost_upsert_changes_shared_rate(
    api_client, db_session, seed_building, manager_headers, manager_identity
):
    building_id = seed_building["building"].id

    response = api_client.put(
        f"/water/shared-costs/{building_id}",
        json={"total_shared_cost_per_period": "20000", "is_active": True},
        headers=manager_headers,
    )
    assert response.status_code == 200, response.text
    assert Decimal(response.json()["total_shared_cost_per_period"]) == Decimal("20000")

    listing = api_client.get("/water/shared-costs/", headers=manager_headers)
    assert [item["building_id"] for item in listing.json()] == [building_id]

    result = WaterBillService(db_session).generate_bills(
        seed_building["invoice"].id,
        [MeterReadingSubmission(unit_id=seed_building["unit_a"].id, current_reading="110")],
        caller=manager_identity,
    )
    assert result.rates.shared_rate == Decimal("20")
    assert result.created[0].shared_amount == Decimal("200")


def test_shared_cost_for_unknown_building_is_not_found(api_client, seed_building, admin_headers):
    response = api_client.put(
        "/water/shared-costs/00000000-0000-0000-0000-000000000000",
        json={"total_shared_cost_per_period": "100"},
        headers=admin_headers,
    )

    assert response.status_code == 404
