from __future__ import annotations

from datetime import date
from decimal import Decimal
import base64
import os
import sys
from pathlib import Path
from typing import Generator

import pytest

# Configure the process before the application modules read their environment.
os.environ.setdefault("JWT_SECRET", base64.urlsafe_b64encode(os.urandom(32)).decode())
os.environ.setdefault("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "0"
os.environ.pop("SMS_API_KEY", None)

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.app.database import Base, get_db  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app import models  # noqa: E402
from backend.app.security import CallerIdentity, generate_password_hash  # noqa: E402

TEST_PASSWORD = "W4ter-Bills!"
TEST_HASH_ITERATIONS = 1_000

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


def _create_user(db_session: Session, username: str, role: models.UserRole) -> models.User:
    user = models.User(
        username=username,
        password_hash=generate_password_hash(TEST_PASSWORD, iterations=TEST_HASH_ITERATIONS),
        role=role,
        full_name=username.title(),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def user_password() -> str:
    return TEST_PASSWORD


@pytest.fixture
def admin_user(db_session: Session) -> models.User:
    return _create_user(db_session, "admin", models.UserRole.ADMIN)


@pytest.fixture
def manager_user(db_session: Session) -> models.User:
    return _create_user(db_session, "manager", models.UserRole.MANAGER)


@pytest.fixture
def other_manager(db_session: Session) -> models.User:
    return _create_user(db_session, "other-manager", models.UserRole.MANAGER)


@pytest.fixture
def admin_identity(admin_user: models.User) -> CallerIdentity:
    return CallerIdentity.from_user(admin_user)


@pytest.fixture
def manager_identity(manager_user: models.User) -> CallerIdentity:
    return CallerIdentity.from_user(manager_user)


@pytest.fixture
def other_manager_identity(other_manager: models.User) -> CallerIdentity:
    return CallerIdentity.from_user(other_manager)


@pytest.fixture
def api_client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


def login(test_client: TestClient, username: str) -> dict[str, str]:
    response = test_client.post(
        "/auth/token", json={"username": username, "password": TEST_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(api_client: TestClient, admin_user: models.User) -> dict[str, str]:
    return login(api_client, admin_user.username)


@pytest.fixture
def manager_headers(api_client: TestClient, manager_user: models.User) -> dict[str, str]:
    return login(api_client, manager_user.username)


@pytest.fixture
def other_manager_headers(api_client: TestClient, other_manager: models.User) -> dict[str, str]:
    return login(api_client, other_manager.username)


@pytest.fixture
def seed_building(db_session: Session, manager_user: models.User, other_manager: models.User) -> dict:
    return _seed_buildings(db_session, manager_user, other_manager)


def _seed_buildings(db_session: Session, manager_user: models.User, other_manager: models.User) -> dict:
    """Building managed by ``manager`` with three apartments and an invoice.

    The invoice declares 1000 m3 for 500000 and the building carries a shared
    pump cost of 50000, giving rates of 500 and 50 per m3.
    """

    building = models.Building(name="Kigali Heights", address="KG 7 Ave", manager=manager_user)
    other_building = models.Building(name="Nyarutarama Court", manager=other_manager)
    db_session.add_all([building, other_building])
    db_session.flush()

    unit_a = models.Apartment(
        building_id=building.id,
        apartment_number="A1",
        tenant_name="Alice Uwase",
        tenant_phone="788123456",
        water_meter_reading=Decimal("100"),
    )
    unit_b = models.Apartment(
        building_id=building.id,
        apartment_number="B2",
        tenant_name="Bob Mugisha",
        tenant_phone=None,
        water_meter_reading=Decimal("200"),
    )
    unit_c = models.Apartment(
        building_id=building.id,
        apartment_number="C3",
        tenant_name=None,
        tenant_phone="+256700111222",
        water_meter_reading=Decimal("50"),
    )
    foreign_unit = models.Apartment(
        building_id=other_building.id,
        apartment_number="Z9",
        tenant_name="Zed",
        tenant_phone="788000000",
        water_meter_reading=Decimal("10"),
    )
    db_session.add_all([unit_a, unit_b, unit_c, foreign_unit])

    invoice = models.WaterInvoice(
        building_id=building.id,
        invoice_number="WASAC-2026-09",
        invoice_date=date(2026, 10, 2),
        billing_period_start=date(2026, 9, 1),
        billing_period_end=date(2026, 9, 30),
        total_consumption=Decimal("1000"),
        total_cost=Decimal("500000"),
    )
    other_invoice = models.WaterInvoice(
        building_id=other_building.id,
        invoice_number="WASAC-2026-09-NC",
        invoice_date=date(2026, 10, 2),
        billing_period_start=date(2026, 9, 1),
        billing_period_end=date(2026, 9, 30),
        total_consumption=Decimal("400"),
        total_cost=Decimal("200000"),
    )
    shared_cost = models.SharedCostSetting(
        building_id=building.id,
        total_shared_cost_per_period=Decimal("50000"),
        is_active=True,
    )
    db_session.add_all([invoice, other_invoice, shared_cost])
    db_session.commit()

    return {
        "building": building,
        "other_building": other_building,
        "unit_a": unit_a,
        "unit_b": unit_b,
        "unit_c": unit_c,
        "foreign_unit": foreign_unit,
        "invoice": invoice,
        "other_invoice": other_invoice,
        "shared_cost": shared_cost,
    }


@pytest.fixture
def committed_session() -> Generator[Session, None, None]:
    """Session on a private engine whose commits and rollbacks are real.

    Use it where the code under test rolls back; ``db_session`` cannot survive
    a rollback of its outer transaction.
    """

    private_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=private_engine)
    session = sessionmaker(bind=private_engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        private_engine.dispose()


@pytest.fixture
def committed_seed(committed_session: Session) -> dict:
    admin = _create_user(committed_session, "admin", models.UserRole.ADMIN)
    manager = _create_user(committed_session, "manager", models.UserRole.MANAGER)
    other = _create_user(committed_session, "other-manager", models.UserRole.MANAGER)
    data = _seed_buildings(committed_session, manager, other)
    data["admin_identity"] = CallerIdentity.from_user(admin)
    return data
