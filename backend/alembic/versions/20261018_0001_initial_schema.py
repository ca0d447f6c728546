"""Initial schema for water billing.

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

from backend.app.db_types import GUID


revision = "20261018_0001"
down_revision = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


USER_ROLE_ENUM = sa.Enum(
    "admin",
    "manager",
    name="user_role_enum",
    native_enum=False,
    validate_strings=True,
)
NOTIFICATION_STATUS_ENUM = sa.Enum(
    "not_sent",
    "sent",
    "failed",
    "no_contact",
    name="water_bill_notification_status_enum",
    native_enum=False,
    validate_strings=True,
)
NOTIFICATION_OUTCOME_ENUM = sa.Enum(
    "sent",
    "failed",
    "no_contact",
    name="bill_notification_outcome_enum",
    native_enum=False,
    validate_strings=True,
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", USER_ROLE_ENUM, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "buildings",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column(
            "manager_id",
            GUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
    )
    op.create_index("ix_buildings_manager_id", "buildings", ["manager_id"])

    op.create_table(
        "apartments",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column(
            "building_id",
            GUID(),
            sa.ForeignKey("buildings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("apartment_number", sa.String(length=50), nullable=False),
        sa.Column("tenant_name", sa.String(length=255), nullable=True),
        sa.Column("tenant_phone", sa.String(length=30), nullable=True),
        sa.Column("tenant_phone_country_code", sa.String(length=8), nullable=True),
        sa.Column("tenant_email", sa.String(length=255), nullable=True),
        sa.Column(
            "water_meter_reading",
            sa.Numeric(12, 2),
            nullable=False,
            server_default="0",
        ),
        _created_at(),
        sa.UniqueConstraint(
            "building_id", "apartment_number", name="apartments_building_number_key"
        ),
        sa.CheckConstraint(
            "water_meter_reading >= 0", name="ck_apartments_meter_reading_non_negative"
        ),
    )
    op.create_index("apartments_building_idx", "apartments", ["building_id"])

    op.create_table(
        "water_invoices",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column(
            "building_id",
            GUID(),
            sa.ForeignKey("buildings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("invoice_number", sa.String(length=100), nullable=False, unique=True),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("billing_period_start", sa.Date(), nullable=False),
        sa.Column("billing_period_end", sa.Date(), nullable=False),
        sa.Column("total_consumption", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_by",
            GUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
        sa.CheckConstraint("total_consumption > 0", name="ck_water_invoices_consumption_positive"),
        sa.CheckConstraint("total_cost > 0", name="ck_water_invoices_cost_positive"),
        sa.CheckConstraint(
            "billing_period_end >= billing_period_start",
            name="ck_water_invoices_period_order",
        ),
    )

    op.create_table(
        "shared_cost_settings",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column(
            "building_id",
            GUID(),
            sa.ForeignKey("buildings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("total_shared_cost_per_period", sa.Numeric(14, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "total_shared_cost_per_period >= 0",
            name="ck_shared_cost_settings_cost_non_negative",
        ),
    )

    op.create_table(
        "water_bills",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column(
            "apartment_id",
            GUID(),
            sa.ForeignKey("apartments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "invoice_id",
            GUID(),
            sa.ForeignKey("water_invoices.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "building_id",
            GUID(),
            sa.ForeignKey("buildings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("billing_period_start", sa.Date(), nullable=False),
        sa.Column("billing_period_end", sa.Date(), nullable=False),
        sa.Column("previous_reading", sa.Numeric(12, 2), nullable=False),
        sa.Column("current_reading", sa.Numeric(12, 2), nullable=False),
        sa.Column("consumed", sa.Numeric(12, 2), nullable=False),
        sa.Column("primary_rate", sa.Numeric(14, 4), nullable=False),
        sa.Column("shared_rate", sa.Numeric(14, 4), nullable=False, server_default="0"),
        sa.Column("primary_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("shared_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column(
            "notification_status",
            NOTIFICATION_STATUS_ENUM,
            nullable=False,
            server_default="not_sent",
        ),
        sa.Column("notification_error", sa.Text(), nullable=True),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_by",
            GUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
        sa.UniqueConstraint(
            "apartment_id", "invoice_id", name="water_bills_apartment_invoice_key"
        ),
        sa.CheckConstraint("consumed >= 0", name="ck_water_bills_consumed_non_negative"),
        sa.CheckConstraint(
            "current_reading >= previous_reading",
            name="ck_water_bills_reading_monotonic",
        ),
    )
    op.create_index("water_bills_building_idx", "water_bills", ["building_id"])
    op.create_index("water_bills_invoice_idx", "water_bills", ["invoice_id"])
    op.create_index("water_bills_period_idx", "water_bills", ["billing_period_start"])

    op.create_table(
        "bill_notifications",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column(
            "water_bill_id",
            GUID(),
            sa.ForeignKey("water_bills.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "apartment_id",
            GUID(),
            sa.ForeignKey("apartments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("outcome", NOTIFICATION_OUTCOME_ENUM, nullable=False),
        sa.Column("channel", sa.String(length=50), nullable=False),
        sa.Column("destination", sa.String(length=40), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("response_code", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("bill_notifications_bill_idx", "bill_notifications", ["water_bill_id"])
    op.create_index(
        "bill_notifications_created_at_idx", "bill_notifications", ["created_at"]
    )

    op.create_table(
        "system_settings",
        sa.Column("setting_key", sa.String(length=100), primary_key=True),
        sa.Column("setting_value", sa.Text(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("system_settings")
    op.drop_index("bill_notifications_created_at_idx", table_name="bill_notifications")
    op.drop_index("bill_notifications_bill_idx", table_name="bill_notifications")
    op.drop_table("bill_notifications")
    op.drop_index("water_bills_period_idx", table_name="water_bills")
    op.drop_index("water_bills_invoice_idx", table_name="water_bills")
    op.drop_index("water_bills_building_idx", table_name="water_bills")
    op.drop_table("water_bills")
    op.drop_table("shared_cost_settings")
    op.drop_table("water_invoices")
    op.drop_index("apartments_building_idx", table_name="apartments")
    op.drop_table("apartments")
    op.drop_index("ix_buildings_manager_id", table_name="buildings")
    op.drop_table("buildings")
    op.drop_table("users")
