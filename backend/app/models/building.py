"""Buildings and the rentable apartments billed individually."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_guid


class Building(Base):
    """Building whose water supply is invoiced as a whole."""

    __tablename__ = "buildings"

    id = Column(GUID(), primary_key=True, default=new_guid)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    manager_id = Column(
        GUID(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    manager = relationship("User")
    apartments = relationship(
        "Apartment",
        back_populates="building",
        cascade="all, delete-orphan",
    )


class Apartment(Base):
    """Rentable unit with its tenant contact data and last meter reading."""

    __tablename__ = "apartments"
    __table_args__ = (
        UniqueConstraint(
            "building_id", "apartment_number", name="apartments_building_number_key"
        ),
        CheckConstraint(
            "water_meter_reading >= 0", name="ck_apartments_meter_reading_non_negative"
        ),
    )

    id = Column(GUID(), primary_key=True, default=new_guid)
    building_id = Column(
        GUID(), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False
    )
    apartment_number = Column(String(50), nullable=False)
    tenant_name = Column(String(255), nullable=True)
    tenant_phone = Column(String(30), nullable=True)
    tenant_phone_country_code = Column(String(8), nullable=True)
    tenant_email = Column(String(255), nullable=True)
    water_meter_reading = Column(
        Numeric(12, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    building = relationship("Building", back_populates="apartments")


Index("apartments_building_idx", Apartment.building_id)
