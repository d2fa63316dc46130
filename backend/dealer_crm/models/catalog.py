"""Read-only catalog tables (brands, models, listed vehicles)."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealer_crm.database import Base
from dealer_crm.utils.time import utc_now


class ListingStatus(str, Enum):
    """Publication status of a vehicle listing."""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    SOLD = "SOLD"


class VehicleType(str, Enum):
    CAR = "CAR"
    SUV = "SUV"
    PICKUP = "PICKUP"
    VAN = "VAN"
    MOTORCYCLE = "MOTORCYCLE"
    TRUCK = "TRUCK"


class VehicleCondition(str, Enum):
    NEW = "NEW"
    USED = "USED"
    CERTIFIED = "CERTIFIED"


class Brand(Base):
    __tablename__ = "brands"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class VehicleModel(Base):
    __tablename__ = "vehicle_models"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(ForeignKey("brands.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Vehicle(Base):
    """A vehicle listing published by a dealer."""

    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    dealer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("dealers.id"), nullable=True, index=True
    )
    brand_id: Mapped[int] = mapped_column(ForeignKey("brands.id"), nullable=False, index=True)
    model_id: Mapped[int] = mapped_column(
        ForeignKey("vehicle_models.id"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    mileage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    vehicle_type: Mapped[str] = mapped_column(String(20), default=VehicleType.CAR.value)
    condition: Mapped[str] = mapped_column(String(20), default=VehicleCondition.USED.value)
    status: Mapped[str] = mapped_column(
        String(20), default=ListingStatus.ACTIVE.value, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )

    brand: Mapped["Brand"] = relationship("Brand", lazy="joined")
    model: Mapped["VehicleModel"] = relationship("VehicleModel", lazy="joined")

    def __repr__(self) -> str:
        return f"<Vehicle {self.title} ({self.status})>"
