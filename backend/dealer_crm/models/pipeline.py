"""Sales pipeline records hanging off a lead: opportunities, tasks, test drives."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealer_crm.database import Base
from dealer_crm.utils.time import utc_now

if TYPE_CHECKING:
    from dealer_crm.models.catalog import Vehicle
    from dealer_crm.models.lead import Lead


class OpportunityStatus(str, Enum):
    OPEN = "OPEN"
    WON = "WON"
    LOST = "LOST"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TestDriveStatus(str, Enum):
    __test__ = False

    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class Opportunity(Base):
    """Estimated deal value and close probability for a lead."""

    __tablename__ = "opportunities"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("dealer_leads.id"), nullable=False, index=True)
    vehicle_id: Mapped[Optional[int]] = mapped_column(ForeignKey("vehicles.id"), nullable=True)
    estimated_value: Mapped[float] = mapped_column(Float, nullable=False)
    probability: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    expected_close_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(10), default=OpportunityStatus.OPEN.value, nullable=False, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    vehicle: Mapped[Optional["Vehicle"]] = relationship("Vehicle", lazy="joined")

    @property
    def vehicle_title(self) -> Optional[str]:
        return self.vehicle.title if self.vehicle is not None else None


class LeadTask(Base):
    """Follow-up work item owned by a team member."""

    __tablename__ = "lead_tasks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("dealer_leads.id"), nullable=False, index=True)
    assigned_to_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(10), default=TaskPriority.MEDIUM.value)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    reminded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )

    lead: Mapped["Lead"] = relationship("Lead", lazy="joined")

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def lead_name(self) -> str:
        return self.lead.name


class TestDrive(Base):
    """Scheduled test drive of a dealer vehicle."""

    __test__ = False

    __tablename__ = "test_drives"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("dealer_leads.id"), nullable=False, index=True)
    vehicle_id: Mapped[int] = mapped_column(ForeignKey("vehicles.id"), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    duration: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TestDriveStatus.SCHEDULED.value, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )

    lead: Mapped["Lead"] = relationship("Lead", lazy="joined")
    vehicle: Mapped["Vehicle"] = relationship("Vehicle", lazy="joined")

    @property
    def vehicle_title(self) -> str:
        return self.vehicle.title

    @property
    def lead_name(self) -> str:
        return self.lead.name
