"""Lead, activity trail and stored buying preferences."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealer_crm.database import Base
from dealer_crm.utils.time import utc_now

if TYPE_CHECKING:
    from dealer_crm.models.catalog import Vehicle


class LeadStatus(str, Enum):
    """Lead lifecycle status."""
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    QUALIFIED = "QUALIFIED"
    CONVERTED = "CONVERTED"
    LOST = "LOST"


class LeadSource(str, Enum):
    """Channel the inquiry arrived through."""
    CHAT = "CHAT"
    FORM = "FORM"
    PHONE = "PHONE"
    MICROSITE = "MICROSITE"
    WHATSAPP = "WHATSAPP"
    OTHER = "OTHER"


class LeadActivityType(str, Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    ASSIGNMENT = "ASSIGNMENT"
    NOTE = "NOTE"
    CALL = "CALL"
    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"
    TEST_DRIVE = "TEST_DRIVE"


class Lead(Base):
    """A buyer inquiry directed at a dealer."""

    __tablename__ = "dealer_leads"
    __table_args__ = (
        UniqueConstraint("dealer_id", "conversation_id", name="uq_lead_dealer_conversation"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    dealer_id: Mapped[int] = mapped_column(ForeignKey("dealers.id"), nullable=False, index=True)
    vehicle_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("vehicles.id"), nullable=True, index=True
    )
    conversation_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    # Contact
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Classification
    source: Mapped[str] = mapped_column(String(20), default=LeadSource.FORM.value)
    status: Mapped[str] = mapped_column(String(20), default=LeadStatus.NEW.value, index=True)
    is_duplicate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Assignment
    assigned_to_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )

    # Follow-up
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_contact_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_follow_up: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    estimated_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
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

    def __repr__(self) -> str:
        return f"<Lead {self.email} ({self.status})>"

    @property
    def vehicle_title(self) -> Optional[str]:
        return self.vehicle.title if self.vehicle is not None else None


class LeadActivity(Base):
    """Append-only audit entry for a lead."""

    __tablename__ = "lead_activities"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("dealer_leads.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )


class LeadPreferences(Base):
    """What the buyer is looking for, captured by a team member."""

    __tablename__ = "lead_preferences"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(
        ForeignKey("dealer_leads.id"), unique=True, nullable=False, index=True
    )
    brand_ids: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)
    model_ids: Mapped[List[int]] = mapped_column(JSON, default=list, nullable=False)
    min_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    min_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    condition: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )
