"""Dealer and team member models.

Both are owned by the account/onboarding side of the platform; the lead
engine only reads them to route work and attribute activity.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from dealer_crm.database import Base
from dealer_crm.utils.time import utc_now


class DealerStatus(str, Enum):
    """Dealer account status."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class DealerRole(str, Enum):
    """Role of a team member inside a dealer."""
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    SALES = "SALES"


class Dealer(Base):
    """A dealership publishing vehicles on the marketplace."""

    __tablename__ = "dealers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=DealerStatus.ACTIVE.value, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Dealer {self.name} ({self.status})>"

    @property
    def is_active(self) -> bool:
        return self.status == DealerStatus.ACTIVE.value


class User(Base):
    """Marketplace user; team members carry a dealer and a dealer role."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    dealer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("dealers.id"), nullable=True, index=True
    )
    dealer_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.dealer_role})>"

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @property
    def is_owner(self) -> bool:
        return self.dealer_role == DealerRole.OWNER.value

    @property
    def is_manager(self) -> bool:
        return self.dealer_role in (DealerRole.OWNER.value, DealerRole.MANAGER.value)
