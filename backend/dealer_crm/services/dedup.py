"""Repeat-contact detection at lead creation time."""

from datetime import timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.config import settings
from dealer_crm.errors import ConflictError
from dealer_crm.models.lead import Lead
from dealer_crm.utils.time import Clock, utc_now


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    phone = (phone or "").strip()
    return phone or None


class DeduplicationService:
    """Flags leads that repeat a recent contact of the same dealer.

    The email/phone check is advisory: the caller still stores the lead with
    ``is_duplicate`` set. The conversation check is a hard uniqueness rule.
    """

    def __init__(
        self,
        db: AsyncSession,
        window_days: Optional[int] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.window_days = window_days if window_days is not None else settings.dedup_window_days
        self.clock = clock

    async def is_duplicate(self, dealer_id: int, email: Optional[str], phone: Optional[str]) -> bool:
        email = normalize_email(email)
        phone = normalize_phone(phone)

        matchers = []
        if email:
            matchers.append(Lead.email == email)
        if phone:
            matchers.append(Lead.phone == phone)
        if not matchers:
            return False

        since = self.clock() - timedelta(days=self.window_days)
        result = await self.db.execute(
            select(Lead.id)
            .where(
                Lead.dealer_id == dealer_id,
                Lead.created_at >= since,
                or_(*matchers),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def find_conversation_lead(self, dealer_id: int, conversation_id: int) -> Optional[Lead]:
        result = await self.db.execute(
            select(Lead).where(
                Lead.dealer_id == dealer_id,
                Lead.conversation_id == conversation_id,
            )
        )
        return result.scalar_one_or_none()

    async def ensure_conversation_unused(self, dealer_id: int, conversation_id: int) -> None:
        existing = await self.find_conversation_lead(dealer_id, conversation_id)
        if existing is not None:
            raise ConflictError(
                "Ya existe un lead para esta conversación",
                lead_id=existing.id,
            )
