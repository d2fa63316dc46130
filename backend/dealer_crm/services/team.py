from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.models.user import Dealer, DealerRole, User


class TeamService:
    """Lookups over a dealer's team members."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_dealer(self, dealer_id: int) -> Optional[Dealer]:
        return await self.db.get(Dealer, dealer_id)

    async def get_member(self, dealer_id: int, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(
                User.id == user_id,
                User.dealer_id == dealer_id,
                User.is_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def members(
        self,
        dealer_id: int,
        roles: Optional[Iterable[DealerRole]] = None,
    ) -> List[User]:
        query = select(User).where(
            User.dealer_id == dealer_id,
            User.is_active == True,  # noqa: E712
        )
        if roles is not None:
            query = query.where(User.dealer_role.in_([r.value for r in roles]))
        result = await self.db.execute(query.order_by(User.id))
        return list(result.scalars().all())

    async def managers(self, dealer_id: int) -> List[User]:
        return await self.members(dealer_id, roles=(DealerRole.OWNER, DealerRole.MANAGER))

    async def owner(self, dealer_id: int) -> Optional[User]:
        owners = await self.members(dealer_id, roles=(DealerRole.OWNER,))
        return owners[0] if owners else None
