"""Read-only access to the dealer inventory."""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.models.catalog import ListingStatus, Vehicle


@dataclass
class VehicleFilters:
    """Hard filters; ``None``/empty fields impose no restriction."""

    brand_ids: List[int] = field(default_factory=list)
    model_ids: List[int] = field(default_factory=list)
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    vehicle_type: Optional[str] = None
    condition: Optional[str] = None


@runtime_checkable
class CatalogStore(Protocol):
    async def get_active_vehicles(
        self, dealer_id: int, filters: VehicleFilters, limit: int
    ) -> List[Vehicle]: ...

    async def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]: ...

    async def get_dealer_vehicle(self, dealer_id: int, vehicle_id: int) -> Optional[Vehicle]: ...


class SqlCatalogStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active_vehicles(
        self,
        dealer_id: int,
        filters: VehicleFilters,
        limit: int,
    ) -> List[Vehicle]:
        """Active listings of the dealer matching ``filters``, newest first."""
        query = select(Vehicle).where(
            Vehicle.dealer_id == dealer_id,
            Vehicle.status == ListingStatus.ACTIVE.value,
        )
        if filters.brand_ids:
            query = query.where(Vehicle.brand_id.in_(filters.brand_ids))
        if filters.model_ids:
            query = query.where(Vehicle.model_id.in_(filters.model_ids))
        if filters.min_price is not None:
            query = query.where(Vehicle.price >= filters.min_price)
        if filters.max_price is not None:
            query = query.where(Vehicle.price <= filters.max_price)
        if filters.min_year is not None:
            query = query.where(Vehicle.year >= filters.min_year)
        if filters.max_year is not None:
            query = query.where(Vehicle.year <= filters.max_year)
        if filters.vehicle_type:
            query = query.where(Vehicle.vehicle_type == filters.vehicle_type)
        if filters.condition:
            query = query.where(Vehicle.condition == filters.condition)

        query = query.order_by(Vehicle.created_at.desc(), Vehicle.id.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        return await self.db.get(Vehicle, vehicle_id)

    async def get_dealer_vehicle(self, dealer_id: int, vehicle_id: int) -> Optional[Vehicle]:
        result = await self.db.execute(
            select(Vehicle).where(Vehicle.id == vehicle_id, Vehicle.dealer_id == dealer_id)
        )
        return result.scalar_one_or_none()
