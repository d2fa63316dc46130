"""Inventory <-> preference matching.

Lead to vehicles: candidates are the dealer's active listings filtered by the
lead's hard preferences, over-fetched to twice the requested size, then scored
additively:

    brand in preferred brands   30   "Marca: {brand}"
    model in preferred models   40   "Modelo: {model}"
    price inside the budget     20   "Dentro del presupuesto"
    year inside the range       10   "Año {year}"

A criterion with no preference set never scores, so a lead without
preferences matches nothing. Zero-score vehicles are dropped; ties keep the
newest-first candidate order.

Vehicle to leads: open leads whose preferences hit the brand, the model, or
contain the price within both budget bounds.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.errors import NotFoundError
from dealer_crm.models.catalog import Vehicle, VehicleCondition, VehicleType
from dealer_crm.models.lead import Lead, LeadPreferences
from dealer_crm.models.notification import NotificationType
from dealer_crm.services.catalog import CatalogStore, SqlCatalogStore, VehicleFilters
from dealer_crm.services.lead_state import OPEN_STATUSES
from dealer_crm.services.notification_service import NotificationService
from dealer_crm.services.team import TeamService
from dealer_crm.utils.logging import get_logger

logger = get_logger("services.inventory_matcher")

BRAND_POINTS = 30
MODEL_POINTS = 40
PRICE_POINTS = 20
YEAR_POINTS = 10

OVERFETCH_FACTOR = 2


@dataclass
class MatchPreferences:
    brand_ids: List[int] = field(default_factory=list)
    model_ids: List[int] = field(default_factory=list)
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    vehicle_type: Optional[str] = None
    condition: Optional[str] = None

    @classmethod
    def from_record(cls, record: Any) -> "MatchPreferences":
        return cls(
            brand_ids=list(record.brand_ids or []),
            model_ids=list(record.model_ids or []),
            min_price=record.min_price,
            max_price=record.max_price,
            min_year=record.min_year,
            max_year=record.max_year,
            vehicle_type=record.vehicle_type,
            condition=record.condition,
        )

    @property
    def has_price_range(self) -> bool:
        return self.min_price is not None or self.max_price is not None

    @property
    def has_year_range(self) -> bool:
        return self.min_year is not None or self.max_year is not None

    def to_filters(self) -> VehicleFilters:
        vehicle_type = self.vehicle_type if self.vehicle_type in _VEHICLE_TYPES else None
        condition = self.condition if self.condition in _CONDITIONS else None
        return VehicleFilters(
            brand_ids=self.brand_ids,
            model_ids=self.model_ids,
            min_price=self.min_price,
            max_price=self.max_price,
            min_year=self.min_year,
            max_year=self.max_year,
            vehicle_type=vehicle_type,
            condition=condition,
        )


_VEHICLE_TYPES = {t.value for t in VehicleType}
_CONDITIONS = {c.value for c in VehicleCondition}


@dataclass
class MatchedVehicle:
    id: int
    title: str
    slug: str
    price: int
    year: int
    mileage: int
    brand: str
    model: str
    match_score: int
    match_reasons: List[str]


def _in_range(value: int, low: Optional[int], high: Optional[int]) -> bool:
    return (low is None or value >= low) and (high is None or value <= high)


def score_vehicle(vehicle: Vehicle, prefs: MatchPreferences) -> Tuple[int, List[str]]:
    score = 0
    reasons: List[str] = []

    if prefs.brand_ids and vehicle.brand_id in prefs.brand_ids:
        score += BRAND_POINTS
        reasons.append(f"Marca: {vehicle.brand.name}")

    if prefs.model_ids and vehicle.model_id in prefs.model_ids:
        score += MODEL_POINTS
        reasons.append(f"Modelo: {vehicle.model.name}")

    if prefs.has_price_range and _in_range(vehicle.price, prefs.min_price, prefs.max_price):
        score += PRICE_POINTS
        reasons.append("Dentro del presupuesto")

    if prefs.has_year_range and _in_range(vehicle.year, prefs.min_year, prefs.max_year):
        score += YEAR_POINTS
        reasons.append(f"Año {vehicle.year}")

    return score, reasons


def preference_hits_vehicle(prefs: LeadPreferences, vehicle: Vehicle) -> bool:
    if vehicle.brand_id in (prefs.brand_ids or []):
        return True
    if vehicle.model_id in (prefs.model_ids or []):
        return True
    if prefs.min_price is not None and prefs.max_price is not None:
        return prefs.min_price <= vehicle.price <= prefs.max_price
    return False


class InventoryMatcher:
    def __init__(
        self,
        db: AsyncSession,
        catalog: Optional[CatalogStore] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.catalog = catalog or SqlCatalogStore(db)
        self.notifications = notifications or NotificationService(db)

    async def match(
        self,
        dealer_id: int,
        preferences: MatchPreferences,
        limit: int = 5,
    ) -> List[MatchedVehicle]:
        candidates = await self.catalog.get_active_vehicles(
            dealer_id, preferences.to_filters(), limit * OVERFETCH_FACTOR
        )

        scored: List[MatchedVehicle] = []
        for vehicle in candidates:
            score, reasons = score_vehicle(vehicle, preferences)
            if score <= 0:
                continue
            scored.append(
                MatchedVehicle(
                    id=vehicle.id,
                    title=vehicle.title,
                    slug=vehicle.slug,
                    price=vehicle.price,
                    year=vehicle.year,
                    mileage=vehicle.mileage,
                    brand=vehicle.brand.name,
                    model=vehicle.model.name,
                    match_score=score,
                    match_reasons=reasons,
                )
            )

        # sorted() is stable: equal scores keep the newest-first order
        scored = sorted(scored, key=lambda m: m.match_score, reverse=True)
        return scored[:limit]

    async def match_for_lead(self, dealer_id: int, lead_id: int, limit: int = 5) -> List[MatchedVehicle]:
        result = await self.db.execute(
            select(LeadPreferences)
            .join(Lead, Lead.id == LeadPreferences.lead_id)
            .where(Lead.id == lead_id, Lead.dealer_id == dealer_id)
        )
        prefs = result.scalar_one_or_none()
        if prefs is None:
            lead = await self.db.get(Lead, lead_id)
            if lead is None or lead.dealer_id != dealer_id:
                raise NotFoundError("Lead no encontrado")
            return []
        return await self.match(dealer_id, MatchPreferences.from_record(prefs), limit)

    async def find_matching_leads(self, dealer_id: int, vehicle: Vehicle) -> List[int]:
        result = await self.db.execute(
            select(LeadPreferences)
            .join(Lead, Lead.id == LeadPreferences.lead_id)
            .where(
                Lead.dealer_id == dealer_id,
                Lead.status.in_([s.value for s in OPEN_STATUSES]),
            )
            .order_by(Lead.id)
        )
        return [p.lead_id for p in result.scalars().all() if preference_hits_vehicle(p, vehicle)]

    async def notify_vehicle_published(self, vehicle_id: int) -> Dict[str, int]:
        """Tell the team which open leads may want a newly published vehicle."""
        vehicle = await self.catalog.get_vehicle(vehicle_id)
        if vehicle is None or vehicle.dealer_id is None:
            raise NotFoundError("Vehículo no encontrado")

        lead_ids = await self.find_matching_leads(vehicle.dealer_id, vehicle)
        if not lead_ids:
            return {"matches_found": 0, "notified": 0}

        result = await self.db.execute(select(Lead).where(Lead.id.in_(lead_ids)))
        leads = list(result.scalars().all())
        fallback = [u.id for u in await TeamService(self.db).managers(vehicle.dealer_id)]

        notified = 0
        for lead in leads:
            recipients = [lead.assigned_to_id] if lead.assigned_to_id else fallback
            if not recipients:
                continue
            await self.notifications.notify_many(
                NotificationType.INVENTORY_MATCH,
                recipients,
                {
                    "lead_id": lead.id,
                    "lead_name": lead.name,
                    "vehicle_id": vehicle.id,
                    "vehicle_title": vehicle.title,
                },
            )
            notified += 1

        logger.info(
            "inventory_match_notified",
            vehicle_id=vehicle.id,
            dealer_id=vehicle.dealer_id,
            matches_found=len(lead_ids),
            notified=notified,
        )
        return {"matches_found": len(lead_ids), "notified": notified}
