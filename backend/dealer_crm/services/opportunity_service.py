"""Opportunities and their one-way push onto the lead status."""

from typing import Any, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.errors import NotFoundError, ValidationError
from dealer_crm.models.lead import Lead, LeadStatus
from dealer_crm.models.pipeline import Opportunity, OpportunityStatus
from dealer_crm.models.user import User
from dealer_crm.services.catalog import CatalogStore, SqlCatalogStore
from dealer_crm.services.lead_service import get_dealer_lead
from dealer_crm.services.lead_state import LeadStateMachine
from dealer_crm.utils.logging import LeadLogger
from dealer_crm.utils.time import Clock, utc_now

# Closing an opportunity closes the lead; reopening it does not reopen the lead.
LEAD_STATUS_FOR = {
    OpportunityStatus.WON: LeadStatus.CONVERTED,
    OpportunityStatus.LOST: LeadStatus.LOST,
}

EDITABLE_FIELDS = ("estimated_value", "probability", "expected_close_date", "notes")


def _check_values(estimated_value: Optional[float], probability: Optional[int]) -> None:
    if estimated_value is not None and estimated_value <= 0:
        raise ValidationError("El valor estimado debe ser mayor a 0")
    if probability is not None and not 0 <= probability <= 100:
        raise ValidationError("La probabilidad debe estar entre 0 y 100")


class OpportunityService:
    def __init__(
        self,
        db: AsyncSession,
        catalog: Optional[CatalogStore] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.catalog = catalog or SqlCatalogStore(db)
        self.clock = clock
        self.state = LeadStateMachine(db, clock=clock)

    async def _check_vehicle(self, dealer_id: int, vehicle_id: Optional[int]) -> None:
        if vehicle_id is None:
            return
        if await self.catalog.get_dealer_vehicle(dealer_id, vehicle_id) is None:
            raise NotFoundError("Vehículo no encontrado")

    def _cascade(self, lead: Lead, status: OpportunityStatus, actor_id: int) -> None:
        target = LEAD_STATUS_FOR.get(status)
        if target is not None:
            self.state.change_status(lead, target, actor_id)

    async def _get(self, dealer_id: int, lead_id: int, opportunity_id: int) -> Tuple[Lead, Opportunity]:
        lead = await get_dealer_lead(self.db, dealer_id, lead_id)
        result = await self.db.execute(
            select(Opportunity).where(
                Opportunity.id == opportunity_id,
                Opportunity.lead_id == lead.id,
            )
        )
        opportunity = result.scalar_one_or_none()
        if opportunity is None:
            raise NotFoundError("Oportunidad no encontrada")
        return lead, opportunity

    async def list_for_lead(self, dealer_id: int, lead_id: int) -> List[Opportunity]:
        lead = await get_dealer_lead(self.db, dealer_id, lead_id)
        result = await self.db.execute(
            select(Opportunity)
            .where(Opportunity.lead_id == lead.id)
            .order_by(Opportunity.created_at.desc(), Opportunity.id.desc())
        )
        return list(result.scalars().all())

    async def list_for_dealer(
        self,
        dealer_id: int,
        status: Optional[OpportunityStatus] = None,
    ) -> Tuple[List[Opportunity], float]:
        """Opportunities of the dealer plus the probability-weighted OPEN pipeline."""
        query = (
            select(Opportunity)
            .join(Lead, Lead.id == Opportunity.lead_id)
            .where(Lead.dealer_id == dealer_id)
        )
        if status is not None:
            query = query.where(Opportunity.status == status.value)
        result = await self.db.execute(
            query.order_by(Opportunity.created_at.desc(), Opportunity.id.desc())
        )
        opportunities = list(result.scalars().all())
        pipeline = sum(
            o.estimated_value * o.probability / 100
            for o in opportunities
            if o.status == OpportunityStatus.OPEN.value
        )
        return opportunities, round(pipeline, 2)

    async def create(
        self,
        actor: User,
        lead_id: int,
        estimated_value: float,
        probability: Optional[int] = None,
        vehicle_id: Optional[int] = None,
        expected_close_date=None,
        notes: Optional[str] = None,
        status: OpportunityStatus = OpportunityStatus.OPEN,
    ) -> Opportunity:
        if estimated_value is None:
            raise ValidationError("El valor estimado es requerido")
        _check_values(estimated_value, probability)
        lead = await get_dealer_lead(self.db, actor.dealer_id, lead_id)
        await self._check_vehicle(actor.dealer_id, vehicle_id)

        now = self.clock()
        opportunity = Opportunity(
            lead_id=lead.id,
            vehicle_id=vehicle_id,
            estimated_value=estimated_value,
            probability=50 if probability is None else probability,
            expected_close_date=expected_close_date,
            status=status.value,
            notes=(notes or "").strip() or None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(opportunity)
        lead.estimated_value = estimated_value
        self._cascade(lead, status, actor.id)
        await self.db.flush()
        await self.db.refresh(opportunity, attribute_names=["vehicle"])

        LeadLogger(lead.id, lead.dealer_id).log(
            "opportunity_created",
            opportunity_id=opportunity.id,
            status=status.value,
            estimated_value=estimated_value,
        )
        return opportunity

    async def update(
        self,
        actor: User,
        lead_id: int,
        opportunity_id: int,
        changes: Mapping[str, Any],
    ) -> Opportunity:
        _check_values(changes.get("estimated_value"), changes.get("probability"))
        if "estimated_value" in changes and changes["estimated_value"] is None:
            raise ValidationError("El valor estimado es requerido")
        lead, opportunity = await self._get(actor.dealer_id, lead_id, opportunity_id)

        if "vehicle_id" in changes:
            await self._check_vehicle(actor.dealer_id, changes["vehicle_id"])
            opportunity.vehicle_id = changes["vehicle_id"]
        for field in EDITABLE_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(opportunity, field, changes[field])
        if "notes" in changes and changes["notes"] is None:
            opportunity.notes = None

        new_status = changes.get("status")
        if new_status is not None:
            new_status = OpportunityStatus(new_status)
            opportunity.status = new_status.value
            self._cascade(lead, new_status, actor.id)
        opportunity.updated_at = self.clock()
        await self.db.flush()
        await self.db.refresh(opportunity, attribute_names=["vehicle"])

        LeadLogger(lead.id, lead.dealer_id).log(
            "opportunity_updated", opportunity_id=opportunity.id, status=opportunity.status
        )
        return opportunity

    async def delete(self, dealer_id: int, lead_id: int, opportunity_id: int) -> None:
        lead, opportunity = await self._get(dealer_id, lead_id, opportunity_id)
        await self.db.delete(opportunity)
        await self.db.flush()
        LeadLogger(lead.id, dealer_id).log("opportunity_deleted", opportunity_id=opportunity_id)
