"""Lead ingestion, queries, edits and the activity log."""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.errors import (
    ConflictError,
    InvalidAssigneeError,
    NotFoundError,
    ValidationError,
)
from dealer_crm.models.auto_response import AutoResponseJob, AutoResponseJobStatus
from dealer_crm.models.catalog import Vehicle
from dealer_crm.models.lead import (
    Lead,
    LeadActivity,
    LeadActivityType,
    LeadPreferences,
    LeadSource,
    LeadStatus,
)
from dealer_crm.models.notification import NotificationType
from dealer_crm.models.pipeline import LeadTask, Opportunity, TestDrive
from dealer_crm.models.user import Dealer, User
from dealer_crm.services.auto_response import AutoResponseContext, AutoResponseScheduler
from dealer_crm.services.catalog import CatalogStore, SqlCatalogStore
from dealer_crm.services.dedup import DeduplicationService, normalize_email, normalize_phone
from dealer_crm.services.lead_state import LeadStateMachine
from dealer_crm.services.notification_service import NotificationService
from dealer_crm.services.team import TeamService
from dealer_crm.utils.logging import LeadLogger, get_logger
from dealer_crm.utils.time import Clock, utc_now

logger = get_logger("services.leads")

MANUAL_ACTIVITY_TYPES = frozenset(
    {
        LeadActivityType.NOTE,
        LeadActivityType.CALL,
        LeadActivityType.EMAIL,
        LeadActivityType.WHATSAPP,
        LeadActivityType.TEST_DRIVE,
    }
)
CONTACT_ACTIVITY_TYPES = frozenset(
    {LeadActivityType.CALL, LeadActivityType.EMAIL, LeadActivityType.WHATSAPP}
)

DEFAULT_CHAT_NAME = "Usuario"
DEFAULT_CHAT_MESSAGE = "Consulta desde chat"
MAX_PAGE_SIZE = 100

EDITABLE_FIELDS = ("notes", "estimated_value", "next_follow_up")


async def get_dealer_lead(db: AsyncSession, dealer_id: int, lead_id: int) -> Lead:
    """Load a lead of ``dealer_id``; missing and foreign leads look the same."""
    result = await db.execute(
        select(Lead).where(Lead.id == lead_id, Lead.dealer_id == dealer_id)
    )
    lead = result.scalar_one_or_none()
    if lead is None:
        raise NotFoundError("Lead no encontrado")
    return lead


def notification_payload(lead: Lead, vehicle_title: Optional[str] = None) -> Dict[str, Any]:
    return {
        "lead_id": lead.id,
        "lead_name": lead.name,
        "lead_email": lead.email,
        "lead_phone": lead.phone,
        "message": lead.message,
        "vehicle_title": vehicle_title if vehicle_title is not None else lead.vehicle_title,
    }


class LeadService:
    def __init__(
        self,
        db: AsyncSession,
        notifications: Optional[NotificationService] = None,
        scheduler: Optional[AutoResponseScheduler] = None,
        catalog: Optional[CatalogStore] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.notifications = notifications or NotificationService(db, clock=clock)
        self.scheduler = scheduler
        self.catalog = catalog or SqlCatalogStore(db)
        self.team = TeamService(db)
        self.dedup = DeduplicationService(db, clock=clock)
        self.state = LeadStateMachine(db, clock=clock)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def _dealer_vehicle(self, dealer_id: int, vehicle_id: Optional[int]) -> Optional[Vehicle]:
        if vehicle_id is None:
            return None
        vehicle = await self.catalog.get_dealer_vehicle(dealer_id, vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehículo no encontrado")
        return vehicle

    async def create_lead(
        self,
        dealer_id: int,
        name: str,
        email: str,
        message: str,
        phone: Optional[str] = None,
        vehicle_id: Optional[int] = None,
        source: LeadSource = LeadSource.FORM,
    ) -> Lead:
        """Public contact form / vehicle inquiry."""
        name = (name or "").strip()
        message = (message or "").strip()
        email = normalize_email(email)
        if not name or not email or not message:
            raise ValidationError("Nombre, email y mensaje son requeridos")

        dealer = await self.team.get_dealer(dealer_id)
        if dealer is None or not dealer.is_active:
            raise NotFoundError("Automotora no encontrada")
        vehicle = await self._dealer_vehicle(dealer_id, vehicle_id)

        return await self._ingest(
            dealer,
            vehicle,
            name=name,
            email=email,
            phone=normalize_phone(phone),
            message=message,
            source=source,
        )

    async def create_from_conversation(
        self,
        actor: User,
        conversation_id: int,
        email: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        message: Optional[str] = None,
        vehicle_id: Optional[int] = None,
    ) -> Lead:
        """Turn a chat conversation into a lead; at most one lead per conversation."""
        dealer_id = actor.dealer_id
        await self.dedup.ensure_conversation_unused(dealer_id, conversation_id)

        dealer = await self.team.get_dealer(dealer_id)
        if dealer is None:
            raise NotFoundError("Automotora no encontrada")
        vehicle = await self._dealer_vehicle(dealer_id, vehicle_id)

        email = normalize_email(email)
        if not email:
            raise ValidationError("El email del cliente es requerido")

        try:
            return await self._ingest(
                dealer,
                vehicle,
                name=(name or "").strip() or DEFAULT_CHAT_NAME,
                email=email,
                phone=normalize_phone(phone),
                message=(message or "").strip() or DEFAULT_CHAT_MESSAGE,
                source=LeadSource.CHAT,
                conversation_id=conversation_id,
            )
        except IntegrityError:
            # Lost a race against a concurrent conversion of the same chat.
            existing = await self.dedup.find_conversation_lead(dealer_id, conversation_id)
            raise ConflictError(
                "Ya existe un lead para esta conversación",
                lead_id=existing.id if existing is not None else None,
            )

    async def lead_for_conversation(self, dealer_id: int, conversation_id: int) -> Optional[Lead]:
        return await self.dedup.find_conversation_lead(dealer_id, conversation_id)

    async def _ingest(
        self,
        dealer: Dealer,
        vehicle: Optional[Vehicle],
        *,
        name: str,
        email: str,
        phone: Optional[str],
        message: str,
        source: LeadSource,
        conversation_id: Optional[int] = None,
    ) -> Lead:
        is_duplicate = await self.dedup.is_duplicate(dealer.id, email, phone)
        now = self.clock()
        lead = Lead(
            dealer_id=dealer.id,
            vehicle=vehicle,
            conversation_id=conversation_id,
            name=name,
            email=email,
            phone=phone,
            message=message,
            source=source.value,
            status=LeadStatus.NEW.value,
            is_duplicate=is_duplicate,
            created_at=now,
            updated_at=now,
        )
        async with self.db.begin_nested():
            self.db.add(lead)
            await self.db.flush()

        LeadLogger(lead.id, dealer.id).log(
            "lead_created",
            source=source.value,
            is_duplicate=is_duplicate,
            vehicle_id=vehicle.id if vehicle is not None else None,
        )

        await self._announce(lead, dealer, vehicle)
        await self._schedule_auto_response(lead, dealer, vehicle)
        return lead

    async def _announce(self, lead: Lead, dealer: Dealer, vehicle: Optional[Vehicle]) -> None:
        try:
            members = await self.team.members(dealer.id)
            payload = notification_payload(lead, vehicle.title if vehicle is not None else None)
            await self.notifications.notify_many(
                NotificationType.NEW_LEAD, [m.id for m in members], payload
            )
        except Exception as exc:
            LeadLogger(lead.id, dealer.id).error("new_lead_fanout_failed", error=str(exc))

    async def _schedule_auto_response(
        self,
        lead: Lead,
        dealer: Dealer,
        vehicle: Optional[Vehicle],
    ) -> None:
        if self.scheduler is None:
            return
        context = AutoResponseContext(
            nombre=lead.name,
            email=lead.email,
            telefono=lead.phone,
            vehiculo=vehicle.title if vehicle is not None else None,
            vehiculo_precio=vehicle.price if vehicle is not None else None,
            dealer_nombre=dealer.name,
            dealer_telefono=dealer.phone,
            dealer_direccion=dealer.address,
        )
        try:
            async with self.db.begin_nested():
                await self.scheduler.schedule(dealer.id, lead.id, context)
        except Exception as exc:
            LeadLogger(lead.id, dealer.id).error("auto_response_schedule_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_lead(self, dealer_id: int, lead_id: int) -> Lead:
        return await get_dealer_lead(self.db, dealer_id, lead_id)

    async def list_leads(
        self,
        dealer_id: int,
        actor_id: int,
        status: Optional[LeadStatus] = None,
        assigned_to: str = "all",
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Lead], int]:
        """Newest first. ``assigned_to`` is ``all``, ``me``, ``unassigned`` or a user id."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)

        filters = [Lead.dealer_id == dealer_id]
        if status is not None:
            filters.append(Lead.status == status.value)
        if assigned_to == "me":
            filters.append(Lead.assigned_to_id == actor_id)
        elif assigned_to == "unassigned":
            filters.append(Lead.assigned_to_id.is_(None))
        elif assigned_to and assigned_to != "all":
            try:
                filters.append(Lead.assigned_to_id == int(assigned_to))
            except ValueError:
                raise ValidationError("Filtro de asignación inválido")
        if search:
            term = f"%{search.strip()}%"
            filters.append(
                or_(Lead.name.ilike(term), Lead.email.ilike(term), Lead.phone.ilike(term))
            )

        total = (
            await self.db.execute(select(func.count()).select_from(Lead).where(*filters))
        ).scalar() or 0
        result = await self.db.execute(
            select(Lead)
            .where(*filters)
            .order_by(Lead.created_at.desc(), Lead.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def update_lead(self, actor: User, lead_id: int, changes: Mapping[str, Any]) -> Lead:
        """Apply a partial update; keys absent from ``changes`` are left alone.

        Status, assignee and field edits land in the caller's transaction
        together with their activity rows. Notifications go out after the
        flush and cannot undo the update.
        """
        lead = await self.get_lead(actor.dealer_id, lead_id)

        assignee: Optional[User] = None
        if changes.get("assigned_to_id") is not None:
            assignee = await self.team.get_member(actor.dealer_id, changes["assigned_to_id"])
            if assignee is None:
                raise InvalidAssigneeError("El usuario asignado no pertenece al equipo")

        status_activity = None
        if changes.get("status") is not None:
            status_activity = self.state.change_status(
                lead, LeadStatus(changes["status"]), actor.id
            )

        assignment_activity = None
        if "assigned_to_id" in changes:
            assignment_activity = self.state.change_assignee(lead, assignee, actor.id)

        for field in EDITABLE_FIELDS:
            if field in changes:
                setattr(lead, field, changes[field])
        lead.updated_at = self.clock()
        await self.db.flush()

        payload = notification_payload(lead)
        if assignment_activity is not None and assignee is not None and assignee.id != actor.id:
            payload["assigned_by"] = actor.display_name
            await self.notifications.notify(NotificationType.LEAD_ASSIGNED, assignee.id, payload)
        if (
            status_activity is not None
            and lead.assigned_to_id is not None
            and lead.assigned_to_id != actor.id
        ):
            payload["new_status"] = lead.status
            await self.notifications.notify(
                NotificationType.LEAD_STATUS_CHANGE, lead.assigned_to_id, payload
            )
        return lead

    async def delete_lead(self, dealer_id: int, lead_id: int) -> None:
        lead = await self.get_lead(dealer_id, lead_id)
        for model in (LeadActivity, LeadPreferences, Opportunity, LeadTask, TestDrive):
            await self.db.execute(delete(model).where(model.lead_id == lead.id))
        await self.db.execute(
            delete(AutoResponseJob).where(
                AutoResponseJob.lead_id == lead.id,
                AutoResponseJob.status == AutoResponseJobStatus.PENDING.value,
            )
        )
        await self.db.delete(lead)
        await self.db.flush()
        LeadLogger(lead_id, dealer_id).log("lead_deleted")

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    async def list_activities(self, dealer_id: int, lead_id: int) -> List[LeadActivity]:
        lead = await self.get_lead(dealer_id, lead_id)
        result = await self.db.execute(
            select(LeadActivity)
            .where(LeadActivity.lead_id == lead.id)
            .order_by(LeadActivity.created_at.desc(), LeadActivity.id.desc())
        )
        return list(result.scalars().all())

    async def add_activity(
        self,
        actor: User,
        lead_id: int,
        activity_type: LeadActivityType,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> LeadActivity:
        if activity_type not in MANUAL_ACTIVITY_TYPES:
            raise ValidationError("Tipo de actividad no permitido")
        lead = await self.get_lead(actor.dealer_id, lead_id)

        now = self.clock()
        if activity_type in CONTACT_ACTIVITY_TYPES:
            lead.last_contact_at = now
            if lead.responded_at is None:
                lead.responded_at = now

        activity = LeadActivity(
            lead_id=lead.id,
            user_id=actor.id,
            type=activity_type.value,
            content=(content or "").strip() or None,
            metadata_=metadata,
            created_at=now,
        )
        self.db.add(activity)
        await self.db.flush()
        LeadLogger(lead.id, lead.dealer_id).log(
            "lead_activity_added", type=activity_type.value, actor_id=actor.id
        )
        return activity

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def get_preferences(self, dealer_id: int, lead_id: int) -> Optional[LeadPreferences]:
        lead = await self.get_lead(dealer_id, lead_id)
        result = await self.db.execute(
            select(LeadPreferences).where(LeadPreferences.lead_id == lead.id)
        )
        return result.scalar_one_or_none()

    async def upsert_preferences(
        self,
        dealer_id: int,
        lead_id: int,
        values: Mapping[str, Any],
    ) -> LeadPreferences:
        min_price, max_price = values.get("min_price"), values.get("max_price")
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("El precio mínimo no puede ser mayor al máximo")
        min_year, max_year = values.get("min_year"), values.get("max_year")
        if min_year is not None and max_year is not None and min_year > max_year:
            raise ValidationError("El año mínimo no puede ser mayor al máximo")

        prefs = await self.get_preferences(dealer_id, lead_id)
        if prefs is None:
            prefs = LeadPreferences(lead_id=lead_id)
            self.db.add(prefs)

        prefs.brand_ids = list(values.get("brand_ids") or [])
        prefs.model_ids = list(values.get("model_ids") or [])
        prefs.min_price = min_price
        prefs.max_price = max_price
        prefs.min_year = min_year
        prefs.max_year = max_year
        prefs.vehicle_type = values.get("vehicle_type") or None
        prefs.condition = values.get("condition") or None
        prefs.updated_at = self.clock()
        await self.db.flush()
        return prefs
