"""Follow-up tasks and the lead's ``next_follow_up`` pointer."""

from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.errors import InvalidAssigneeError, NotFoundError, ValidationError
from dealer_crm.models.lead import Lead
from dealer_crm.models.notification import NotificationType
from dealer_crm.models.pipeline import LeadTask, TaskPriority
from dealer_crm.models.user import User
from dealer_crm.services.lead_service import get_dealer_lead
from dealer_crm.services.notification_service import NotificationService
from dealer_crm.services.team import TeamService
from dealer_crm.utils.logging import LeadLogger, get_logger
from dealer_crm.utils.time import Clock, utc_now

logger = get_logger("services.tasks")


class TaskService:
    def __init__(
        self,
        db: AsyncSession,
        notifications: Optional[NotificationService] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.notifications = notifications or NotificationService(db, clock=clock)
        self.team = TeamService(db)

    async def _assignee(self, dealer_id: int, user_id: int) -> User:
        member = await self.team.get_member(dealer_id, user_id)
        if member is None:
            raise InvalidAssigneeError("Usuario no encontrado en el equipo")
        return member

    async def _get(self, dealer_id: int, lead_id: int, task_id: int) -> Tuple[Lead, LeadTask]:
        lead = await get_dealer_lead(self.db, dealer_id, lead_id)
        result = await self.db.execute(
            select(LeadTask).where(LeadTask.id == task_id, LeadTask.lead_id == lead.id)
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError("Tarea no encontrada")
        return lead, task

    async def refresh_next_follow_up(self, lead: Lead) -> Optional[datetime]:
        """Point the lead at its earliest pending task (or nothing)."""
        await self.db.flush()
        result = await self.db.execute(
            select(LeadTask.due_at)
            .where(LeadTask.lead_id == lead.id, LeadTask.completed_at.is_(None))
            .order_by(LeadTask.due_at)
            .limit(1)
        )
        lead.next_follow_up = result.scalar_one_or_none()
        await self.db.flush()
        return lead.next_follow_up

    async def list_for_lead(self, dealer_id: int, lead_id: int) -> List[LeadTask]:
        lead = await get_dealer_lead(self.db, dealer_id, lead_id)
        result = await self.db.execute(
            select(LeadTask)
            .where(LeadTask.lead_id == lead.id)
            .order_by(LeadTask.completed_at.is_not(None), LeadTask.due_at, LeadTask.id)
        )
        return list(result.scalars().all())

    async def list_for_dealer(
        self,
        dealer_id: int,
        actor_id: int,
        assigned_to: str = "me",
        include_completed: bool = False,
    ) -> List[LeadTask]:
        query = (
            select(LeadTask)
            .join(Lead, Lead.id == LeadTask.lead_id)
            .where(Lead.dealer_id == dealer_id)
        )
        if assigned_to == "me":
            query = query.where(LeadTask.assigned_to_id == actor_id)
        elif assigned_to and assigned_to != "all":
            try:
                query = query.where(LeadTask.assigned_to_id == int(assigned_to))
            except ValueError:
                raise ValidationError("Filtro de asignación inválido")
        if not include_completed:
            query = query.where(LeadTask.completed_at.is_(None))
        result = await self.db.execute(query.order_by(LeadTask.due_at, LeadTask.id))
        return list(result.scalars().all())

    async def create(
        self,
        actor: User,
        lead_id: int,
        title: str,
        assigned_to_id: Optional[int],
        due_at: Optional[datetime],
        description: Optional[str] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
    ) -> LeadTask:
        title = (title or "").strip()
        if not title or assigned_to_id is None or due_at is None:
            raise ValidationError("Título, asignado y fecha de vencimiento son requeridos")
        lead = await get_dealer_lead(self.db, actor.dealer_id, lead_id)
        await self._assignee(actor.dealer_id, assigned_to_id)

        task = LeadTask(
            lead=lead,
            assigned_to_id=assigned_to_id,
            title=title,
            description=(description or "").strip() or None,
            due_at=due_at,
            priority=priority.value,
            created_at=self.clock(),
        )
        self.db.add(task)
        await self.refresh_next_follow_up(lead)
        LeadLogger(lead.id, lead.dealer_id).log(
            "task_created", task_id=task.id, assigned_to_id=assigned_to_id
        )
        return task

    async def update(
        self,
        actor: User,
        lead_id: int,
        task_id: int,
        changes: Mapping[str, Any],
    ) -> LeadTask:
        lead, task = await self._get(actor.dealer_id, lead_id, task_id)
        if task.is_completed:
            raise ValidationError("No se puede editar una tarea completada")

        if changes.get("title") is not None:
            title = changes["title"].strip()
            if not title:
                raise ValidationError("El título es requerido")
            task.title = title
        if "description" in changes:
            task.description = (changes["description"] or "").strip() or None
        if changes.get("assigned_to_id") is not None:
            await self._assignee(actor.dealer_id, changes["assigned_to_id"])
            task.assigned_to_id = changes["assigned_to_id"]
        if changes.get("due_at") is not None:
            task.due_at = changes["due_at"]
            task.reminded_at = None
        if changes.get("priority") is not None:
            task.priority = TaskPriority(changes["priority"]).value

        await self.refresh_next_follow_up(lead)
        return task

    async def complete(self, actor: User, lead_id: int, task_id: int) -> LeadTask:
        """Idempotent: completing a completed task keeps the first timestamp."""
        lead, task = await self._get(actor.dealer_id, lead_id, task_id)
        if task.is_completed:
            return task
        task.completed_at = self.clock()
        await self.refresh_next_follow_up(lead)
        LeadLogger(lead.id, lead.dealer_id).log("task_completed", task_id=task.id, actor_id=actor.id)
        return task

    async def delete(self, dealer_id: int, lead_id: int, task_id: int) -> None:
        lead, task = await self._get(dealer_id, lead_id, task_id)
        await self.db.delete(task)
        await self.refresh_next_follow_up(lead)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def pending_reminders(self, within_minutes: int = 60) -> List[LeadTask]:
        """Open, not yet reminded tasks due before ``now + within_minutes``."""
        window = self.clock() + timedelta(minutes=within_minutes)
        result = await self.db.execute(
            select(LeadTask)
            .where(
                LeadTask.completed_at.is_(None),
                LeadTask.reminded_at.is_(None),
                LeadTask.due_at <= window,
            )
            .order_by(LeadTask.due_at, LeadTask.id)
        )
        return list(result.scalars().all())

    async def send_due_reminders(self, within_minutes: int = 60) -> int:
        sent = 0
        for task in await self.pending_reminders(within_minutes):
            await self.notifications.notify(
                NotificationType.FOLLOW_UP_REMINDER,
                task.assigned_to_id,
                {
                    "lead_id": task.lead_id,
                    "lead_name": task.lead.name,
                    "task_id": task.id,
                    "task_title": task.title,
                },
            )
            task.reminded_at = self.clock()
            sent += 1
        await self.db.flush()
        if sent:
            logger.info("follow_up_reminders_sent", count=sent)
        return sent
