"""Test drive scheduling and reminders."""

from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.config import settings
from dealer_crm.errors import NotFoundError, ValidationError
from dealer_crm.models.catalog import Vehicle
from dealer_crm.models.lead import Lead, LeadActivity, LeadActivityType
from dealer_crm.models.notification import NotificationType
from dealer_crm.models.pipeline import TestDrive, TestDriveStatus
from dealer_crm.models.user import User
from dealer_crm.services.catalog import CatalogStore, SqlCatalogStore
from dealer_crm.services.lead_service import get_dealer_lead
from dealer_crm.services.notification_service import NotificationService
from dealer_crm.utils.logging import LeadLogger, get_logger
from dealer_crm.utils.time import Clock, format_date_es, format_time_es, to_local, utc_now

logger = get_logger("services.test_drives")

DEFAULT_DURATION_MINUTES = 30


class TestDriveService:
    __test__ = False

    def __init__(
        self,
        db: AsyncSession,
        notifications: Optional[NotificationService] = None,
        catalog: Optional[CatalogStore] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.notifications = notifications or NotificationService(db, clock=clock)
        self.catalog = catalog or SqlCatalogStore(db)

    async def _vehicle(self, dealer_id: int, vehicle_id: Optional[int]) -> Vehicle:
        if vehicle_id is None:
            raise ValidationError("El vehículo es requerido")
        vehicle = await self.catalog.get_dealer_vehicle(dealer_id, vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehículo no encontrado")
        return vehicle

    async def _get(self, dealer_id: int, lead_id: int, test_drive_id: int) -> Tuple[Lead, TestDrive]:
        lead = await get_dealer_lead(self.db, dealer_id, lead_id)
        result = await self.db.execute(
            select(TestDrive).where(TestDrive.id == test_drive_id, TestDrive.lead_id == lead.id)
        )
        test_drive = result.scalar_one_or_none()
        if test_drive is None:
            raise NotFoundError("Test drive no encontrado")
        return lead, test_drive

    async def list_for_lead(self, dealer_id: int, lead_id: int) -> List[TestDrive]:
        lead = await get_dealer_lead(self.db, dealer_id, lead_id)
        result = await self.db.execute(
            select(TestDrive)
            .where(TestDrive.lead_id == lead.id)
            .order_by(TestDrive.scheduled_at.desc(), TestDrive.id.desc())
        )
        return list(result.scalars().all())

    async def list_for_dealer(
        self,
        dealer_id: int,
        status: Optional[TestDriveStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[TestDrive]:
        query = (
            select(TestDrive)
            .join(Lead, Lead.id == TestDrive.lead_id)
            .where(Lead.dealer_id == dealer_id)
        )
        if status is not None:
            query = query.where(TestDrive.status == status.value)
        if date_from is not None:
            query = query.where(TestDrive.scheduled_at >= date_from)
        if date_to is not None:
            query = query.where(TestDrive.scheduled_at <= date_to)
        result = await self.db.execute(query.order_by(TestDrive.scheduled_at, TestDrive.id))
        return list(result.scalars().all())

    async def create(
        self,
        actor: User,
        lead_id: int,
        vehicle_id: Optional[int],
        scheduled_at: Optional[datetime],
        duration: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TestDrive:
        if scheduled_at is None:
            raise ValidationError("La fecha del test drive es requerida")
        if duration is not None and duration <= 0:
            raise ValidationError("La duración debe ser mayor a 0")
        lead = await get_dealer_lead(self.db, actor.dealer_id, lead_id)
        vehicle = await self._vehicle(actor.dealer_id, vehicle_id)

        now = self.clock()
        test_drive = TestDrive(
            lead=lead,
            vehicle=vehicle,
            scheduled_at=scheduled_at,
            duration=duration or DEFAULT_DURATION_MINUTES,
            status=TestDriveStatus.SCHEDULED.value,
            notes=(notes or "").strip() or None,
            created_at=now,
        )
        self.db.add(test_drive)

        local = to_local(scheduled_at, settings.timezone)
        self.db.add(
            LeadActivity(
                lead_id=lead.id,
                user_id=actor.id,
                type=LeadActivityType.TEST_DRIVE.value,
                content=(
                    f"Test drive agendado: {vehicle.title} el {format_date_es(local)} "
                    f"a las {format_time_es(local)}"
                ),
                metadata_={"vehicleId": vehicle.id},
                created_at=now,
            )
        )
        await self.db.flush()
        LeadLogger(lead.id, lead.dealer_id).log(
            "test_drive_scheduled", test_drive_id=test_drive.id, vehicle_id=vehicle.id
        )
        return test_drive

    async def update(
        self,
        actor: User,
        lead_id: int,
        test_drive_id: int,
        changes: Mapping[str, Any],
    ) -> TestDrive:
        lead, test_drive = await self._get(actor.dealer_id, lead_id, test_drive_id)

        if changes.get("vehicle_id") is not None:
            test_drive.vehicle = await self._vehicle(actor.dealer_id, changes["vehicle_id"])
        if changes.get("scheduled_at") is not None:
            test_drive.scheduled_at = changes["scheduled_at"]
            test_drive.reminded_at = None
        if changes.get("duration") is not None:
            if changes["duration"] <= 0:
                raise ValidationError("La duración debe ser mayor a 0")
            test_drive.duration = changes["duration"]
        if changes.get("status") is not None:
            test_drive.status = TestDriveStatus(changes["status"]).value
        if "notes" in changes:
            test_drive.notes = (changes["notes"] or "").strip() or None

        await self.db.flush()
        LeadLogger(lead.id, lead.dealer_id).log(
            "test_drive_updated", test_drive_id=test_drive.id, status=test_drive.status
        )
        return test_drive

    async def delete(self, dealer_id: int, lead_id: int, test_drive_id: int) -> None:
        _, test_drive = await self._get(dealer_id, lead_id, test_drive_id)
        await self.db.delete(test_drive)
        await self.db.flush()

    async def upcoming_reminders(self, within_minutes: int = 60) -> List[TestDrive]:
        now = self.clock()
        result = await self.db.execute(
            select(TestDrive)
            .where(
                TestDrive.status == TestDriveStatus.SCHEDULED.value,
                TestDrive.reminded_at.is_(None),
                TestDrive.scheduled_at >= now,
                TestDrive.scheduled_at <= now + timedelta(minutes=within_minutes),
            )
            .order_by(TestDrive.scheduled_at, TestDrive.id)
        )
        return list(result.scalars().all())

    async def send_due_reminders(self, within_minutes: int = 60) -> int:
        """Remind the lead's assignee about imminent test drives, once each."""
        sent = 0
        for test_drive in await self.upcoming_reminders(within_minutes):
            lead = test_drive.lead
            if lead.assigned_to_id is None:
                continue
            await self.notifications.notify(
                NotificationType.TEST_DRIVE_REMINDER,
                lead.assigned_to_id,
                {
                    "lead_id": lead.id,
                    "lead_name": lead.name,
                    "test_drive_id": test_drive.id,
                    "vehicle_title": test_drive.vehicle.title,
                    "scheduled_at": test_drive.scheduled_at,
                },
            )
            test_drive.reminded_at = self.clock()
            sent += 1
        await self.db.flush()
        if sent:
            logger.info("test_drive_reminders_sent", count=sent)
        return sent
