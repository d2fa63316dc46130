"""Team-facing notification dispatch and the notification inbox.

Every event goes out through two independent channels: an in-app
``Notification`` row (plus a realtime push) and, for new and assigned leads,
an email through the notification sink. A failure on one channel is logged
and never affects the other, nor the business operation that triggered it.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.config import settings
from dealer_crm.errors import NotFoundError
from dealer_crm.models.notification import (
    Notification,
    NotificationPreference,
    NotificationType,
)
from dealer_crm.models.user import User
from dealer_crm.services.email import (
    NotificationSink,
    get_email_sink,
    lead_assigned_email,
    new_lead_email,
)
from dealer_crm.services.notification_realtime import NotificationHub, hub as default_hub
from dealer_crm.utils.logging import get_logger
from dealer_crm.utils.time import Clock, format_time_es, to_local, utc_now

logger = get_logger("services.notification")

EMAIL_KINDS = frozenset({NotificationType.NEW_LEAD, NotificationType.LEAD_ASSIGNED})

STATUS_LABELS = {
    "NEW": "Nuevo",
    "CONTACTED": "Contactado",
    "QUALIFIED": "Calificado",
    "CONVERTED": "Convertido",
    "LOST": "Perdido",
}


def lead_link(lead_id: int) -> str:
    return f"/dealer/leads?leadId={lead_id}"


def render_notification(
    kind: NotificationType,
    payload: Dict[str, Any],
    tz_name: str = "America/Santiago",
) -> Tuple[str, str, Optional[str], Dict[str, Any]]:
    """Fixed (title, message, link, metadata) for each notification kind."""
    lead_id = payload.get("lead_id")
    lead_name = payload.get("lead_name") or "Usuario"
    metadata: Dict[str, Any] = {"leadId": lead_id}
    link = lead_link(lead_id) if lead_id is not None else None

    if kind == NotificationType.NEW_LEAD:
        vehicle = payload.get("vehicle_title")
        message = (
            f"{lead_name} consultó sobre {vehicle}"
            if vehicle
            else f"{lead_name} envió una consulta general"
        )
        return "Nuevo Lead", message, link, metadata

    if kind == NotificationType.LEAD_ASSIGNED:
        assigned_by = payload.get("assigned_by") or "Un compañero"
        return "Lead Asignado", f"{assigned_by} te asignó el lead de {lead_name}", link, metadata

    if kind == NotificationType.LEAD_STATUS_CHANGE:
        new_status = payload.get("new_status", "")
        label = STATUS_LABELS.get(new_status, new_status)
        metadata["newStatus"] = new_status
        return "Cambio de Estado", f"El lead de {lead_name} cambió a {label}", link, metadata

    if kind == NotificationType.FOLLOW_UP_REMINDER:
        metadata["taskId"] = payload.get("task_id")
        message = f"Tarea pendiente: {payload.get('task_title', '')} - {lead_name}"
        return "Recordatorio de Seguimiento", message, link, metadata

    if kind == NotificationType.TEST_DRIVE_REMINDER:
        test_drive_id = payload.get("test_drive_id")
        metadata["testDriveId"] = test_drive_id
        scheduled_at: datetime = payload["scheduled_at"]
        time_str = format_time_es(to_local(scheduled_at, tz_name))
        message = (
            f"Test drive de {payload.get('vehicle_title', '')} con {lead_name} a las {time_str}"
        )
        return (
            "Recordatorio de Test Drive",
            message,
            f"/dealer/leads/test-drives?testDriveId={test_drive_id}",
            metadata,
        )

    if kind == NotificationType.INVENTORY_MATCH:
        metadata["vehicleId"] = payload.get("vehicle_id")
        message = (
            f"Nuevo vehículo que podría interesarle a {lead_name}: "
            f"{payload.get('vehicle_title', '')}"
        )
        return "Vehículo Compatible", message, link, metadata

    raise ValueError(f"Unsupported notification kind: {kind}")


class NotificationService:
    def __init__(
        self,
        db: AsyncSession,
        sink: Optional[NotificationSink] = None,
        hub: Optional[NotificationHub] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.sink = sink
        self.hub = hub or default_hub
        self.clock = clock

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _is_enabled(self, user_id: int, notification_type: NotificationType) -> bool:
        result = await self.db.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id,
                NotificationPreference.notification_type == notification_type.value,
            )
        )
        pref = result.scalar_one_or_none()
        if pref is None:
            return True
        return pref.enabled

    async def create_notification(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        link: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """Write one in-app notification; never raises."""
        try:
            if not await self._is_enabled(user_id, notification_type):
                return None
            async with self.db.begin_nested():
                notification = Notification(
                    user_id=user_id,
                    type=notification_type.value,
                    title=title,
                    message=message,
                    link=link,
                    metadata_=metadata,
                    is_read=False,
                    created_at=self.clock(),
                )
                self.db.add(notification)
                await self.db.flush()
        except Exception as exc:
            logger.error(
                "notification_write_failed",
                user_id=user_id,
                type=notification_type.value,
                error=str(exc),
            )
            return None

        try:
            await self.hub.push(user_id, self.serialize(notification))
        except Exception as exc:
            logger.warning("notification_push_failed", user_id=user_id, error=str(exc))
        return notification

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        """Best-effort email through the sink; never raises."""
        sink = self.sink or get_email_sink()
        try:
            result = await sink.send_email(to, subject, html)
        except Exception as exc:
            logger.error("notification_email_failed", to=to, subject=subject, error=str(exc))
            return False
        if not result.success:
            logger.error("notification_email_rejected", to=to, error=result.error)
            return False
        return True

    async def notify(
        self,
        kind: NotificationType,
        recipient_user_id: int,
        payload: Dict[str, Any],
    ) -> Optional[Notification]:
        """Fan one event out to the in-app and (where applicable) email channels."""
        try:
            title, message, link, metadata = render_notification(kind, payload, settings.timezone)
        except Exception as exc:
            logger.error("notification_render_failed", kind=kind.value, error=str(exc))
            return None

        notification = await self.create_notification(
            user_id=recipient_user_id,
            notification_type=kind,
            title=title,
            message=message,
            link=link,
            metadata=metadata,
        )

        if kind in EMAIL_KINDS:
            await self._email_for(kind, recipient_user_id, payload)
        return notification

    async def notify_many(
        self,
        kind: NotificationType,
        recipient_user_ids: Iterable[int],
        payload: Dict[str, Any],
    ) -> List[Notification]:
        created = []
        for user_id in dict.fromkeys(recipient_user_ids):
            notification = await self.notify(kind, user_id, payload)
            if notification is not None:
                created.append(notification)
        return created

    async def _email_for(
        self,
        kind: NotificationType,
        recipient_user_id: int,
        payload: Dict[str, Any],
    ) -> bool:
        try:
            recipient = await self.db.get(User, recipient_user_id)
        except Exception as exc:
            logger.error("notification_recipient_lookup_failed", error=str(exc))
            return False
        if recipient is None or not recipient.email:
            return False

        lead_id = payload.get("lead_id")
        lead_url = f"{settings.app_url}{lead_link(lead_id)}"
        lead_name = payload.get("lead_name") or "Usuario"
        common = dict(
            lead_name=lead_name,
            lead_email=payload.get("lead_email") or "",
            lead_phone=payload.get("lead_phone"),
            message=payload.get("message") or "",
            vehicle_title=payload.get("vehicle_title"),
            lead_url=lead_url,
        )
        recipient_name = recipient.name or "Usuario"

        if kind == NotificationType.NEW_LEAD:
            subject = f"Nuevo Lead: {lead_name} - {settings.app_name}"
            html = new_lead_email(recipient_name, **common)
        else:
            subject = f"Lead Asignado: {lead_name} - {settings.app_name}"
            html = lead_assigned_email(
                recipient_name, payload.get("assigned_by") or "Un compañero", **common
            )
        return await self.send_email(recipient.email, subject, html)

    @staticmethod
    def serialize(notification: Notification) -> Dict[str, Any]:
        return {
            "id": notification.id,
            "user_id": notification.user_id,
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "link": notification.link,
            "metadata": notification.metadata_,
            "is_read": notification.is_read,
            "created_at": notification.created_at.isoformat() if notification.created_at else None,
        }

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    async def list_notifications(
        self,
        user_id: int,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Notification], int]:
        filters = [Notification.user_id == user_id]
        if unread_only:
            filters.append(Notification.is_read == False)  # noqa: E712
        if notification_type is not None:
            filters.append(Notification.type == notification_type.value)

        total = (
            await self.db.execute(select(func.count()).select_from(Notification).where(*filters))
        ).scalar() or 0
        result = await self.db.execute(
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def unread_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        )
        return result.scalar() or 0

    async def _owned(self, user_id: int, notification_id: int) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notificación no encontrada")
        return notification

    async def mark_as_read(self, user_id: int, notification_id: int) -> Notification:
        """Idempotent: an already-read notification is left untouched."""
        notification = await self._owned(user_id, notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = self.clock()
            await self.db.flush()
        return notification

    async def mark_all_as_read(self, user_id: int) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=self.clock())
        )
        await self.db.flush()
        return result.rowcount or 0

    async def delete_notification(self, user_id: int, notification_id: int) -> None:
        notification = await self._owned(user_id, notification_id)
        await self.db.delete(notification)
        await self.db.flush()

    async def delete_old_read(self, days_old: int = 30) -> int:
        cutoff = self.clock() - timedelta(days=days_old)
        result = await self.db.execute(
            delete(Notification).where(
                Notification.is_read == True,  # noqa: E712
                Notification.created_at < cutoff,
            )
        )
        await self.db.flush()
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def get_preferences(self, user_id: int) -> Dict[NotificationType, bool]:
        result = await self.db.execute(
            select(NotificationPreference).where(NotificationPreference.user_id == user_id)
        )
        existing = {p.notification_type: p.enabled for p in result.scalars().all()}
        return {nt: existing.get(nt.value, True) for nt in NotificationType}

    async def update_preferences(
        self,
        user_id: int,
        items: Dict[NotificationType, bool],
    ) -> Dict[NotificationType, bool]:
        for notification_type, enabled in items.items():
            result = await self.db.execute(
                select(NotificationPreference).where(
                    NotificationPreference.user_id == user_id,
                    NotificationPreference.notification_type == notification_type.value,
                )
            )
            pref = result.scalar_one_or_none()
            if pref:
                pref.enabled = enabled
            else:
                self.db.add(
                    NotificationPreference(
                        user_id=user_id,
                        notification_type=notification_type.value,
                        enabled=enabled,
                    )
                )
        await self.db.flush()
        return await self.get_preferences(user_id)
