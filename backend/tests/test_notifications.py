import pytest

from dealer_crm.database import async_session_maker
from dealer_crm.errors import NotFoundError
from dealer_crm.models.notification import NotificationType
from dealer_crm.services.notification_realtime import NotificationHub
from dealer_crm.services.notification_service import NotificationService

from conftest import FakeSink


def payload(lead_id=1):
    return {"lead_id": lead_id, "lead_name": "Ana", "lead_email": "ana@correo.cl"}


class RecordingSocket:
    def __init__(self):
        self.messages = []

    async def send_json(self, data):
        self.messages.append(data)


@pytest.mark.asyncio
async def test_mark_as_read_is_idempotent_and_scoped_to_owner(seed, clock):
    dealer = await seed.dealer()
    seller = await seed.member(dealer)
    colleague = await seed.member(dealer)

    async with async_session_maker() as db:
        service = NotificationService(db, clock=clock)
        notification = await service.notify(
            NotificationType.LEAD_STATUS_CHANGE, seller.id, {**payload(), "new_status": "LOST"}
        )
        first = await service.mark_as_read(seller.id, notification.id)
        read_at = first.read_at
        clock.advance(minutes=5)
        again = await service.mark_as_read(seller.id, notification.id)
        assert again.read_at == read_at

        with pytest.raises(NotFoundError):
            await service.mark_as_read(colleague.id, notification.id)
        with pytest.raises(NotFoundError):
            await service.delete_notification(colleague.id, notification.id)


@pytest.mark.asyncio
async def test_mark_all_only_touches_callers_notifications(seed, clock):
    dealer = await seed.dealer()
    seller = await seed.member(dealer)
    colleague = await seed.member(dealer)

    async with async_session_maker() as db:
        service = NotificationService(db, clock=clock)
        for user in (seller, seller, colleague):
            await service.notify(NotificationType.INVENTORY_MATCH, user.id, payload())
        await db.commit()

        assert await service.unread_count(seller.id) == 2
        assert await service.mark_all_as_read(seller.id) == 2
        assert await service.unread_count(seller.id) == 0
        assert await service.unread_count(colleague.id) == 1

        rows, total = await service.list_notifications(colleague.id, unread_only=True)
        assert total == 1 and rows[0].user_id == colleague.id


@pytest.mark.asyncio
async def test_disabled_preference_suppresses_in_app_row(seed, sink, clock):
    dealer = await seed.dealer()
    seller = await seed.member(dealer)

    async with async_session_maker() as db:
        service = NotificationService(db, clock=clock)
        prefs = await service.update_preferences(seller.id, {NotificationType.NEW_LEAD: False})
        assert prefs[NotificationType.NEW_LEAD] is False
        assert prefs[NotificationType.LEAD_ASSIGNED] is True

        assert await service.notify(NotificationType.NEW_LEAD, seller.id, payload()) is None
        assigned = await service.notify(
            NotificationType.LEAD_ASSIGNED, seller.id, {**payload(), "assigned_by": "María"}
        )
        assert assigned is not None
        _, total = await service.list_notifications(seller.id)

    assert total == 1


@pytest.mark.asyncio
async def test_email_failure_does_not_block_in_app(seed, clock):
    dealer = await seed.dealer()
    seller = await seed.member(dealer)

    async with async_session_maker() as db:
        service = NotificationService(db, sink=FakeSink(fail=True), clock=clock)
        notification = await service.notify(NotificationType.NEW_LEAD, seller.id, payload())

    assert notification is not None
    assert notification.title == "Nuevo Lead"


@pytest.mark.asyncio
async def test_delete_old_read_keeps_unread_and_recent(seed, clock):
    dealer = await seed.dealer()
    seller = await seed.member(dealer)

    async with async_session_maker() as db:
        service = NotificationService(db, clock=clock)
        old_read = await service.notify(NotificationType.INVENTORY_MATCH, seller.id, payload(1))
        await service.notify(NotificationType.INVENTORY_MATCH, seller.id, payload(2))
        await service.mark_as_read(seller.id, old_read.id)
        clock.advance(days=40)
        recent = await service.notify(NotificationType.INVENTORY_MATCH, seller.id, payload(3))
        await service.mark_as_read(seller.id, recent.id)

        assert await service.delete_old_read(days_old=30) == 1
        rows, total = await service.list_notifications(seller.id)
        await db.commit()

    assert total == 2
    assert old_read.id not in [r.id for r in rows]


@pytest.mark.asyncio
async def test_connected_user_receives_push(seed, clock):
    dealer = await seed.dealer()
    seller = await seed.member(dealer)
    hub = NotificationHub()
    socket = RecordingSocket()
    hub.register(seller.id, socket)

    async with async_session_maker() as db:
        service = NotificationService(db, hub=hub, clock=clock)
        notification = await service.notify(
            NotificationType.FOLLOW_UP_REMINDER,
            seller.id,
            {**payload(), "task_id": 9, "task_title": "Llamar"},
        )

    assert len(socket.messages) == 1
    assert socket.messages[0]["type"] == NotificationType.FOLLOW_UP_REMINDER.value
    assert socket.messages[0]["id"] == notification.id
