import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import List, Optional

_DB_DIR = tempfile.mkdtemp(prefix="dealer_crm_tests_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["WORKER_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["EMAIL_API_KEY"] = ""

import pytest  # noqa: E402

from dealer_crm.database import async_session_maker, drop_db, init_db  # noqa: E402
from dealer_crm.models.auto_response import (  # noqa: E402
    AutoResponseConfig,
    MessageTemplate,
    TemplateChannel,
)
from dealer_crm.models.catalog import Brand, ListingStatus, Vehicle, VehicleModel  # noqa: E402
from dealer_crm.models.lead import Lead, LeadPreferences, LeadSource, LeadStatus  # noqa: E402
from dealer_crm.models.user import Dealer, DealerRole, DealerStatus, User  # noqa: E402
from dealer_crm.services.email import EmailResult, set_email_sink  # noqa: E402


def run_sync(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FakeClock:
    """Settable clock; ``advance`` moves it forward."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[dict] = []

    async def send_email(self, to: str, subject: str, html: str) -> EmailResult:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return EmailResult(success=True, message_id=f"msg-{len(self.sent)}")

    def to(self, address: str) -> List[dict]:
        return [m for m in self.sent if m["to"] == address]


class Seeder:
    """Writes fixture rows, one committed session per call."""

    def __init__(self):
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def _save(self, obj):
        async with async_session_maker() as db:
            db.add(obj)
            await db.commit()
            await db.refresh(obj)
            return obj

    async def dealer(self, name: str = "Automotora Sur", status: DealerStatus = DealerStatus.ACTIVE) -> Dealer:
        n = self._next()
        return await self._save(
            Dealer(
                name=name,
                slug=f"dealer-{n}",
                phone="+56 2 2345 6789",
                address="Av. Principal 123, Santiago",
                status=status.value,
            )
        )

    async def member(
        self,
        dealer: Dealer,
        role: DealerRole = DealerRole.SALES,
        name: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        n = self._next()
        return await self._save(
            User(
                email=f"user{n}@dealer.cl",
                name=name or f"Vendedor {n}",
                dealer_id=dealer.id,
                dealer_role=role.value,
                is_active=is_active,
            )
        )

    async def vehicle(
        self,
        dealer: Dealer,
        brand: str = "Toyota",
        model: str = "Corolla",
        price: int = 15_990_000,
        year: int = 2023,
        status: ListingStatus = ListingStatus.ACTIVE,
        created_at: Optional[datetime] = None,
        brand_id: Optional[int] = None,
        model_id: Optional[int] = None,
    ) -> Vehicle:
        n = self._next()
        async with async_session_maker() as db:
            if brand_id is None:
                b = Brand(name=brand)
                db.add(b)
                await db.flush()
                brand_id = b.id
            if model_id is None:
                m = VehicleModel(brand_id=brand_id, name=model)
                db.add(m)
                await db.flush()
                model_id = m.id
            vehicle = Vehicle(
                dealer_id=dealer.id,
                brand_id=brand_id,
                model_id=model_id,
                title=f"{brand} {model} {year}",
                slug=f"vehicle-{n}",
                price=price,
                year=year,
                mileage=10_000,
                status=status.value,
                created_at=created_at or datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=n),
            )
            db.add(vehicle)
            await db.commit()
            await db.refresh(vehicle)
            return vehicle

    async def lead(
        self,
        dealer: Dealer,
        email: str = "cliente@correo.cl",
        name: str = "Ana",
        status: LeadStatus = LeadStatus.NEW,
        assigned_to: Optional[User] = None,
        created_at: Optional[datetime] = None,
        phone: Optional[str] = None,
    ) -> Lead:
        now = created_at or datetime.now(timezone.utc)
        return await self._save(
            Lead(
                dealer_id=dealer.id,
                name=name,
                email=email,
                phone=phone,
                message="Hola, me interesa",
                source=LeadSource.FORM.value,
                status=status.value,
                assigned_to_id=assigned_to.id if assigned_to else None,
                created_at=now,
                updated_at=now,
            )
        )

    async def preferences(self, lead: Lead, **values) -> LeadPreferences:
        values.setdefault("brand_ids", [])
        values.setdefault("model_ids", [])
        return await self._save(LeadPreferences(lead_id=lead.id, **values))

    async def template(
        self,
        dealer: Dealer,
        content: str = "Hola {nombre}, gracias por escribir a {dealer_nombre}.",
        subject: Optional[str] = None,
        channel: TemplateChannel = TemplateChannel.EMAIL,
        is_active: bool = True,
    ) -> MessageTemplate:
        return await self._save(
            MessageTemplate(
                dealer_id=dealer.id,
                name="Bienvenida",
                channel=channel.value,
                subject=subject,
                content=content,
                is_active=is_active,
            )
        )

    async def auto_response(
        self,
        dealer: Dealer,
        template: Optional[MessageTemplate] = None,
        delay_minutes: int = 5,
        enabled: bool = True,
    ) -> AutoResponseConfig:
        return await self._save(
            AutoResponseConfig(
                dealer_id=dealer.id,
                enabled=enabled,
                email_template_id=template.id if template else None,
                delay_minutes=delay_minutes,
            )
        )


@pytest.fixture(autouse=True)
def fresh_db():
    run_sync(drop_db())
    run_sync(init_db())
    yield


@pytest.fixture
def seed() -> Seeder:
    return Seeder()


@pytest.fixture
def sink():
    fake = FakeSink()
    set_email_sink(fake)
    yield fake
    set_email_sink(None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
