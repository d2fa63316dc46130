import pytest
from sqlalchemy import select

from dealer_crm.database import async_session_maker
from dealer_crm.errors import ValidationError
from dealer_crm.models.auto_response import AutoResponseJob, AutoResponseJobStatus, TemplateChannel
from dealer_crm.models.lead import Lead, LeadActivity, LeadActivityType
from dealer_crm.models.user import DealerRole
from dealer_crm.services.auto_response import (
    AUTO_ACTIVITY_CONTENT,
    AutoResponseConfigService,
    AutoResponseProcessor,
    AutoResponseScheduler,
)
from dealer_crm.services.config_cache import ConfigCache
from dealer_crm.services.lead_service import LeadService
from dealer_crm.utils.time import as_utc

from conftest import FakeSink


async def ingest(dealer, clock, cache=None, **overrides):
    values = dict(name="Ana", email="ana@correo.cl", message="Hola")
    values.update(overrides)
    async with async_session_maker() as db:
        scheduler = AutoResponseScheduler(db, cache or ConfigCache(60), clock=clock)
        lead = await LeadService(db, scheduler=scheduler, clock=clock).create_lead(
            dealer.id, **values
        )
        await db.commit()
    return lead


async def job_for(lead_id):
    async with async_session_maker() as db:
        result = await db.execute(select(AutoResponseJob).where(AutoResponseJob.lead_id == lead_id))
        return result.scalar_one_or_none()


async def run_due(clock, sink):
    async with async_session_maker() as db:
        processor = AutoResponseProcessor(db, sink=sink, clock=clock)
        outcomes = [await processor.process(job_id) for job_id in await processor.due_job_ids()]
        await db.commit()
    return outcomes


async def reload(lead_id):
    async with async_session_maker() as db:
        return await db.get(Lead, lead_id)


@pytest.mark.asyncio
async def test_human_response_during_delay_suppresses_send(seed, clock):
    dealer = await seed.dealer()
    seller = await seed.member(dealer)
    await seed.member(dealer, role=DealerRole.OWNER)
    template = await seed.template(dealer)
    await seed.auto_response(dealer, template=template, delay_minutes=5)
    sink = FakeSink()

    lead = await ingest(dealer, clock)
    assert await run_due(clock, sink) == []

    clock.advance(minutes=2)
    async with async_session_maker() as db:
        await LeadService(db, clock=clock).add_activity(
            seller, lead.id, LeadActivityType.CALL, "Hablamos por teléfono"
        )
        await db.commit()
    human_response = clock()

    clock.advance(minutes=3)
    assert await run_due(clock, sink) == [AutoResponseJobStatus.SKIPPED.value]

    assert sink.sent == []
    assert as_utc((await reload(lead.id)).responded_at) == human_response
    job = await job_for(lead.id)
    assert job.error == "already_responded"
    assert job.attempts == 1


@pytest.mark.asyncio
async def test_due_job_sends_rendered_template(seed, clock):
    dealer = await seed.dealer(name="Autos del Sur")
    owner = await seed.member(dealer, role=DealerRole.OWNER)
    vehicle = await seed.vehicle(dealer, brand="Honda", model="Civic", price=10_000_000)
    template = await seed.template(
        dealer,
        content="Hola {nombre}, el {vehiculo} cuesta {vehiculo_precio}. {dealer_nombre}",
        subject="Tu consulta en {dealer_nombre}",
    )
    await seed.auto_response(dealer, template=template, delay_minutes=5)
    sink = FakeSink()

    lead = await ingest(dealer, clock, vehicle_id=vehicle.id)
    clock.advance(minutes=5)
    assert await run_due(clock, sink) == [AutoResponseJobStatus.SENT.value]

    assert len(sink.sent) == 1
    email = sink.sent[0]
    assert email["to"] == "ana@correo.cl"
    assert email["subject"] == "Tu consulta en Autos del Sur"
    assert "Hola Ana, el Honda Civic 2023 cuesta $ 10.000.000. Autos del Sur" in email["html"]

    assert as_utc((await reload(lead.id)).responded_at) == clock()
    async with async_session_maker() as db:
        activities = (
            await db.execute(select(LeadActivity).where(LeadActivity.lead_id == lead.id))
        ).scalars().all()
    assert len(activities) == 1
    assert activities[0].type == LeadActivityType.EMAIL.value
    assert activities[0].user_id == owner.id
    assert activities[0].content == AUTO_ACTIVITY_CONTENT

    # processed once; a second sweep finds nothing
    assert await run_due(clock, sink) == []


@pytest.mark.asyncio
async def test_missing_template_skips_but_stamps_response(seed, clock):
    dealer = await seed.dealer()
    await seed.auto_response(dealer, template=None, delay_minutes=0)
    sink = FakeSink()

    lead = await ingest(dealer, clock)
    assert await run_due(clock, sink) == [AutoResponseJobStatus.SKIPPED.value]

    assert sink.sent == []
    assert (await reload(lead.id)).responded_at is not None
    assert (await job_for(lead.id)).error == "no_template"


@pytest.mark.asyncio
async def test_deactivated_template_skips(seed, clock):
    dealer = await seed.dealer()
    template = await seed.template(dealer, is_active=False)
    await seed.auto_response(dealer, template=template, delay_minutes=0)

    lead = await ingest(dealer, clock)
    assert await run_due(clock, FakeSink()) == [AutoResponseJobStatus.SKIPPED.value]
    assert (await job_for(lead.id)).error == "template_unavailable"


@pytest.mark.asyncio
async def test_send_failure_is_recorded_and_not_retried(seed, clock):
    dealer = await seed.dealer()
    await seed.member(dealer, role=DealerRole.OWNER)
    template = await seed.template(dealer)
    await seed.auto_response(dealer, template=template, delay_minutes=0)
    sink = FakeSink(fail=True)

    lead = await ingest(dealer, clock)
    assert await run_due(clock, sink) == [AutoResponseJobStatus.FAILED.value]

    job = await job_for(lead.id)
    assert job.error == "smtp down"
    assert (await reload(lead.id)).responded_at is not None

    clock.advance(hours=1)
    assert await run_due(clock, FakeSink()) == []


@pytest.mark.asyncio
async def test_disabled_config_creates_no_job(seed, clock):
    dealer = await seed.dealer()
    template = await seed.template(dealer)
    await seed.auto_response(dealer, template=template, enabled=False)

    lead = await ingest(dealer, clock)
    assert await job_for(lead.id) is None

    no_config = await seed.dealer(name="Sin config")
    other = await ingest(no_config, clock, email="otra@correo.cl")
    assert await job_for(other.id) is None


@pytest.mark.asyncio
async def test_config_update_is_seen_by_next_lead(seed, clock):
    dealer = await seed.dealer()
    template = await seed.template(dealer)
    cache = ConfigCache(300)

    first = await ingest(dealer, clock, cache=cache)
    assert await job_for(first.id) is None

    async with async_session_maker() as db:
        settings = await AutoResponseConfigService(db, cache).update_config(
            dealer.id, enabled=True, email_template_id=template.id, delay_minutes=-4
        )
        await db.commit()
    assert settings.delay_minutes == 0

    second = await ingest(dealer, clock, cache=cache, email="otra@correo.cl")
    assert await job_for(second.id) is not None


@pytest.mark.asyncio
async def test_config_rejects_foreign_or_non_email_template(seed):
    dealer = await seed.dealer()
    other = await seed.dealer(name="Otra")
    foreign = await seed.template(other)
    whatsapp = await seed.template(dealer, channel=TemplateChannel.WHATSAPP)

    async with async_session_maker() as db:
        service = AutoResponseConfigService(db, ConfigCache(60))
        for template in (foreign, whatsapp):
            with pytest.raises(ValidationError):
                await service.update_config(
                    dealer.id, enabled=True, email_template_id=template.id, delay_minutes=5
                )


@pytest.mark.asyncio
async def test_job_can_only_be_claimed_once(seed, clock):
    dealer = await seed.dealer()
    await seed.auto_response(dealer, template=None, delay_minutes=0)
    lead = await ingest(dealer, clock)
    job = await job_for(lead.id)

    async with async_session_maker() as db:
        processor = AutoResponseProcessor(db, sink=FakeSink(), clock=clock)
        claimed = await processor.claim(job.id)
        assert claimed.status == AutoResponseJobStatus.PROCESSING.value
        assert await processor.claim(job.id) is None
        assert await processor.process(job.id) is None


@pytest.mark.asyncio
async def test_job_waits_for_full_delay(seed, clock):
    dealer = await seed.dealer()
    await seed.auto_response(dealer, template=None, delay_minutes=30)
    await ingest(dealer, clock)

    clock.advance(minutes=29)
    assert await run_due(clock, FakeSink()) == []
    clock.advance(minutes=1)
    assert await run_due(clock, FakeSink()) == [AutoResponseJobStatus.SKIPPED.value]
