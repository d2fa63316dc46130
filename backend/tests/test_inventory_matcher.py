from types import SimpleNamespace

import pytest
from sqlalchemy import select

from dealer_crm.database import async_session_maker
from dealer_crm.errors import NotFoundError
from dealer_crm.models.catalog import ListingStatus
from dealer_crm.models.lead import LeadStatus
from dealer_crm.models.notification import Notification, NotificationType
from dealer_crm.models.user import DealerRole
from dealer_crm.services.inventory_matcher import (
    InventoryMatcher,
    MatchPreferences,
    score_vehicle,
)


def fake_vehicle(**overrides):
    values = dict(
        brand_id=1,
        model_id=10,
        price=12_000_000,
        year=2021,
        brand=SimpleNamespace(name="Toyota"),
        model=SimpleNamespace(name="Corolla"),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_score_is_additive():
    prefs = MatchPreferences(
        brand_ids=[1], model_ids=[10], min_price=10_000_000, max_price=15_000_000,
        min_year=2020, max_year=2022,
    )
    score, reasons = score_vehicle(fake_vehicle(), prefs)
    assert score == 100
    assert reasons == ["Marca: Toyota", "Modelo: Corolla", "Dentro del presupuesto", "Año 2021"]


def test_unset_criteria_never_score():
    assert score_vehicle(fake_vehicle(), MatchPreferences()) == (0, [])
    assert score_vehicle(fake_vehicle(), MatchPreferences(max_price=20_000_000)) == (
        20,
        ["Dentro del presupuesto"],
    )


@pytest.mark.asyncio
async def test_brand_only_preference_scores_thirty(seed):
    dealer = await seed.dealer()
    corolla = await seed.vehicle(dealer, brand="Toyota", model="Corolla")
    await seed.vehicle(dealer, brand="Mazda", model="3")
    lead = await seed.lead(dealer)
    await seed.preferences(lead, brand_ids=[corolla.brand_id])

    async with async_session_maker() as db:
        matches = await InventoryMatcher(db).match_for_lead(dealer.id, lead.id)

    assert [(m.id, m.match_score) for m in matches] == [(corolla.id, 30)]
    assert matches[0].match_reasons == ["Marca: Toyota"]


@pytest.mark.asyncio
async def test_zero_score_candidates_are_dropped(seed):
    dealer = await seed.dealer()
    await seed.vehicle(dealer)
    lead = await seed.lead(dealer)
    # hard filter only; nothing can score
    await seed.preferences(lead, vehicle_type="CAR")

    async with async_session_maker() as db:
        assert await InventoryMatcher(db).match_for_lead(dealer.id, lead.id) == []


@pytest.mark.asyncio
async def test_lead_without_preferences_matches_nothing(seed):
    dealer = await seed.dealer()
    other = await seed.dealer(name="Otra")
    await seed.vehicle(dealer)
    lead = await seed.lead(dealer)

    async with async_session_maker() as db:
        matcher = InventoryMatcher(db)
        assert await matcher.match_for_lead(dealer.id, lead.id) == []
        with pytest.raises(NotFoundError):
            await matcher.match_for_lead(other.id, lead.id)


@pytest.mark.asyncio
async def test_ties_keep_newest_first_and_respect_limit(seed):
    dealer = await seed.dealer()
    oldest = await seed.vehicle(dealer, brand="Toyota", model="Corolla", price=9_000_000)
    brand_id = oldest.brand_id
    middle = await seed.vehicle(dealer, brand_id=brand_id, model="Yaris", price=9_500_000)
    newest = await seed.vehicle(dealer, brand_id=brand_id, model_id=oldest.model_id, price=8_000_000)
    await seed.vehicle(dealer, brand_id=brand_id, model="RAV4", price=25_000_000)
    await seed.vehicle(dealer, brand_id=brand_id, status=ListingStatus.SOLD, price=5_000_000)
    lead = await seed.lead(dealer)
    await seed.preferences(lead, brand_ids=[brand_id], max_price=10_000_000)

    async with async_session_maker() as db:
        matcher = InventoryMatcher(db)
        everything = await matcher.match_for_lead(dealer.id, lead.id, limit=5)
        top_two = await matcher.match_for_lead(dealer.id, lead.id, limit=2)

    assert [m.id for m in everything] == [newest.id, middle.id, oldest.id]
    assert {m.match_score for m in everything} == {50}
    assert [m.id for m in top_two] == [newest.id, middle.id]


@pytest.mark.asyncio
async def test_find_matching_leads_skips_closed_leads(seed):
    dealer = await seed.dealer()
    vehicle = await seed.vehicle(dealer, price=12_000_000)

    by_brand = await seed.lead(dealer, email="a@correo.cl")
    await seed.preferences(by_brand, brand_ids=[vehicle.brand_id])
    by_budget = await seed.lead(dealer, email="b@correo.cl", status=LeadStatus.QUALIFIED)
    await seed.preferences(by_budget, min_price=10_000_000, max_price=13_000_000)
    open_ended = await seed.lead(dealer, email="c@correo.cl")
    await seed.preferences(open_ended, min_price=10_000_000)
    converted = await seed.lead(dealer, email="d@correo.cl", status=LeadStatus.CONVERTED)
    await seed.preferences(converted, brand_ids=[vehicle.brand_id])

    async with async_session_maker() as db:
        lead_ids = await InventoryMatcher(db).find_matching_leads(dealer.id, vehicle)

    assert lead_ids == [by_brand.id, by_budget.id]


@pytest.mark.asyncio
async def test_published_vehicle_notifies_assignee_or_managers(seed):
    dealer = await seed.dealer()
    owner = await seed.member(dealer, role=DealerRole.OWNER)
    manager = await seed.member(dealer, role=DealerRole.MANAGER)
    seller = await seed.member(dealer)
    vehicle = await seed.vehicle(dealer)

    assigned = await seed.lead(dealer, email="a@correo.cl", assigned_to=seller)
    await seed.preferences(assigned, brand_ids=[vehicle.brand_id])
    unassigned = await seed.lead(dealer, email="b@correo.cl")
    await seed.preferences(unassigned, model_ids=[vehicle.model_id])

    async with async_session_maker() as db:
        result = await InventoryMatcher(db).notify_vehicle_published(vehicle.id)
        await db.commit()

    assert result == {"matches_found": 2, "notified": 2}
    async with async_session_maker() as db:
        rows = (
            await db.execute(
                select(Notification).where(
                    Notification.type == NotificationType.INVENTORY_MATCH.value
                )
            )
        ).scalars().all()
    by_user = {}
    for row in rows:
        by_user.setdefault(row.user_id, []).append(row.metadata_["leadId"])
    assert by_user == {
        seller.id: [assigned.id],
        owner.id: [unassigned.id],
        manager.id: [unassigned.id],
    }


@pytest.mark.asyncio
async def test_unknown_vehicle_is_not_found():
    async with async_session_maker() as db:
        with pytest.raises(NotFoundError):
            await InventoryMatcher(db).notify_vehicle_published(999)
