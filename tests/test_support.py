from decimal import Decimal

import pytest

from backend.app.services.errors import NotFoundError, ValidationError
from backend.app.services.support_service import (
    get_donation_stats,
    get_support_totals,
    list_supporters,
    record_support,
)
from backend.app.services.user_service import upsert_user
from tests.factories import admin_auth, auth, make_active_giveaway


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount", [0, -5, "abc", "NaN", "Infinity", "1e30", "1e11", "10000000000.00"]
)
async def test_invalid_amount_rejected(session, amount):
    giveaway = await make_active_giveaway(session)
    with pytest.raises(ValidationError):
        await record_support(session, giveaway_id=giveaway.id, user_id=1, amount=amount)


@pytest.mark.asyncio
async def test_support_requires_giveaway(session):
    with pytest.raises(NotFoundError):
        await record_support(session, giveaway_id=404, user_id=1, amount=5)


@pytest.mark.asyncio
async def test_totals_sum_all_records(session):
    giveaway = await make_active_giveaway(session)
    empty = await get_support_totals(session, giveaway_id=giveaway.id)
    assert empty.total_amount == Decimal("0.00")
    assert empty.supporter_count == 0

    await record_support(session, giveaway_id=giveaway.id, user_id=1, amount="10.50")
    await record_support(session, giveaway_id=giveaway.id, user_id=1, amount=4)
    await record_support(session, giveaway_id=giveaway.id, user_id=2, amount=Decimal("0.5"))
    await session.commit()

    totals = await get_support_totals(session, giveaway_id=giveaway.id)
    assert totals.total_amount == Decimal("15.00")
    assert totals.supporter_count == 3


@pytest.mark.asyncio
async def test_anonymous_supporters_hidden_from_public(session):
    giveaway = await make_active_giveaway(session)
    await upsert_user(session, user_id=1, username="dana")
    await record_support(
        session,
        giveaway_id=giveaway.id,
        user_id=1,
        amount=5,
        donor_email="dana@example.com",
        is_anonymous=True,
    )
    await record_support(
        session, giveaway_id=giveaway.id, user_id=2, amount=3, donor_name="Eve"
    )
    await session.commit()

    public = await list_supporters(session, giveaway_id=giveaway.id)
    names = {entry.display_name for entry in public}
    assert names == {"Anonymous", "Eve"}
    assert all(entry.user_id is None and entry.donor_email is None for entry in public)

    admin = await list_supporters(session, giveaway_id=giveaway.id, is_admin=True)
    hidden = next(entry for entry in admin if entry.is_anonymous)
    assert hidden.user_id == 1
    assert hidden.display_name == "dana"
    assert hidden.donor_email == "dana@example.com"


@pytest.mark.asyncio
async def test_donation_stats_sorted_by_amount(session):
    small = await make_active_giveaway(session, title="Small")
    large = await make_active_giveaway(session, title="Large")
    await record_support(session, giveaway_id=small.id, user_id=1, amount=2)
    await record_support(session, giveaway_id=large.id, user_id=1, amount=20)
    await record_support(session, giveaway_id=large.id, user_id=2, amount=5)
    await session.commit()

    stats = await get_donation_stats(session)
    assert stats.grand_total == Decimal("27.00")
    assert stats.grand_count == 3
    assert [item.title for item in stats.per_giveaway] == ["Large", "Small"]


@pytest.mark.asyncio
async def test_api_support(client, session):
    giveaway = await make_active_giveaway(session)
    bad = await client.post(
        f"/api/giveaways/{giveaway.id}/support", json={"amount": "0"}, headers=auth(1)
    )
    assert bad.status_code == 400
    assert bad.json()["error"]["message"] == "Valid amount required"

    huge = await client.post(
        f"/api/giveaways/{giveaway.id}/support", json={"amount": "1e30"}, headers=auth(1)
    )
    assert huge.status_code == 400
    assert huge.json()["error"]["kind"] == "validation"

    created = await client.post(
        f"/api/giveaways/{giveaway.id}/support",
        json={"amount": "12.5", "is_anonymous": True},
        headers=auth(1),
    )
    assert created.status_code == 201

    summary = await client.get(f"/api/giveaways/{giveaway.id}/support")
    body = summary.json()
    assert Decimal(body["total_amount"]) == Decimal("12.50")
    assert body["supporter_count"] == 1
    assert body["supporters"][0]["display_name"] == "Anonymous"
    assert body["supporters"][0]["user_id"] is None

    denied = await client.get("/api/support/stats", headers=auth(1))
    assert denied.status_code == 403
    stats = await client.get("/api/support/stats", headers=admin_auth())
    assert stats.json()["grand_count"] == 1


@pytest.mark.asyncio
async def test_largest_amount_accepted(session):
    giveaway = await make_active_giveaway(session)
    support = await record_support(
        session, giveaway_id=giveaway.id, user_id=1, amount="9999999999.99"
    )
    assert support.amount == Decimal("9999999999.99")
