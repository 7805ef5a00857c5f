import pytest

from backend.app.services.errors import ForbiddenError, ValidationError
from backend.app.services.shipping_service import get_shipping, submit_shipping
from backend.app.services.winner_service import select_winner
from tests.factories import ADMIN_ID, join_all, make_active_giveaway

ADDRESS = {
    "full_name": "Jamie Doe",
    "address": "221B Baker Street",
    "city": "London",
    "state": "Greater London",
    "pincode": "NW16XE",
    "country": "UK",
    "phone": "+440000000",
}


async def _giveaway_with_winner(session, winner_user_id=1):
    giveaway = await make_active_giveaway(session)
    await join_all(session, giveaway.id, [1, 2])
    await select_winner(
        session,
        giveaway_id=giveaway.id,
        mode="ADMIN_RANDOM",
        admin_id=ADMIN_ID,
        winner_user_id=winner_user_id,
    )
    await session.commit()
    return giveaway


@pytest.mark.asyncio
async def test_only_winner_submits(session):
    giveaway = await _giveaway_with_winner(session)
    with pytest.raises(ForbiddenError):
        await submit_shipping(session, giveaway_id=giveaway.id, user_id=2, fields=ADDRESS)
    with pytest.raises(ForbiddenError):
        await submit_shipping(session, giveaway_id=giveaway.id, user_id=99, fields=ADDRESS)

    record = await submit_shipping(session, giveaway_id=giveaway.id, user_id=1, fields=ADDRESS)
    assert record.city == "London"


@pytest.mark.asyncio
async def test_missing_fields_listed(session):
    giveaway = await _giveaway_with_winner(session)
    partial = dict(ADDRESS, phone="  ", pincode="")
    with pytest.raises(ValidationError) as exc_info:
        await submit_shipping(session, giveaway_id=giveaway.id, user_id=1, fields=partial)
    assert "pincode" in exc_info.value.message
    assert "phone" in exc_info.value.message


@pytest.mark.asyncio
async def test_resubmit_updates_in_place(session):
    giveaway = await _giveaway_with_winner(session)
    first = await submit_shipping(session, giveaway_id=giveaway.id, user_id=1, fields=ADDRESS)
    second = await submit_shipping(
        session, giveaway_id=giveaway.id, user_id=1, fields=dict(ADDRESS, city="Leeds")
    )
    assert second.id == first.id
    assert second.city == "Leeds"


@pytest.mark.asyncio
async def test_read_gated_to_winner_and_admin(session):
    giveaway = await _giveaway_with_winner(session)
    assert (
        await get_shipping(session, giveaway_id=giveaway.id, requester_user_id=1) is None
    )
    await submit_shipping(session, giveaway_id=giveaway.id, user_id=1, fields=ADDRESS)

    with pytest.raises(ForbiddenError):
        await get_shipping(session, giveaway_id=giveaway.id, requester_user_id=2)
    admin_view = await get_shipping(
        session, giveaway_id=giveaway.id, requester_user_id=ADMIN_ID, is_admin=True
    )
    assert admin_view.full_name == "Jamie Doe"
