import pytest

from backend.app.models.enums import GiveawayStatus
from backend.app.services.errors import (
    CapacityError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from backend.app.services.invite_service import process_invite
from backend.app.services.participant_service import get_participant, join_giveaway
from tests.factories import auth, join_all, make_active_giveaway


@pytest.mark.asyncio
async def test_invite_credits_both_sides(session):
    giveaway = await make_active_giveaway(
        session, invite_points_per_referral=2, invite_points_for_invitee=1
    )
    referrer = await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=2)

    credit = await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=2)
    assert credit.referrer_points == 2
    assert credit.invite_count == 1
    assert credit.invitee_points == 1


@pytest.mark.asyncio
async def test_invite_cannot_be_credited_twice(session):
    giveaway = await make_active_giveaway(session)
    referrer = await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    other = await join_giveaway(session, giveaway_id=giveaway.id, user_id=3)
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=2)

    await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=2)
    with pytest.raises(ConflictError):
        await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=2)
    with pytest.raises(ConflictError):
        await process_invite(session, invite_code=other.invite_code, invitee_user_id=2)

    refreshed = await get_participant(session, giveaway_id=giveaway.id, user_id=1)
    assert refreshed.invite_count == 1


@pytest.mark.asyncio
async def test_self_referral_rejected(session):
    giveaway = await make_active_giveaway(session)
    referrer = await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    with pytest.raises(ValidationError):
        await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=1)


@pytest.mark.asyncio
async def test_invitee_must_join_first(session):
    giveaway = await make_active_giveaway(session)
    referrer = await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    with pytest.raises(ValidationError):
        await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=2)


@pytest.mark.asyncio
async def test_unknown_code(session):
    with pytest.raises(NotFoundError):
        await process_invite(session, invite_code="NOPE1234", invitee_user_id=2)


@pytest.mark.asyncio
async def test_disabled_and_inactive(session):
    giveaway = await make_active_giveaway(session, invites_enabled=False)
    referrer = await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=2)
    with pytest.raises(ValidationError):
        await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=2)

    giveaway.status = GiveawayStatus.ended
    await session.flush()
    with pytest.raises(ForbiddenError):
        await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=2)


@pytest.mark.asyncio
async def test_invite_cap_enforced(session):
    giveaway = await make_active_giveaway(session, invite_cap=2)
    referrer = await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    await join_all(session, giveaway.id, [2, 3, 4])

    await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=2)
    await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=3)
    with pytest.raises(CapacityError):
        await process_invite(session, invite_code=referrer.invite_code, invitee_user_id=4)

    refreshed = await get_participant(session, giveaway_id=giveaway.id, user_id=1)
    assert refreshed.invite_count == 2
    assert refreshed.points == 2


@pytest.mark.asyncio
async def test_api_invite_errors(client, session):
    giveaway = await make_active_giveaway(session, invite_cap=1)
    referrer = await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    await join_all(session, giveaway.id, [2, 3])

    own = await client.post(
        "/api/invites", json={"invite_code": referrer.invite_code}, headers=auth(1)
    )
    assert own.status_code == 400

    ok = await client.post(
        "/api/invites", json={"invite_code": referrer.invite_code}, headers=auth(2)
    )
    assert ok.status_code == 200
    assert ok.json()["invite_count"] == 1

    repeat = await client.post(
        "/api/invites", json={"invite_code": referrer.invite_code}, headers=auth(2)
    )
    assert repeat.status_code == 409

    capped = await client.post(
        "/api/invites", json={"invite_code": referrer.invite_code}, headers=auth(3)
    )
    assert capped.status_code == 400
    assert capped.json()["error"]["kind"] == "capacity"

    unknown = await client.post("/api/invites", json={"invite_code": "zzz"}, headers=auth(3))
    assert unknown.status_code == 404
