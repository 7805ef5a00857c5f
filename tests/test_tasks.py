from datetime import timedelta

import pytest
from sqlalchemy import func, select

from backend.app.core.time import utcnow
from backend.app.models.enums import GiveawayStatus, ParticipantStatus
from backend.app.models.task import TaskStart
from backend.app.services import task_service
from backend.app.services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from backend.app.services.participant_service import join_giveaway, participation_status
from backend.app.services.task_service import (
    add_task,
    complete_task,
    list_tasks,
    remove_task,
    start_task,
    update_task,
)
from tests.factories import admin_auth, auth, make_active_giveaway


@pytest.mark.asyncio
async def test_complete_awards_points_once(session):
    giveaway = await make_active_giveaway(session)
    task = await add_task(session, giveaway_id=giveaway.id, title="Like post", points=5)
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)

    participant = await complete_task(
        session, giveaway_id=giveaway.id, user_id=1, task_id=task.id
    )
    assert participant.points == 5
    with pytest.raises(ConflictError):
        await complete_task(session, giveaway_id=giveaway.id, user_id=1, task_id=task.id)
    state = await participation_status(session, giveaway_id=giveaway.id, user_id=1)
    assert state.points == 5


@pytest.mark.asyncio
async def test_complete_requires_participant(session):
    giveaway = await make_active_giveaway(session)
    task = await add_task(session, giveaway_id=giveaway.id, title="Like post")
    with pytest.raises(ForbiddenError):
        await complete_task(session, giveaway_id=giveaway.id, user_id=1, task_id=task.id)


@pytest.mark.asyncio
async def test_complete_unknown_or_foreign_task(session):
    first = await make_active_giveaway(session, title="First")
    second = await make_active_giveaway(session, title="Second")
    foreign = await add_task(session, giveaway_id=second.id, title="Elsewhere")
    await join_giveaway(session, giveaway_id=first.id, user_id=1)
    with pytest.raises(NotFoundError):
        await complete_task(session, giveaway_id=first.id, user_id=1, task_id=foreign.id)
    with pytest.raises(NotFoundError):
        await complete_task(session, giveaway_id=first.id, user_id=1, task_id=12345)


@pytest.mark.asyncio
async def test_complete_blocked_once_giveaway_ended(session):
    giveaway = await make_active_giveaway(session)
    task = await add_task(session, giveaway_id=giveaway.id, title="Like post")
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    giveaway.status = GiveawayStatus.ended
    await session.flush()
    with pytest.raises(ForbiddenError):
        await complete_task(session, giveaway_id=giveaway.id, user_id=1, task_id=task.id)


@pytest.mark.asyncio
async def test_min_duration_needs_start_marker(session):
    giveaway = await make_active_giveaway(session)
    task = await add_task(
        session, giveaway_id=giveaway.id, title="Watch video", min_duration_seconds=30
    )
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)

    with pytest.raises(ValidationError):
        await complete_task(session, giveaway_id=giveaway.id, user_id=1, task_id=task.id)

    marker = await start_task(session, giveaway_id=giveaway.id, user_id=1, task_id=task.id)
    with pytest.raises(ValidationError):
        await complete_task(
            session,
            giveaway_id=giveaway.id,
            user_id=1,
            task_id=task.id,
            now=marker.started_at + timedelta(seconds=10),
        )

    participant = await complete_task(
        session,
        giveaway_id=giveaway.id,
        user_id=1,
        task_id=task.id,
        now=utcnow() + timedelta(seconds=31),
    )
    assert participant.points == 1


@pytest.mark.asyncio
async def test_required_tasks_drive_eligibility(session):
    giveaway = await make_active_giveaway(session)
    follow = await add_task(session, giveaway_id=giveaway.id, title="Follow", required=True)
    share = await add_task(session, giveaway_id=giveaway.id, title="Share", required=True)
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)

    await complete_task(session, giveaway_id=giveaway.id, user_id=1, task_id=follow.id)
    state = await participation_status(session, giveaway_id=giveaway.id, user_id=1)
    assert state.status == ParticipantStatus.joined

    await complete_task(session, giveaway_id=giveaway.id, user_id=1, task_id=share.id)
    state = await participation_status(session, giveaway_id=giveaway.id, user_id=1)
    assert state.status == ParticipantStatus.eligible
    assert state.required_tasks_completed is True


@pytest.mark.asyncio
async def test_remove_task_retires_when_completed(session):
    giveaway = await make_active_giveaway(session)
    done = await add_task(session, giveaway_id=giveaway.id, title="Done", required=True)
    unused = await add_task(session, giveaway_id=giveaway.id, title="Unused", required=True)
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=1)
    await complete_task(session, giveaway_id=giveaway.id, user_id=1, task_id=done.id)

    assert await remove_task(session, giveaway_id=giveaway.id, task_id=done.id) is True
    assert await remove_task(session, giveaway_id=giveaway.id, task_id=unused.id) is False

    assert await list_tasks(session, giveaway_id=giveaway.id) == []
    retired = await list_tasks(session, giveaway_id=giveaway.id, include_retired=True)
    assert [task.id for task in retired] == [done.id]

    state = await participation_status(session, giveaway_id=giveaway.id, user_id=1)
    assert state.points == 1
    assert state.status == ParticipantStatus.eligible


@pytest.mark.asyncio
async def test_update_task_validates_fields(session):
    giveaway = await make_active_giveaway(session)
    task = await add_task(session, giveaway_id=giveaway.id, title="Follow")
    updated = await update_task(
        session,
        giveaway_id=giveaway.id,
        task_id=task.id,
        changes={"title": " Follow us ", "points": 4, "required": True},
    )
    assert updated.title == "Follow us"
    assert updated.points == 4
    with pytest.raises(ValidationError):
        await update_task(
            session, giveaway_id=giveaway.id, task_id=task.id, changes={"points": -1}
        )
    with pytest.raises(ValidationError):
        await update_task(
            session, giveaway_id=giveaway.id, task_id=task.id, changes={"is_retired": True}
        )


@pytest.mark.asyncio
async def test_api_task_flow(client, session):
    giveaway = await make_active_giveaway(session)
    created = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks",
        json={"title": "Join channel", "type": "telegram", "points": 2, "required": True},
        headers=admin_auth(),
    )
    assert created.status_code == 201
    task_id = created.json()["id"]
    assert created.json()["type"] == "telegram"

    denied = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks", json={"title": "x"}, headers=auth(2)
    )
    assert denied.status_code == 403

    not_joined = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks/{task_id}/complete", headers=auth(2)
    )
    assert not_joined.status_code == 403

    await client.post(f"/api/giveaways/{giveaway.id}/join", headers=auth(2))
    done = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks/{task_id}/complete", headers=auth(2)
    )
    assert done.status_code == 200
    assert done.json()["points"] == 2
    assert done.json()["status"] == "eligible"

    again = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks/{task_id}/complete", headers=auth(2)
    )
    assert again.status_code == 409

    missing = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks/9999/complete", headers=auth(2)
    )
    assert missing.status_code == 404

    removed = await client.delete(
        f"/api/giveaways/{giveaway.id}/tasks/{task_id}", headers=admin_auth()
    )
    assert removed.json() == {"retired": True}
    listed = await client.get(f"/api/giveaways/{giveaway.id}/tasks")
    assert listed.json() == []


@pytest.mark.asyncio
async def test_api_start_then_complete_too_fast(client, session):
    giveaway = await make_active_giveaway(session)
    task = await add_task(
        session, giveaway_id=giveaway.id, title="Watch", min_duration_seconds=600
    )
    await join_giveaway(session, giveaway_id=giveaway.id, user_id=3)
    await session.commit()

    started = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks/{task.id}/start", headers=auth(3)
    )
    assert started.status_code == 200
    early = await client.post(
        f"/api/giveaways/{giveaway.id}/tasks/{task.id}/complete", headers=auth(3)
    )
    assert early.status_code == 400
    assert early.json()["error"]["kind"] == "validation"


@pytest.mark.asyncio
async def test_start_task_recovers_from_duplicate_insert(session, monkeypatch):
    giveaway = await make_active_giveaway(session)
    task = await add_task(
        session, giveaway_id=giveaway.id, title="Watch", min_duration_seconds=30
    )
    first = await start_task(session, giveaway_id=giveaway.id, user_id=4, task_id=task.id)
    await session.commit()
    first_id = first.id

    real_find = task_service._find_start
    calls = []

    async def stale_find(session, **key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return await real_find(session, **key)

    monkeypatch.setattr(task_service, "_find_start", stale_find)
    marker = await start_task(session, giveaway_id=giveaway.id, user_id=4, task_id=task.id)
    await session.commit()

    assert marker.id == first_id
    assert len(calls) == 2
    count = await session.execute(select(func.count()).select_from(TaskStart))
    assert count.scalar() == 1
