import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import as_utc, utcnow
from backend.app.models.enums import GiveawayStatus
from backend.app.models.giveaway import Giveaway
from backend.app.models.participant import Participant
from backend.app.models.task import Task, TaskCompletion, TaskStart
from backend.app.services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from backend.app.services.participant_service import get_participant

logger = logging.getLogger(__name__)

TASK_FIELDS = frozenset(
    {"title", "description", "type", "points", "required", "min_duration_seconds"}
)


def _validate_task_values(values: dict[str, Any]) -> None:
    if "title" in values and not (values["title"] or "").strip():
        raise ValidationError("Task title is required")
    if values.get("points") is not None and values["points"] < 0:
        raise ValidationError("Task points must not be negative")
    if values.get("min_duration_seconds") is not None and values["min_duration_seconds"] < 0:
        raise ValidationError("Minimum duration must not be negative")


async def add_task(
    session: AsyncSession,
    *,
    giveaway_id: int,
    title: str,
    description: str = "",
    task_type: str = "custom",
    points: int = 1,
    required: bool = False,
    min_duration_seconds: int | None = None,
) -> Task:
    giveaway = await session.get(Giveaway, giveaway_id)
    if not giveaway:
        raise NotFoundError("Giveaway not found")
    _validate_task_values(
        {"title": title, "points": points, "min_duration_seconds": min_duration_seconds}
    )

    task = Task(
        giveaway_id=giveaway_id,
        type=task_type or "custom",
        title=title.strip(),
        description=description,
        points=points,
        required=required,
        min_duration_seconds=min_duration_seconds or None,
        is_retired=False,
        created_at=utcnow(),
    )
    session.add(task)
    await session.flush()
    return task


async def get_task(session: AsyncSession, *, giveaway_id: int, task_id: int) -> Task:
    task = await session.get(Task, task_id)
    if not task or task.giveaway_id != giveaway_id or task.is_retired:
        raise NotFoundError("Task not found")
    return task


async def list_tasks(
    session: AsyncSession, *, giveaway_id: int, include_retired: bool = False
) -> list[Task]:
    query = (
        select(Task)
        .where(Task.giveaway_id == giveaway_id)
        .order_by(Task.created_at.asc(), Task.id.asc())
    )
    if not include_retired:
        query = query.where(Task.is_retired.is_(False))
    return list((await session.execute(query)).scalars().all())


async def update_task(
    session: AsyncSession, *, giveaway_id: int, task_id: int, changes: dict[str, Any]
) -> Task:
    task = await get_task(session, giveaway_id=giveaway_id, task_id=task_id)
    unknown = set(changes) - TASK_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
    _validate_task_values(changes)

    for name, value in changes.items():
        if name == "title":
            value = value.strip()
        setattr(task, name, value)
    await session.flush()
    return task


async def remove_task(session: AsyncSession, *, giveaway_id: int, task_id: int) -> bool:
    """Remove a task definition, returning True when it was retired instead.

    Tasks that already have completions keep their row so awarded points stay
    traceable; they are only hidden and stop counting toward eligibility.
    """
    task = await get_task(session, giveaway_id=giveaway_id, task_id=task_id)
    completions = await session.execute(
        select(func.count()).select_from(TaskCompletion).where(TaskCompletion.task_id == task_id)
    )
    if completions.scalar():
        task.is_retired = True
        await session.flush()
        logger.info("Task %s retired, completions are kept", task_id)
        return True

    await session.execute(
        delete(TaskStart).where(TaskStart.giveaway_id == giveaway_id, TaskStart.task_id == task_id)
    )
    await session.delete(task)
    await session.flush()
    return False


async def _find_start(
    session: AsyncSession, *, giveaway_id: int, user_id: int, task_id: int
) -> TaskStart | None:
    result = await session.execute(
        select(TaskStart).where(
            TaskStart.user_id == user_id,
            TaskStart.task_id == task_id,
            TaskStart.giveaway_id == giveaway_id,
        )
    )
    return result.scalar_one_or_none()


async def start_task(
    session: AsyncSession, *, giveaway_id: int, user_id: int, task_id: int
) -> TaskStart:
    await get_task(session, giveaway_id=giveaway_id, task_id=task_id)
    key = {"giveaway_id": giveaway_id, "user_id": user_id, "task_id": task_id}
    marker = await _find_start(session, **key)
    now = utcnow()
    if marker:
        marker.started_at = now
        await session.flush()
        return marker

    marker = TaskStart(started_at=now, **key)
    session.add(marker)
    try:
        await session.flush()
    except IntegrityError:
        # a concurrent start inserted the marker first, restart its clock
        await session.rollback()
        marker = await _find_start(session, **key)
        marker.started_at = utcnow()
        await session.flush()
    return marker


async def _check_min_duration(
    session: AsyncSession, *, task: Task, user_id: int, now: datetime
) -> None:
    result = await session.execute(
        select(TaskStart.started_at).where(
            TaskStart.user_id == user_id,
            TaskStart.task_id == task.id,
            TaskStart.giveaway_id == task.giveaway_id,
        )
    )
    started_at = as_utc(result.scalar_one_or_none())
    if started_at is None:
        raise ValidationError("Start the task before completing it")
    elapsed = (now - started_at).total_seconds()
    if elapsed < task.min_duration_seconds:
        remaining = int(task.min_duration_seconds - elapsed) + 1
        raise ValidationError(f"Task completed too quickly, try again in {remaining}s")


async def complete_task(
    session: AsyncSession,
    *,
    giveaway_id: int,
    user_id: int,
    task_id: int,
    now: datetime | None = None,
) -> Participant:
    participant = await get_participant(session, giveaway_id=giveaway_id, user_id=user_id)
    if not participant:
        raise ForbiddenError("Not a participant")
    giveaway = await session.get(Giveaway, giveaway_id)
    if giveaway.status != GiveawayStatus.active:
        raise ForbiddenError("Giveaway is not active")
    task = await get_task(session, giveaway_id=giveaway_id, task_id=task_id)

    done = await session.execute(
        select(TaskCompletion.id).where(
            TaskCompletion.participant_id == participant.id,
            TaskCompletion.task_id == task_id,
        )
    )
    if done.first() is not None:
        raise ConflictError("Task already completed")

    now = now or utcnow()
    if task.min_duration_seconds:
        await _check_min_duration(session, task=task, user_id=user_id, now=now)

    session.add(
        TaskCompletion(
            participant_id=participant.id,
            task_id=task_id,
            points_awarded=task.points,
            completed_at=now,
        )
    )
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Task already completed") from exc

    await session.execute(
        update(Participant)
        .where(Participant.id == participant.id)
        .values(points=Participant.points + task.points)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(participant)
    logger.info(
        "User %s completed task %s in giveaway %s (+%s points)",
        user_id,
        task_id,
        giveaway_id,
        task.points,
    )
    return participant
