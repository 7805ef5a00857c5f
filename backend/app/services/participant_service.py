import logging
import secrets
from dataclasses import dataclass, field

from sqlalchemy import String, and_, cast, false, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from backend.app.core.config import settings
from backend.app.core.time import utcnow
from backend.app.models.enums import GiveawayStatus, ParticipantStatus
from backend.app.models.giveaway import Giveaway
from backend.app.models.participant import Participant
from backend.app.models.task import Task, TaskCompletion
from backend.app.models.user import User
from backend.app.services.errors import ConflictError, ForbiddenError, NotFoundError
from backend.app.services.user_service import get_users, public_name

logger = logging.getLogger(__name__)

INVITE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
INVITE_CODE_ATTEMPTS = 5


@dataclass
class ParticipationStatus:
    joined: bool
    status: ParticipantStatus | None = None
    points: int = 0
    invite_code: str | None = None
    invite_count: int = 0
    completed_tasks: list[int] = field(default_factory=list)
    total_tasks: int = 0
    required_tasks_completed: bool = False


@dataclass
class ParticipantRow:
    participant: Participant
    user: User | None
    status: ParticipantStatus


@dataclass
class ParticipationHistory:
    participant: Participant
    status: ParticipantStatus
    giveaway: Giveaway
    winner_name: str | None


def generate_invite_code(length: int | None = None) -> str:
    size = length or settings.invite_code_length
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(size))


def effective_status(
    participant: Participant, completed_task_ids: set[int], required_task_ids: set[int]
) -> ParticipantStatus:
    if participant.status != ParticipantStatus.joined:
        return participant.status
    if required_task_ids <= completed_task_ids:
        return ParticipantStatus.eligible
    return ParticipantStatus.joined


async def required_task_ids(session: AsyncSession, *, giveaway_id: int) -> set[int]:
    rows = await session.execute(
        select(Task.id).where(
            Task.giveaway_id == giveaway_id,
            Task.required.is_(True),
            Task.is_retired.is_(False),
        )
    )
    return set(rows.scalars().all())


async def completed_task_ids(session: AsyncSession, *, participant_id: int) -> set[int]:
    rows = await session.execute(
        select(TaskCompletion.task_id).where(TaskCompletion.participant_id == participant_id)
    )
    return set(rows.scalars().all())


async def eligibility_clauses(
    session: AsyncSession, *, giveaway_id: int
) -> tuple[ColumnElement[bool], ColumnElement[bool]]:
    """Return (eligible, joined-but-not-eligible) filters on Participant.

    A participant is eligible when its stored status is still ``joined`` and
    every required, non-retired task of the giveaway has a completion row.
    """
    required = await required_task_ids(session, giveaway_id=giveaway_id)
    joined = Participant.status == ParticipantStatus.joined
    if not required:
        return joined, false()
    completed_all = (
        select(TaskCompletion.participant_id)
        .where(TaskCompletion.task_id.in_(sorted(required)))
        .group_by(TaskCompletion.participant_id)
        .having(func.count(TaskCompletion.task_id) == len(required))
    )
    return (
        and_(joined, Participant.id.in_(completed_all)),
        and_(joined, Participant.id.not_in(completed_all)),
    )


async def get_participant(
    session: AsyncSession, *, giveaway_id: int, user_id: int
) -> Participant | None:
    result = await session.execute(
        select(Participant).where(
            Participant.giveaway_id == giveaway_id, Participant.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def get_participant_by_invite_code(
    session: AsyncSession, *, invite_code: str
) -> Participant | None:
    result = await session.execute(
        select(Participant).where(Participant.invite_code == invite_code)
    )
    return result.scalar_one_or_none()


async def join_giveaway(
    session: AsyncSession, *, giveaway_id: int, user_id: int
) -> Participant:
    giveaway = await session.get(Giveaway, giveaway_id)
    if not giveaway:
        raise NotFoundError("Giveaway not found")
    if giveaway.status != GiveawayStatus.active:
        raise ForbiddenError("Giveaway is not open for entries")

    existing = await get_participant(session, giveaway_id=giveaway_id, user_id=user_id)
    if existing:
        raise ConflictError("Already joined this giveaway")

    for attempt in range(1, INVITE_CODE_ATTEMPTS + 1):
        participant = Participant(
            giveaway_id=giveaway_id,
            user_id=user_id,
            status=ParticipantStatus.joined,
            points=0,
            invite_code=generate_invite_code(),
            invite_count=0,
            joined_at=utcnow(),
        )
        session.add(participant)
        try:
            await session.flush()
            break
        except IntegrityError as exc:
            await session.rollback()
            if await get_participant(session, giveaway_id=giveaway_id, user_id=user_id):
                raise ConflictError("Already joined this giveaway") from exc
            logger.warning("Invite code collision on join attempt %s", attempt)
    else:
        raise ConflictError("Could not allocate an invite code, please retry")
    logger.info("User %s joined giveaway %s", user_id, giveaway_id)
    return participant


async def participation_status(
    session: AsyncSession, *, giveaway_id: int, user_id: int
) -> ParticipationStatus:
    participant = await get_participant(session, giveaway_id=giveaway_id, user_id=user_id)
    if not participant:
        return ParticipationStatus(joined=False)

    total_tasks = await session.execute(
        select(func.count())
        .select_from(Task)
        .where(Task.giveaway_id == giveaway_id, Task.is_retired.is_(False))
    )
    required = await required_task_ids(session, giveaway_id=giveaway_id)
    completed = await completed_task_ids(session, participant_id=participant.id)
    return ParticipationStatus(
        joined=True,
        status=effective_status(participant, completed, required),
        points=participant.points,
        invite_code=participant.invite_code,
        invite_count=participant.invite_count,
        completed_tasks=sorted(completed),
        total_tasks=total_tasks.scalar() or 0,
        required_tasks_completed=required <= completed,
    )


async def list_participants(
    session: AsyncSession,
    *,
    giveaway_id: int,
    status: ParticipantStatus | None = None,
    search: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[ParticipantRow]:
    query = (
        select(Participant, User)
        .outerjoin(User, User.user_id == Participant.user_id)
        .where(Participant.giveaway_id == giveaway_id)
        .order_by(Participant.joined_at.desc(), Participant.id.desc())
    )
    if status is not None:
        eligible, joined_only = await eligibility_clauses(session, giveaway_id=giveaway_id)
        if status == ParticipantStatus.eligible:
            query = query.where(eligible)
        elif status == ParticipantStatus.joined:
            query = query.where(joined_only)
        else:
            query = query.where(Participant.status == status)
    if search:
        like = f"%{search.strip()}%"
        query = query.where(
            or_(
                User.username.ilike(like),
                User.display_name.ilike(like),
                cast(Participant.user_id, String).ilike(like),
            )
        )
    query = query.offset(offset).limit(limit or settings.default_page_size)
    rows = (await session.execute(query)).all()
    if not rows:
        return []

    required = await required_task_ids(session, giveaway_id=giveaway_id)
    completed: dict[int, set[int]] = {}
    if required:
        completion_rows = await session.execute(
            select(TaskCompletion.participant_id, TaskCompletion.task_id).where(
                TaskCompletion.participant_id.in_([row[0].id for row in rows]),
                TaskCompletion.task_id.in_(sorted(required)),
            )
        )
        for participant_id, task_id in completion_rows.all():
            completed.setdefault(participant_id, set()).add(task_id)
    return [
        ParticipantRow(
            participant=participant,
            user=user,
            status=effective_status(participant, completed.get(participant.id, set()), required),
        )
        for participant, user in rows
    ]


async def count_participants(session: AsyncSession, *, giveaway_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Participant)
        .where(Participant.giveaway_id == giveaway_id)
    )
    return result.scalar() or 0


async def get_user_giveaways(
    session: AsyncSession, *, user_id: int
) -> list[ParticipationHistory]:
    rows = (
        await session.execute(
            select(Participant, Giveaway)
            .join(Giveaway, Giveaway.id == Participant.giveaway_id)
            .where(Participant.user_id == user_id)
            .order_by(Participant.joined_at.desc(), Participant.id.desc())
        )
    ).all()
    winners = await get_users(
        session, [giveaway.winner_id for _, giveaway in rows if giveaway.winner_id]
    )
    history = []
    for participant, giveaway in rows:
        required = await required_task_ids(session, giveaway_id=giveaway.id)
        completed = await completed_task_ids(session, participant_id=participant.id)
        winner_name = None
        if giveaway.winner_id is not None:
            winner_name = public_name(winners.get(giveaway.winner_id), fallback="Winner")
        history.append(
            ParticipationHistory(
                participant=participant,
                status=effective_status(participant, completed, required),
                giveaway=giveaway,
                winner_name=winner_name,
            )
        )
    return history
