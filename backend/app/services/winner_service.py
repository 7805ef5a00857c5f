import logging
import random
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.models.enums import GiveawayStatus, ParticipantStatus, SelectionMode
from backend.app.models.giveaway import Giveaway
from backend.app.models.participant import Participant
from backend.app.models.user import User
from backend.app.models.winner import WinnerLog
from backend.app.services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from backend.app.services.participant_service import eligibility_clauses, get_participant

logger = logging.getLogger(__name__)

SELECTABLE_STATUSES = (GiveawayStatus.active, GiveawayStatus.ended)

_system_random = random.SystemRandom()


@dataclass
class WinnerResult:
    giveaway_id: int
    winner_id: int
    selection_mode: SelectionMode
    pool_size: int


@dataclass
class WinnerInfo:
    user_id: int
    username: str | None
    display_name: str | None
    selection_mode: SelectionMode | None


async def eligible_pool(session: AsyncSession, *, giveaway_id: int) -> list[int]:
    eligible, _ = await eligibility_clauses(session, giveaway_id=giveaway_id)
    rows = await session.execute(
        select(Participant.user_id)
        .where(Participant.giveaway_id == giveaway_id, eligible)
        .order_by(Participant.id)
    )
    return list(rows.scalars().all())


async def select_winner(
    session: AsyncSession,
    *,
    giveaway_id: int,
    mode: SelectionMode | str,
    admin_id: int | None,
    winner_user_id: int | None = None,
    rng: random.Random | None = None,
) -> WinnerResult:
    try:
        mode = SelectionMode(mode)
    except ValueError as exc:
        raise ValidationError("Invalid selection mode") from exc

    giveaway = (
        await session.execute(
            select(Giveaway)
            .where(Giveaway.id == giveaway_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not giveaway:
        raise NotFoundError("Giveaway not found")
    if giveaway.winner_id is not None:
        raise ConflictError("Winner already selected")
    if giveaway.status not in SELECTABLE_STATUSES:
        raise ForbiddenError(f"Cannot select a winner while giveaway is {giveaway.status.value}")

    if mode == SelectionMode.SYSTEM_RANDOM:
        pool = await eligible_pool(session, giveaway_id=giveaway_id)
        if not pool:
            raise ValidationError("No eligible participants")
        winner_id = (rng or _system_random).choice(pool)
        pool_size = len(pool)
        reason = "Automated random selection from eligible participants"
    else:
        if winner_user_id is None:
            raise ValidationError("Winner user ID required for admin selection")
        participant = await get_participant(
            session, giveaway_id=giveaway_id, user_id=winner_user_id
        )
        if not participant:
            raise NotFoundError("User is not a participant")
        winner_id = winner_user_id
        pool_size = 1
        reason = "Admin selection"

    now = utcnow()
    result = await session.execute(
        update(Giveaway)
        .where(
            Giveaway.id == giveaway_id,
            Giveaway.winner_id.is_(None),
            Giveaway.status.in_(SELECTABLE_STATUSES),
        )
        .values(
            status=GiveawayStatus.winner_selected,
            winner_id=winner_id,
            winner_selection_mode=mode,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise ConflictError("Winner already selected")

    await session.execute(
        update(Participant)
        .where(Participant.giveaway_id == giveaway_id, Participant.user_id == winner_id)
        .values(status=ParticipantStatus.winner)
        .execution_options(synchronize_session="fetch")
    )
    await session.execute(
        update(Participant)
        .where(Participant.giveaway_id == giveaway_id, Participant.user_id != winner_id)
        .values(status=ParticipantStatus.not_selected)
        .execution_options(synchronize_session="fetch")
    )
    session.add(
        WinnerLog(
            giveaway_id=giveaway_id,
            winner_user_id=winner_id,
            selection_mode=mode,
            selected_by=admin_id,
            reason=reason,
            pool_size=pool_size,
            selected_at=now,
        )
    )
    await session.flush()
    await session.refresh(giveaway)
    logger.info(
        "Giveaway %s winner %s selected by %s (%s, pool %s)",
        giveaway_id,
        winner_id,
        admin_id,
        mode.value,
        pool_size,
    )
    return WinnerResult(
        giveaway_id=giveaway_id,
        winner_id=winner_id,
        selection_mode=mode,
        pool_size=pool_size,
    )


async def get_winner_info(session: AsyncSession, *, giveaway_id: int) -> WinnerInfo | None:
    giveaway = await session.get(Giveaway, giveaway_id)
    if not giveaway or giveaway.winner_id is None:
        return None
    user = await session.get(User, giveaway.winner_id)
    return WinnerInfo(
        user_id=giveaway.winner_id,
        username=user.username if user else None,
        display_name=user.display_name if user else None,
        selection_mode=giveaway.winner_selection_mode,
    )
