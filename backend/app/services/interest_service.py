from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.models.enums import GiveawayStatus
from backend.app.models.giveaway import Giveaway
from backend.app.models.interest import Interest
from backend.app.services.errors import ConflictError, NotFoundError, ValidationError


@dataclass
class InterestState:
    interested: bool
    count: int


async def _count(session: AsyncSession, giveaway_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Interest).where(Interest.giveaway_id == giveaway_id)
    )
    return result.scalar() or 0


async def _get_interest(
    session: AsyncSession, *, giveaway_id: int, user_id: int
) -> Interest | None:
    result = await session.execute(
        select(Interest).where(Interest.giveaway_id == giveaway_id, Interest.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def toggle_interest(
    session: AsyncSession, *, giveaway_id: int, user_id: int
) -> InterestState:
    giveaway = await session.get(Giveaway, giveaway_id)
    if not giveaway:
        raise NotFoundError("Giveaway not found")
    if giveaway.status != GiveawayStatus.upcoming:
        raise ValidationError("Giveaway is not in upcoming state")

    existing = await _get_interest(session, giveaway_id=giveaway_id, user_id=user_id)
    if existing:
        await session.delete(existing)
        await session.flush()
        return InterestState(interested=False, count=await _count(session, giveaway_id))

    session.add(Interest(giveaway_id=giveaway_id, user_id=user_id, created_at=utcnow()))
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Interest already registered") from exc
    return InterestState(interested=True, count=await _count(session, giveaway_id))


async def interest_summary(
    session: AsyncSession, *, giveaway_id: int, user_id: int | None = None
) -> InterestState:
    interested = False
    if user_id is not None:
        interested = (
            await _get_interest(session, giveaway_id=giveaway_id, user_id=user_id)
        ) is not None
    return InterestState(interested=interested, count=await _count(session, giveaway_id))


async def list_interested_user_ids(session: AsyncSession, *, giveaway_id: int) -> list[int]:
    rows = await session.execute(
        select(Interest.user_id)
        .where(Interest.giveaway_id == giveaway_id)
        .order_by(Interest.created_at.asc(), Interest.id.asc())
    )
    return list(rows.scalars().all())
