from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.models.user import User


async def upsert_user(
    session: AsyncSession,
    *,
    user_id: int,
    username: str | None,
    display_name: str | None = None,
) -> User:
    result = await session.execute(select(User).where(User.user_id == user_id))
    user = result.scalar_one_or_none()
    now = utcnow()
    if user:
        if username is not None:
            user.username = username
        if display_name is not None:
            user.display_name = display_name
        user.last_seen_at = now
        return user

    user = User(
        user_id=user_id,
        username=username,
        display_name=display_name,
        first_seen_at=now,
        last_seen_at=now,
    )
    session.add(user)
    return user


async def get_users(session: AsyncSession, user_ids: list[int]) -> dict[int, User]:
    if not user_ids:
        return {}
    rows = await session.execute(select(User).where(User.user_id.in_(sorted(set(user_ids)))))
    return {user.user_id: user for user in rows.scalars().all()}


def public_name(user: User | None, fallback: str = "Anonymous") -> str:
    if user is None:
        return fallback
    return user.display_name or user.username or fallback
