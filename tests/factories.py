from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.services.giveaway_service import create_giveaway, refresh_giveaway_status
from backend.app.services.participant_service import join_giveaway
from backend.app.services.task_service import complete_task
from backend.app.web.auth import ROLE_ADMIN, issue_token

ADMIN_ID = 1


class RecordingDispatcher:
    def __init__(self) -> None:
        self.winners: list[tuple[int, int]] = []
        self.live: list[tuple[int, list[int]]] = []

    def winner_selected(self, *, giveaway_id: int, winner_user_id: int) -> None:
        self.winners.append((giveaway_id, winner_user_id))

    def giveaway_live(self, *, giveaway_id: int, user_ids: list[int]) -> None:
        self.live.append((giveaway_id, list(user_ids)))


def auth(user_id: int, username: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id, username=username)}"}


def admin_auth(user_id: int = ADMIN_ID) -> dict[str, str]:
    token = issue_token(user_id, role=ROLE_ADMIN, username="admin")
    return {"Authorization": f"Bearer {token}"}


async def make_active_giveaway(session: AsyncSession, **kwargs):
    now = utcnow()
    kwargs.setdefault("title", "Summer Drop")
    kwargs.setdefault("start_date", now - timedelta(hours=1))
    kwargs.setdefault("end_date", now + timedelta(days=7))
    giveaway = await create_giveaway(session, created_by=ADMIN_ID, **kwargs)
    await refresh_giveaway_status(session, giveaway)
    await session.commit()
    return giveaway


async def join_all(session: AsyncSession, giveaway_id: int, user_ids: list[int]) -> None:
    for user_id in user_ids:
        await join_giveaway(session, giveaway_id=giveaway_id, user_id=user_id)
    await session.commit()


async def complete_all(
    session: AsyncSession, giveaway_id: int, task_id: int, user_ids: list[int]
) -> None:
    for user_id in user_ids:
        await complete_task(session, giveaway_id=giveaway_id, user_id=user_id, task_id=task_id)
    await session.commit()
