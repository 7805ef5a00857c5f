import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


async def log_action(
    session: AsyncSession, *, actor_id: int | None, action: str, payload: dict
) -> bool:
    """Write an audit row in its own commit.

    Called after the main operation committed; a failure here is logged and
    rolled back so it never undoes or masks the operation itself.
    """
    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        payload=payload,
        created_at=utcnow(),
    )
    session.add(entry)
    try:
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to write audit entry %s by %s", action, actor_id)
        return False
    return True
