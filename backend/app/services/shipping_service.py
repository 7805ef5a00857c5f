from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.models.enums import ParticipantStatus
from backend.app.models.giveaway import Giveaway
from backend.app.models.shipping import ShippingRecord
from backend.app.services.errors import ForbiddenError, NotFoundError, ValidationError
from backend.app.services.participant_service import get_participant

SHIPPING_FIELDS = ("full_name", "address", "city", "state", "pincode", "country", "phone")


async def _require_winner(session: AsyncSession, *, giveaway_id: int, user_id: int) -> None:
    participant = await get_participant(session, giveaway_id=giveaway_id, user_id=user_id)
    if not participant or participant.status != ParticipantStatus.winner:
        raise ForbiddenError("Only the winner can access shipping details")


async def submit_shipping(
    session: AsyncSession,
    *,
    giveaway_id: int,
    user_id: int,
    fields: Mapping[str, str | None],
) -> ShippingRecord:
    await _require_winner(session, giveaway_id=giveaway_id, user_id=user_id)

    values = {name: (fields.get(name) or "").strip() for name in SHIPPING_FIELDS}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValidationError(f"All shipping fields are required, missing: {', '.join(missing)}")

    result = await session.execute(
        select(ShippingRecord).where(
            ShippingRecord.giveaway_id == giveaway_id, ShippingRecord.user_id == user_id
        )
    )
    record = result.scalar_one_or_none()
    now = utcnow()
    if record:
        for name, value in values.items():
            setattr(record, name, value)
        record.updated_at = now
    else:
        record = ShippingRecord(
            giveaway_id=giveaway_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        session.add(record)
    await session.flush()
    return record


async def get_shipping(
    session: AsyncSession,
    *,
    giveaway_id: int,
    requester_user_id: int,
    is_admin: bool = False,
) -> ShippingRecord | None:
    giveaway = await session.get(Giveaway, giveaway_id)
    if not giveaway:
        raise NotFoundError("Giveaway not found")
    if not is_admin:
        await _require_winner(session, giveaway_id=giveaway_id, user_id=requester_user_id)
    if giveaway.winner_id is None:
        return None
    result = await session.execute(
        select(ShippingRecord).where(
            ShippingRecord.giveaway_id == giveaway_id,
            ShippingRecord.user_id == giveaway.winner_id,
        )
    )
    return result.scalar_one_or_none()
