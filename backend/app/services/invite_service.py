import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.models.enums import GiveawayStatus
from backend.app.models.giveaway import Giveaway
from backend.app.models.invite import InviteUse
from backend.app.models.participant import Participant
from backend.app.services.errors import (
    CapacityError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from backend.app.services.participant_service import (
    get_participant,
    get_participant_by_invite_code,
)

logger = logging.getLogger(__name__)


@dataclass
class InviteCredit:
    giveaway_id: int
    referrer_user_id: int
    referrer_points: int
    invite_count: int
    invitee_user_id: int
    invitee_points: int


async def process_invite(
    session: AsyncSession, *, invite_code: str, invitee_user_id: int
) -> InviteCredit:
    referrer = await get_participant_by_invite_code(session, invite_code=invite_code.strip())
    if not referrer:
        raise NotFoundError("Invalid invite code")

    giveaway = await session.get(Giveaway, referrer.giveaway_id)
    if giveaway.status != GiveawayStatus.active:
        raise ForbiddenError("Giveaway is not active")
    if not giveaway.invites_enabled:
        raise ValidationError("Invites are disabled for this giveaway")
    if referrer.user_id == invitee_user_id:
        raise ValidationError("Cannot invite yourself")

    invitee = await get_participant(
        session, giveaway_id=giveaway.id, user_id=invitee_user_id
    )
    if not invitee:
        raise ValidationError("Invited user must join the giveaway before applying an invite")
    credited = await session.execute(
        select(InviteUse.id).where(
            InviteUse.giveaway_id == giveaway.id,
            InviteUse.invitee_user_id == invitee_user_id,
        )
    )
    if credited.first() is not None:
        raise ConflictError("Invite already credited for this user")

    if referrer.invite_count >= giveaway.invite_cap:
        raise CapacityError("Invite cap reached")

    referrer_bonus = giveaway.invite_points_per_referral
    invitee_bonus = giveaway.invite_points_for_invitee
    session.add(
        InviteUse(
            giveaway_id=giveaway.id,
            referrer_participant_id=referrer.id,
            invitee_user_id=invitee_user_id,
            referrer_points=referrer_bonus,
            invitee_points=invitee_bonus,
            created_at=utcnow(),
        )
    )
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Invite already credited for this user") from exc

    result = await session.execute(
        update(Participant)
        .where(
            Participant.id == referrer.id,
            Participant.invite_count < giveaway.invite_cap,
        )
        .values(
            invite_count=Participant.invite_count + 1,
            points=Participant.points + referrer_bonus,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise CapacityError("Invite cap reached")

    if invitee_bonus:
        await session.execute(
            update(Participant)
            .where(Participant.id == invitee.id)
            .values(points=Participant.points + invitee_bonus)
            .execution_options(synchronize_session=False)
        )
    await session.refresh(referrer)
    await session.refresh(invitee)
    logger.info(
        "Invite %s credited: referrer %s, invitee %s",
        invite_code,
        referrer.user_id,
        invitee_user_id,
    )
    return InviteCredit(
        giveaway_id=giveaway.id,
        referrer_user_id=referrer.user_id,
        referrer_points=referrer.points,
        invite_count=referrer.invite_count,
        invitee_user_id=invitee_user_id,
        invitee_points=invitee.points,
    )
