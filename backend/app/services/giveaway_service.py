import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.time import as_utc, utcnow
from backend.app.models.enums import GiveawayStatus
from backend.app.models.giveaway import Giveaway
from backend.app.models.interest import Interest
from backend.app.models.participant import Participant
from backend.app.models.support import Support
from backend.app.models.task import Task, TaskStart
from backend.app.services.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

STATUS_ORDER = {
    GiveawayStatus.draft: 0,
    GiveawayStatus.upcoming: 1,
    GiveawayStatus.active: 2,
    GiveawayStatus.ended: 3,
    GiveawayStatus.winner_selected: 4,
}

PUBLIC_STATUSES = (
    GiveawayStatus.upcoming,
    GiveawayStatus.active,
    GiveawayStatus.ended,
    GiveawayStatus.winner_selected,
)

EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "image_url",
        "prize_details",
        "status",
        "start_date",
        "end_date",
        "max_extensions",
        "invites_enabled",
        "invite_cap",
        "invite_points_per_referral",
        "invite_points_for_invitee",
    }
)

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACE_RE = re.compile(r"\s+")
_SLUG_DASH_RE = re.compile(r"-+")


@dataclass
class StatusRefresh:
    went_live: bool = False
    extended: bool = False
    ended: bool = False


def slugify(title: str) -> str:
    slug = _SLUG_STRIP_RE.sub("", title.lower())
    slug = _SLUG_SPACE_RE.sub("-", slug.strip())
    slug = _SLUG_DASH_RE.sub("-", slug).strip("-")
    return slug[:80] or "giveaway"


async def _unique_slug(session: AsyncSession, title: str) -> str:
    slug = slugify(title)
    taken = await session.execute(select(Giveaway.id).where(Giveaway.slug == slug))
    if taken.first() is None:
        return slug
    return f"{slug}-{secrets.token_hex(3)}"


def _check_dates(start_date: datetime | None, end_date: datetime | None) -> None:
    if start_date and end_date and as_utc(end_date) <= as_utc(start_date):
        raise ValidationError("end date must be after start date")


def _check_non_negative(**values: int | None) -> None:
    for name, value in values.items():
        if value is not None and value < 0:
            raise ValidationError(f"{name} must not be negative")


async def create_giveaway(
    session: AsyncSession,
    *,
    title: str,
    created_by: int | None,
    description: str = "",
    image_url: str | None = None,
    prize_details: str = "",
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    draft: bool = False,
    max_extensions: int = 0,
    invites_enabled: bool = True,
    invite_cap: int | None = None,
    invite_points_per_referral: int | None = None,
    invite_points_for_invitee: int | None = None,
) -> Giveaway:
    title = title.strip()
    if not title:
        raise ValidationError("title is required")
    start_date, end_date = as_utc(start_date), as_utc(end_date)
    _check_dates(start_date, end_date)
    _check_non_negative(
        invite_cap=invite_cap,
        invite_points_per_referral=invite_points_per_referral,
        invite_points_for_invitee=invite_points_for_invitee,
    )
    if max_extensions < -1:
        raise ValidationError("max_extensions must be -1 (unlimited) or more")

    status = GiveawayStatus.upcoming if start_date and not draft else GiveawayStatus.draft
    now = utcnow()
    giveaway = Giveaway(
        slug=await _unique_slug(session, title),
        title=title,
        description=description,
        image_url=image_url,
        prize_details=prize_details,
        status=status,
        start_date=start_date,
        end_date=end_date,
        max_extensions=max_extensions,
        extensions_used=0,
        invites_enabled=invites_enabled,
        invite_cap=settings.invite_cap if invite_cap is None else invite_cap,
        invite_points_per_referral=(
            settings.invite_points_per_referral
            if invite_points_per_referral is None
            else invite_points_per_referral
        ),
        invite_points_for_invitee=(
            settings.invite_points_for_invitee
            if invite_points_for_invitee is None
            else invite_points_for_invitee
        ),
        winner_id=None,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    session.add(giveaway)
    await session.flush()
    logger.info("Giveaway %s created with status %s", giveaway.id, status.value)
    return giveaway


async def find_giveaway(session: AsyncSession, id_or_slug: str | int) -> Giveaway | None:
    if isinstance(id_or_slug, int):
        return await session.get(Giveaway, id_or_slug)
    result = await session.execute(select(Giveaway).where(Giveaway.slug == id_or_slug))
    giveaway = result.scalar_one_or_none()
    if giveaway is None and id_or_slug.isdigit():
        giveaway = await session.get(Giveaway, int(id_or_slug))
    return giveaway


async def get_giveaway(session: AsyncSession, id_or_slug: str | int) -> Giveaway:
    giveaway = await find_giveaway(session, id_or_slug)
    if not giveaway:
        raise NotFoundError("Giveaway not found")
    return giveaway


async def list_giveaways(
    session: AsyncSession,
    *,
    statuses: list[GiveawayStatus] | tuple[GiveawayStatus, ...] | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[Giveaway]:
    query = select(Giveaway).order_by(Giveaway.created_at.desc(), Giveaway.id.desc())
    if statuses:
        query = query.where(Giveaway.status.in_(list(statuses)))
    query = query.offset(offset).limit(limit or settings.default_page_size)
    return list((await session.execute(query)).scalars().all())


async def update_giveaway(
    session: AsyncSession, *, giveaway_id: int, changes: dict[str, Any]
) -> Giveaway:
    giveaway = await session.get(Giveaway, giveaway_id)
    if not giveaway:
        raise NotFoundError("Giveaway not found")
    if giveaway.status == GiveawayStatus.winner_selected:
        raise ValidationError("Cannot edit a giveaway after the winner was selected")

    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    values = dict(changes)
    if "title" in values:
        values["title"] = (values["title"] or "").strip()
        if not values["title"]:
            raise ValidationError("title is required")
    if "status" in values:
        new_status = GiveawayStatus(values["status"])
        if new_status == GiveawayStatus.winner_selected:
            raise ValidationError("winner_selected is set by winner selection only")
        if STATUS_ORDER[new_status] < STATUS_ORDER[giveaway.status]:
            raise ValidationError(
                f"Status cannot move backward from {giveaway.status.value} to {new_status.value}"
            )
        values["status"] = new_status
    for name in ("start_date", "end_date"):
        if name in values:
            values[name] = as_utc(values[name])
    _check_dates(
        values.get("start_date", giveaway.start_date),
        values.get("end_date", giveaway.end_date),
    )
    _check_non_negative(
        invite_cap=values.get("invite_cap"),
        invite_points_per_referral=values.get("invite_points_per_referral"),
        invite_points_for_invitee=values.get("invite_points_for_invitee"),
    )
    if values.get("max_extensions") is not None and values["max_extensions"] < -1:
        raise ValidationError("max_extensions must be -1 (unlimited) or more")
    if not values:
        return giveaway

    values["updated_at"] = utcnow()
    result = await session.execute(
        update(Giveaway)
        .where(Giveaway.id == giveaway_id, Giveaway.status == giveaway.status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Giveaway status changed concurrently, reload and retry")
    await session.refresh(giveaway)
    return giveaway


async def delete_giveaway(session: AsyncSession, *, giveaway_id: int) -> None:
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
    if giveaway.status not in (GiveawayStatus.draft, GiveawayStatus.upcoming):
        raise ConflictError("Only giveaways that have not started can be deleted")

    participants = await session.execute(
        select(func.count()).select_from(Participant).where(Participant.giveaway_id == giveaway_id)
    )
    if participants.scalar():
        raise ConflictError("Giveaway has participants and cannot be deleted")
    supports = await session.execute(
        select(func.count()).select_from(Support).where(Support.giveaway_id == giveaway_id)
    )
    if supports.scalar():
        raise ConflictError("Giveaway has recorded support and cannot be deleted")

    await session.execute(delete(TaskStart).where(TaskStart.giveaway_id == giveaway_id))
    await session.execute(delete(Task).where(Task.giveaway_id == giveaway_id))
    await session.execute(delete(Interest).where(Interest.giveaway_id == giveaway_id))
    await session.delete(giveaway)
    await session.flush()
    logger.info("Giveaway %s deleted", giveaway_id)


def _can_extend(giveaway: Giveaway) -> bool:
    if giveaway.max_extensions == -1:
        return True
    return giveaway.extensions_used < giveaway.max_extensions


async def refresh_giveaway_status(
    session: AsyncSession, giveaway: Giveaway, *, now: datetime | None = None
) -> StatusRefresh:
    """Apply time-driven transitions to a giveaway.

    Each transition is a conditional UPDATE keyed on the state this call
    observed, so concurrent callers apply it once. Only the caller whose
    UPDATE matched sees the flag set and runs the side effects.
    """
    now = now or utcnow()
    outcome = StatusRefresh()
    start_date = as_utc(giveaway.start_date)

    if (
        giveaway.status == GiveawayStatus.upcoming
        and start_date is not None
        and start_date <= now
    ):
        result = await session.execute(
            update(Giveaway)
            .where(Giveaway.id == giveaway.id, Giveaway.status == GiveawayStatus.upcoming)
            .values(status=GiveawayStatus.active, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        outcome.went_live = result.rowcount == 1
        await session.refresh(giveaway)
        if outcome.went_live:
            logger.info("Giveaway %s is now active", giveaway.id)

    end_date = as_utc(giveaway.end_date)
    if giveaway.status != GiveawayStatus.active or end_date is None or end_date > now:
        return outcome

    duration = end_date - start_date if start_date is not None else None
    if _can_extend(giveaway) and duration is not None and duration.total_seconds() > 0:
        result = await session.execute(
            update(Giveaway)
            .where(
                Giveaway.id == giveaway.id,
                Giveaway.status == GiveawayStatus.active,
                Giveaway.extensions_used == giveaway.extensions_used,
            )
            .values(
                end_date=end_date + duration,
                extensions_used=Giveaway.extensions_used + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        outcome.extended = result.rowcount == 1
        if outcome.extended:
            logger.info("Giveaway %s extended until %s", giveaway.id, end_date + duration)
    else:
        result = await session.execute(
            update(Giveaway)
            .where(Giveaway.id == giveaway.id, Giveaway.status == GiveawayStatus.active)
            .values(status=GiveawayStatus.ended, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        outcome.ended = result.rowcount == 1
        if outcome.ended:
            logger.info("Giveaway %s has ended", giveaway.id)
    await session.refresh(giveaway)
    return outcome


async def refresh_due_giveaways(
    session: AsyncSession, *, now: datetime | None = None
) -> list[int]:
    now = now or utcnow()
    rows = await session.execute(
        select(Giveaway).where(
            or_(
                (Giveaway.status == GiveawayStatus.upcoming) & (Giveaway.start_date <= now),
                (Giveaway.status == GiveawayStatus.active) & (Giveaway.end_date <= now),
            )
        )
    )
    went_live: list[int] = []
    for giveaway in rows.scalars().all():
        outcome = await refresh_giveaway_status(session, giveaway, now=now)
        if outcome.went_live:
            went_live.append(giveaway.id)
    return went_live
