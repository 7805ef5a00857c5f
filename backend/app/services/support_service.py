from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.time import utcnow
from backend.app.models.giveaway import Giveaway
from backend.app.models.support import Support
from backend.app.services.errors import NotFoundError, ValidationError
from backend.app.services.user_service import get_users, public_name

ANONYMOUS = "Anonymous"
CENT = Decimal("0.01")
# largest value a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


@dataclass
class SupportTotals:
    total_amount: Decimal
    supporter_count: int


@dataclass
class SupporterEntry:
    id: int
    amount: Decimal
    display_name: str
    is_anonymous: bool
    created_at: datetime
    user_id: int | None = None
    donor_email: str | None = None


@dataclass
class GiveawayDonations:
    giveaway_id: int
    title: str
    slug: str
    total_amount: Decimal
    supporter_count: int


@dataclass
class DonationStats:
    grand_total: Decimal
    grand_count: int
    per_giveaway: list[GiveawayDonations]


def _parse_amount(amount: Decimal | float | int | str) -> Decimal:
    try:
        value = Decimal(str(amount))
        if not value.is_finite():
            raise ValidationError("Valid amount required")
        value = value.quantize(CENT)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Valid amount required") from exc
    if value <= 0:
        raise ValidationError("Valid amount required")
    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")
    return value


async def record_support(
    session: AsyncSession,
    *,
    giveaway_id: int,
    user_id: int,
    amount: Decimal | float | int | str,
    donor_name: str = "",
    donor_email: str = "",
    is_anonymous: bool = False,
) -> Support:
    value = _parse_amount(amount)
    giveaway = await session.get(Giveaway, giveaway_id)
    if not giveaway:
        raise NotFoundError("Giveaway not found")

    support = Support(
        giveaway_id=giveaway_id,
        user_id=user_id,
        amount=value,
        donor_name=donor_name.strip(),
        donor_email=donor_email.strip(),
        is_anonymous=is_anonymous,
        created_at=utcnow(),
    )
    session.add(support)
    await session.flush()
    return support


async def get_support_totals(session: AsyncSession, *, giveaway_id: int) -> SupportTotals:
    row = (
        await session.execute(
            select(func.coalesce(func.sum(Support.amount), 0), func.count(Support.id)).where(
                Support.giveaway_id == giveaway_id
            )
        )
    ).one()
    return SupportTotals(
        total_amount=Decimal(str(row[0])).quantize(CENT), supporter_count=row[1]
    )


async def list_supporters(
    session: AsyncSession, *, giveaway_id: int, is_admin: bool = False
) -> list[SupporterEntry]:
    supports = (
        await session.execute(
            select(Support)
            .where(Support.giveaway_id == giveaway_id)
            .order_by(Support.created_at.desc(), Support.id.desc())
        )
    ).scalars().all()
    users = await get_users(session, [support.user_id for support in supports])

    entries = []
    for support in supports:
        named = support.donor_name or public_name(users.get(support.user_id), fallback="")
        if is_admin:
            entries.append(
                SupporterEntry(
                    id=support.id,
                    amount=support.amount,
                    display_name=named or "Unknown",
                    is_anonymous=support.is_anonymous,
                    created_at=support.created_at,
                    user_id=support.user_id,
                    donor_email=support.donor_email,
                )
            )
            continue
        entries.append(
            SupporterEntry(
                id=support.id,
                amount=support.amount,
                display_name=ANONYMOUS if support.is_anonymous else (named or ANONYMOUS),
                is_anonymous=support.is_anonymous,
                created_at=support.created_at,
            )
        )
    return entries


async def get_donation_stats(session: AsyncSession) -> DonationStats:
    rows = (
        await session.execute(
            select(
                Giveaway.id,
                Giveaway.title,
                Giveaway.slug,
                func.sum(Support.amount),
                func.count(Support.id),
            )
            .select_from(Support)
            .join(Giveaway, Giveaway.id == Support.giveaway_id)
            .group_by(Giveaway.id, Giveaway.title, Giveaway.slug)
        )
    ).all()
    per_giveaway = [
        GiveawayDonations(
            giveaway_id=giveaway_id,
            title=title,
            slug=slug,
            total_amount=Decimal(str(total)).quantize(CENT),
            supporter_count=count,
        )
        for giveaway_id, title, slug, total, count in rows
    ]
    per_giveaway.sort(key=lambda item: item.total_amount, reverse=True)
    return DonationStats(
        grand_total=sum((item.total_amount for item in per_giveaway), Decimal("0")),
        grand_count=sum(item.supporter_count for item in per_giveaway),
        per_giveaway=per_giveaway,
    )
