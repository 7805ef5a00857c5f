import logging

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.db.session import get_session
from backend.app.models.enums import GiveawayStatus, ParticipantStatus
from backend.app.models.giveaway import Giveaway
from backend.app.services.audit_service import log_action
from backend.app.services.errors import ErrorKind, NotFoundError, ServiceError
from backend.app.services.giveaway_service import (
    PUBLIC_STATUSES,
    create_giveaway,
    delete_giveaway,
    get_giveaway,
    list_giveaways,
    refresh_giveaway_status,
    update_giveaway,
)
from backend.app.services.interest_service import (
    interest_summary,
    list_interested_user_ids,
    toggle_interest,
)
from backend.app.services.invite_service import process_invite
from backend.app.services.notification_service import NotificationDispatcher, get_dispatcher
from backend.app.services.participant_service import (
    count_participants,
    get_user_giveaways,
    join_giveaway,
    list_participants,
    participation_status,
)
from backend.app.services.shipping_service import get_shipping, submit_shipping
from backend.app.services.support_service import (
    get_donation_stats,
    get_support_totals,
    list_supporters,
    record_support,
)
from backend.app.services.task_service import (
    add_task,
    complete_task,
    list_tasks,
    remove_task,
    start_task,
    update_task,
)
from backend.app.services.user_service import upsert_user
from backend.app.services.winner_service import get_winner_info, select_winner
from backend.app.web.auth import Identity, get_identity, get_optional_identity, require_admin
from backend.app.web.schemas import (
    CountOut,
    DonationStatsOut,
    GiveawayCreate,
    GiveawayOut,
    GiveawayUpdate,
    HistoryOut,
    InterestOut,
    InviteCreditOut,
    InviteIn,
    ParticipantOut,
    ParticipantRowOut,
    ParticipationStatusOut,
    ShippingIn,
    ShippingOut,
    SupporterOut,
    SupportIn,
    SupportOut,
    SupportSummaryOut,
    TaskCreate,
    TaskOut,
    TaskRemovedOut,
    TaskUpdate,
    WinnerInfoOut,
    WinnerResultOut,
    WinnerSelectIn,
)

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, storage_uri=settings.rate_limit_storage_uri)

router = APIRouter(prefix="/api", tags=["giveaways"])

ERROR_STATUS = {
    ErrorKind.validation: status.HTTP_400_BAD_REQUEST,
    ErrorKind.capacity: status.HTTP_400_BAD_REQUEST,
    ErrorKind.forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.conflict: status.HTTP_409_CONFLICT,
}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=ERROR_STATUS[exc.kind], content={"error": exc.to_dict()})


async def _touch_user(session: AsyncSession, identity: Identity) -> None:
    await upsert_user(session, user_id=identity.user_id, username=identity.username)
    try:
        await session.commit()
    except IntegrityError:
        # concurrent first request for the same user already inserted the row
        await session.rollback()


async def _load_giveaway(
    session: AsyncSession,
    id_or_slug: str,
    identity: Identity | None,
    dispatcher: NotificationDispatcher,
) -> Giveaway:
    giveaway = await get_giveaway(session, id_or_slug)
    if giveaway.status == GiveawayStatus.draft and not (identity and identity.is_admin):
        raise NotFoundError("Giveaway not found")

    outcome = await refresh_giveaway_status(session, giveaway)
    if outcome.went_live or outcome.extended or outcome.ended:
        await session.commit()
    if outcome.went_live:
        user_ids = await list_interested_user_ids(session, giveaway_id=giveaway.id)
        dispatcher.giveaway_live(giveaway_id=giveaway.id, user_ids=user_ids)
    return giveaway


def _page_limit(limit: int | None) -> int:
    return min(limit or settings.default_page_size, settings.max_page_size)


@router.get("/giveaways", response_model=list[GiveawayOut])
async def giveaways_list(
    status_filter: list[GiveawayStatus] | None = Query(None, alias="status"),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    identity: Identity | None = Depends(get_optional_identity),
    session: AsyncSession = Depends(get_session),
):
    is_admin = identity is not None and identity.is_admin
    statuses = status_filter or (None if is_admin else list(PUBLIC_STATUSES))
    if not is_admin and statuses:
        statuses = [item for item in statuses if item in PUBLIC_STATUSES]
        if not statuses:
            return []
    giveaways = await list_giveaways(
        session, statuses=statuses, limit=_page_limit(limit), offset=offset
    )
    return [GiveawayOut.model_validate(giveaway) for giveaway in giveaways]


@router.post("/giveaways", response_model=GiveawayOut, status_code=status.HTTP_201_CREATED)
async def giveaways_create(
    payload: GiveawayCreate,
    admin: Identity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await create_giveaway(session, created_by=admin.user_id, **payload.model_dump())
    await session.commit()
    result = GiveawayOut.model_validate(giveaway)
    await log_action(
        session,
        actor_id=admin.user_id,
        action="giveaway_create",
        payload={"giveaway_id": giveaway.id, "title": giveaway.title},
    )
    return result


@router.get("/giveaways/{id_or_slug}", response_model=GiveawayOut)
async def giveaways_get(
    id_or_slug: str,
    identity: Identity | None = Depends(get_optional_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    return GiveawayOut.model_validate(giveaway)


@router.patch("/giveaways/{id_or_slug}", response_model=GiveawayOut)
async def giveaways_update(
    id_or_slug: str,
    payload: GiveawayUpdate,
    admin: Identity = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, admin, dispatcher)
    changes = payload.model_dump(exclude_unset=True)
    giveaway = await update_giveaway(session, giveaway_id=giveaway.id, changes=changes)
    await session.commit()
    result = GiveawayOut.model_validate(giveaway)
    await log_action(
        session,
        actor_id=admin.user_id,
        action="giveaway_update",
        payload={"giveaway_id": giveaway.id, "fields": sorted(changes)},
    )
    return result


@router.delete("/giveaways/{id_or_slug}", status_code=status.HTTP_204_NO_CONTENT)
async def giveaways_delete(
    id_or_slug: str,
    admin: Identity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await get_giveaway(session, id_or_slug)
    giveaway_id = giveaway.id
    await delete_giveaway(session, giveaway_id=giveaway_id)
    await session.commit()
    await log_action(
        session,
        actor_id=admin.user_id,
        action="giveaway_delete",
        payload={"giveaway_id": giveaway_id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/giveaways/{id_or_slug}/join",
    response_model=ParticipantOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.join_rate_limit)
async def giveaways_join(
    request: Request,
    id_or_slug: str,
    identity: Identity = Depends(get_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    await _touch_user(session, identity)
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    participant = await join_giveaway(
        session, giveaway_id=giveaway.id, user_id=identity.user_id
    )
    await session.commit()
    return ParticipantOut.model_validate(participant)


@router.get("/giveaways/{id_or_slug}/my-status", response_model=ParticipationStatusOut)
async def giveaways_my_status(
    id_or_slug: str,
    identity: Identity = Depends(get_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    state = await participation_status(
        session, giveaway_id=giveaway.id, user_id=identity.user_id
    )
    return ParticipationStatusOut.model_validate(state)


@router.get("/giveaways/{id_or_slug}/participants", response_model=list[ParticipantRowOut])
async def giveaways_participants(
    id_or_slug: str,
    status_filter: ParticipantStatus | None = Query(None, alias="status"),
    search: str | None = Query(None, max_length=100),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    admin: Identity = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, admin, dispatcher)
    rows = await list_participants(
        session,
        giveaway_id=giveaway.id,
        status=status_filter,
        search=search,
        limit=_page_limit(limit),
        offset=offset,
    )
    items = []
    for row in rows:
        data = ParticipantOut.model_validate(row.participant).model_dump()
        data["status"] = row.status
        data["username"] = row.user.username if row.user else None
        data["display_name"] = row.user.display_name if row.user else None
        items.append(ParticipantRowOut(**data))
    return items


@router.get("/giveaways/{id_or_slug}/participants/count", response_model=CountOut)
async def giveaways_participants_count(
    id_or_slug: str,
    identity: Identity | None = Depends(get_optional_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    return CountOut(count=await count_participants(session, giveaway_id=giveaway.id))


@router.get("/giveaways/{id_or_slug}/tasks", response_model=list[TaskOut])
async def tasks_list(
    id_or_slug: str,
    include_retired: bool = False,
    identity: Identity | None = Depends(get_optional_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    is_admin = identity is not None and identity.is_admin
    tasks = await list_tasks(
        session, giveaway_id=giveaway.id, include_retired=include_retired and is_admin
    )
    return [TaskOut.model_validate(task) for task in tasks]


@router.post(
    "/giveaways/{id_or_slug}/tasks",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
)
async def tasks_create(
    id_or_slug: str,
    payload: TaskCreate,
    admin: Identity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await get_giveaway(session, id_or_slug)
    data = payload.model_dump()
    task = await add_task(
        session, giveaway_id=giveaway.id, task_type=data.pop("type"), **data
    )
    await session.commit()
    result = TaskOut.model_validate(task)
    await log_action(
        session,
        actor_id=admin.user_id,
        action="task_create",
        payload={"giveaway_id": giveaway.id, "task_id": task.id},
    )
    return result


@router.patch("/giveaways/{id_or_slug}/tasks/{task_id}", response_model=TaskOut)
async def tasks_update(
    id_or_slug: str,
    task_id: int,
    payload: TaskUpdate,
    admin: Identity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await get_giveaway(session, id_or_slug)
    changes = payload.model_dump(exclude_unset=True)
    task = await update_task(session, giveaway_id=giveaway.id, task_id=task_id, changes=changes)
    await session.commit()
    result = TaskOut.model_validate(task)
    await log_action(
        session,
        actor_id=admin.user_id,
        action="task_update",
        payload={"giveaway_id": giveaway.id, "task_id": task_id, "fields": sorted(changes)},
    )
    return result


@router.delete("/giveaways/{id_or_slug}/tasks/{task_id}", response_model=TaskRemovedOut)
async def tasks_delete(
    id_or_slug: str,
    task_id: int,
    admin: Identity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await get_giveaway(session, id_or_slug)
    giveaway_id = giveaway.id
    retired = await remove_task(session, giveaway_id=giveaway_id, task_id=task_id)
    await session.commit()
    await log_action(
        session,
        actor_id=admin.user_id,
        action="task_retire" if retired else "task_delete",
        payload={"giveaway_id": giveaway_id, "task_id": task_id},
    )
    return TaskRemovedOut(retired=retired)


@router.post("/giveaways/{id_or_slug}/tasks/{task_id}/start")
async def tasks_start(
    id_or_slug: str,
    task_id: int,
    identity: Identity = Depends(get_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    marker = await start_task(
        session, giveaway_id=giveaway.id, user_id=identity.user_id, task_id=task_id
    )
    started_at = marker.started_at
    await session.commit()
    return {"task_id": task_id, "started_at": started_at.isoformat()}


@router.post(
    "/giveaways/{id_or_slug}/tasks/{task_id}/complete",
    response_model=ParticipationStatusOut,
)
async def tasks_complete(
    id_or_slug: str,
    task_id: int,
    identity: Identity = Depends(get_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    giveaway_id = giveaway.id
    await complete_task(
        session, giveaway_id=giveaway_id, user_id=identity.user_id, task_id=task_id
    )
    await session.commit()
    state = await participation_status(
        session, giveaway_id=giveaway_id, user_id=identity.user_id
    )
    return ParticipationStatusOut.model_validate(state)


@router.post("/invites", response_model=InviteCreditOut)
@limiter.limit(settings.invite_rate_limit)
async def invites_apply(
    request: Request,
    payload: InviteIn,
    identity: Identity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    await _touch_user(session, identity)
    credit = await process_invite(
        session, invite_code=payload.invite_code, invitee_user_id=identity.user_id
    )
    await session.commit()
    await log_action(
        session,
        actor_id=identity.user_id,
        action="invite_credit",
        payload={"giveaway_id": credit.giveaway_id, "referrer_user_id": credit.referrer_user_id},
    )
    return InviteCreditOut.model_validate(credit)


@router.get("/giveaways/{id_or_slug}/support", response_model=SupportSummaryOut)
async def support_summary(
    id_or_slug: str,
    identity: Identity | None = Depends(get_optional_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    totals = await get_support_totals(session, giveaway_id=giveaway.id)
    supporters = await list_supporters(
        session,
        giveaway_id=giveaway.id,
        is_admin=identity is not None and identity.is_admin,
    )
    return SupportSummaryOut(
        total_amount=totals.total_amount,
        supporter_count=totals.supporter_count,
        supporters=[SupporterOut.model_validate(entry) for entry in supporters],
    )


@router.post(
    "/giveaways/{id_or_slug}/support",
    response_model=SupportOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.support_rate_limit)
async def support_create(
    request: Request,
    id_or_slug: str,
    payload: SupportIn,
    identity: Identity = Depends(get_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    await _touch_user(session, identity)
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    support = await record_support(
        session,
        giveaway_id=giveaway.id,
        user_id=identity.user_id,
        amount=payload.amount,
        donor_name=payload.donor_name,
        donor_email=payload.donor_email,
        is_anonymous=payload.is_anonymous,
    )
    await session.commit()
    return SupportOut.model_validate(support)


@router.get("/support/stats", response_model=DonationStatsOut)
async def support_stats(
    admin: Identity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return DonationStatsOut.model_validate(await get_donation_stats(session))


@router.post("/giveaways/{id_or_slug}/winner", response_model=WinnerResultOut)
async def winner_select(
    id_or_slug: str,
    payload: WinnerSelectIn,
    admin: Identity = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, admin, dispatcher)
    result = await select_winner(
        session,
        giveaway_id=giveaway.id,
        mode=payload.mode,
        admin_id=admin.user_id,
        winner_user_id=payload.winner_user_id,
    )
    await session.commit()
    await log_action(
        session,
        actor_id=admin.user_id,
        action="winner_select",
        payload={
            "giveaway_id": result.giveaway_id,
            "winner_id": result.winner_id,
            "mode": result.selection_mode.value,
            "pool_size": result.pool_size,
        },
    )
    dispatcher.winner_selected(giveaway_id=result.giveaway_id, winner_user_id=result.winner_id)
    return WinnerResultOut.model_validate(result)


@router.get("/giveaways/{id_or_slug}/winner", response_model=WinnerInfoOut | None)
async def winner_info(
    id_or_slug: str,
    identity: Identity | None = Depends(get_optional_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    info = await get_winner_info(session, giveaway_id=giveaway.id)
    return WinnerInfoOut.model_validate(info) if info else None


@router.put("/giveaways/{id_or_slug}/shipping", response_model=ShippingOut)
async def shipping_submit(
    id_or_slug: str,
    payload: ShippingIn,
    identity: Identity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await get_giveaway(session, id_or_slug)
    record = await submit_shipping(
        session,
        giveaway_id=giveaway.id,
        user_id=identity.user_id,
        fields=payload.model_dump(),
    )
    await session.commit()
    return ShippingOut.model_validate(record)


@router.get("/giveaways/{id_or_slug}/shipping", response_model=ShippingOut | None)
async def shipping_get(
    id_or_slug: str,
    identity: Identity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await get_giveaway(session, id_or_slug)
    record = await get_shipping(
        session,
        giveaway_id=giveaway.id,
        requester_user_id=identity.user_id,
        is_admin=identity.is_admin,
    )
    return ShippingOut.model_validate(record) if record else None


@router.get("/giveaways/{id_or_slug}/interest", response_model=InterestOut)
async def interest_get(
    id_or_slug: str,
    identity: Identity | None = Depends(get_optional_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    state = await interest_summary(
        session,
        giveaway_id=giveaway.id,
        user_id=identity.user_id if identity else None,
    )
    return InterestOut.model_validate(state)


@router.post("/giveaways/{id_or_slug}/interest", response_model=InterestOut)
async def interest_toggle(
    id_or_slug: str,
    identity: Identity = Depends(get_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session: AsyncSession = Depends(get_session),
):
    await _touch_user(session, identity)
    giveaway = await _load_giveaway(session, id_or_slug, identity, dispatcher)
    state = await toggle_interest(session, giveaway_id=giveaway.id, user_id=identity.user_id)
    await session.commit()
    return InterestOut.model_validate(state)


@router.get("/me/giveaways", response_model=list[HistoryOut])
async def my_giveaways(
    identity: Identity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    history = await get_user_giveaways(session, user_id=identity.user_id)
    return [
        HistoryOut(
            giveaway=GiveawayOut.model_validate(item.giveaway),
            status=item.status,
            points=item.participant.points,
            invite_count=item.participant.invite_count,
            joined_at=item.participant.joined_at,
            winner_name=item.winner_name,
        )
        for item in history
    ]
