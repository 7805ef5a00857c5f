import asyncio
import logging
from contextlib import asynccontextmanager

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramForbiddenError, TelegramRetryAfter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backend.app.core.config import settings
from backend.app.models.giveaway import Giveaway
from backend.app.services.giveaway_service import refresh_due_giveaways
from backend.app.services.interest_service import list_interested_user_ids
from backend.app.services.notification_service import get_dispatcher
from worker.celery_app import celery_app

logger = logging.getLogger(__name__)

SEND_DELAY_SECONDS = 0.05


@asynccontextmanager
async def worker_session():
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    Session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with Session() as session:
        yield session
    await engine.dispose()


def _bot() -> Bot:
    return Bot(
        token=settings.user_bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )


async def _deliver(bot: Bot, user_id: int, text: str) -> bool:
    try:
        await bot.send_message(user_id, text)
        return True
    except TelegramForbiddenError:
        logger.info("User %s blocked the bot", user_id)
    except TelegramRetryAfter as exc:
        await asyncio.sleep(exc.retry_after)
        try:
            await bot.send_message(user_id, text)
            return True
        except TelegramAPIError:
            logger.warning("Retry delivery to %s failed", user_id)
    except TelegramAPIError:
        logger.exception("Delivery to %s failed", user_id)
    return False


async def _giveaway_title(giveaway_id: int) -> str | None:
    async with worker_session() as session:
        giveaway = await session.get(Giveaway, giveaway_id)
        return giveaway.title if giveaway else None


@celery_app.task(name="worker.tasks.notify_winner")
def notify_winner(giveaway_id: int, winner_user_id: int) -> None:
    asyncio.run(_notify_winner_async(giveaway_id, winner_user_id))


async def _notify_winner_async(giveaway_id: int, winner_user_id: int) -> None:
    title = await _giveaway_title(giveaway_id)
    if title is None:
        logger.warning("Winner notification for missing giveaway %s", giveaway_id)
        return
    text = (
        f"🎉 Congratulations! You won <b>{title}</b>.\n"
        "Please submit your shipping details to receive the prize."
    )
    async with _bot() as bot:
        await _deliver(bot, winner_user_id, text)


@celery_app.task(name="worker.tasks.notify_giveaway_live")
def notify_giveaway_live(giveaway_id: int, user_ids: list[int]) -> None:
    asyncio.run(_notify_giveaway_live_async(giveaway_id, user_ids))


async def _notify_giveaway_live_async(giveaway_id: int, user_ids: list[int]) -> None:
    title = await _giveaway_title(giveaway_id)
    if title is None:
        return
    text = f"🎁 <b>{title}</b> is live now. Join before it ends!"
    sent_ok = 0
    async with _bot() as bot:
        for user_id in user_ids:
            if await _deliver(bot, user_id, text):
                sent_ok += 1
            await asyncio.sleep(SEND_DELAY_SECONDS)
    logger.info("Giveaway %s live notice sent to %s/%s", giveaway_id, sent_ok, len(user_ids))


@celery_app.task(name="worker.tasks.refresh_giveaway_statuses")
def refresh_giveaway_statuses() -> None:
    asyncio.run(_refresh_giveaway_statuses_async())


async def _refresh_giveaway_statuses_async() -> None:
    async with worker_session() as session:
        went_live = await refresh_due_giveaways(session)
        await session.commit()
        audiences = {
            giveaway_id: await list_interested_user_ids(session, giveaway_id=giveaway_id)
            for giveaway_id in went_live
        }
    dispatcher = get_dispatcher()
    for giveaway_id, user_ids in audiences.items():
        dispatcher.giveaway_live(giveaway_id=giveaway_id, user_ids=user_ids)
