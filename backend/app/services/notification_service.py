import logging
from typing import Protocol

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def winner_selected(self, *, giveaway_id: int, winner_user_id: int) -> None: ...

    def giveaway_live(self, *, giveaway_id: int, user_ids: list[int]) -> None: ...


class CeleryNotificationDispatcher:
    """Enqueue delivery tasks; enqueue failures never reach the caller."""

    def _send(self, name: str, args: list) -> None:
        try:
            celery_app.send_task(name, args=args, retry=False)
        except Exception:
            logger.exception("Failed to enqueue %s", name)

    def winner_selected(self, *, giveaway_id: int, winner_user_id: int) -> None:
        self._send("worker.tasks.notify_winner", [giveaway_id, winner_user_id])

    def giveaway_live(self, *, giveaway_id: int, user_ids: list[int]) -> None:
        if not user_ids:
            return
        self._send("worker.tasks.notify_giveaway_live", [giveaway_id, list(user_ids)])


dispatcher = CeleryNotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    return dispatcher
