import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from ..domain.entities.notification_entity import Notification
from ..ports.navigator import Navigator
from ..ports.system_notifier import SystemNotifier
from .timer_table import TimerTable


class NotificationManager:
    """
    Owns the queue of transient on-screen notifications.

    - show: dedup by id (replace in place), otherwise append + start expiry timer
    - dismiss: idempotent; cancels the timer, removes, clears hover
    - set_hover(True) pauses expiry; set_hover(False) restarts a full duration
    - navigate: dismiss first, then hand the position id to the navigator

    New notifications are also pushed to the system notifier (best effort).
    """

    def __init__(
        self,
        navigator: Optional[Navigator] = None,
        system_notifier: Optional[SystemNotifier] = None,
        dismiss_after_sec: float = 7.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._navigator = navigator
        self._system_notifier = system_notifier
        self._dismiss_after = float(dismiss_after_sec)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._queue: Dict[str, Notification] = {}  # insertion ordered
        self._hovered: Set[str] = set()
        self._timers = TimerTable("dismiss", self._logger)
        self._push_tasks: Set[asyncio.Task] = set()

    # ---------------------
    # read side
    # ---------------------

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def active(self) -> List[Notification]:
        return list(self._queue.values())

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._queue.get(notification_id)

    def is_hovered(self, notification_id: str) -> bool:
        return notification_id in self._hovered

    # ---------------------
    # commands
    # ---------------------

    def show(self, notification: Notification) -> None:
        nid = notification.id
        existing = self._queue.get(nid)
        if existing is not None:
            # same logical event: refresh content, keep its expiry / hover state
            notification.created_at = existing.created_at
            notification.dismiss_at = existing.dismiss_at
            self._queue[nid] = notification
            self._logger.debug("Notification %s replaced in place", nid)
            return

        self._queue[nid] = notification
        self._start_timer(notification)
        self._logger.info("Notification shown: %s (%s)", nid, notification.kind.value)
        self._push_to_system(notification)

    def dismiss(self, notification_id: str) -> bool:
        self._timers.cancel(notification_id)
        self._hovered.discard(notification_id)
        removed = self._queue.pop(notification_id, None)
        if removed is not None:
            self._logger.debug("Notification dismissed: %s", notification_id)
        return removed is not None

    def set_hover(self, notification_id: str, is_hovering: bool) -> None:
        notification = self._queue.get(notification_id)
        if notification is None:
            self._hovered.discard(notification_id)
            return

        if is_hovering:
            self._timers.cancel(notification_id)
            self._hovered.add(notification_id)
            notification.dismiss_at = None
        else:
            self._hovered.discard(notification_id)
            self._start_timer(notification)

    def navigate(self, notification_id: str, position_id: Optional[str] = None) -> Optional[str]:
        """
        Action callback of a notification. Dismisses it (even if it already
        expired) and asks the navigator to show the referenced position.
        Returns the position id navigated to, or None if it could not be resolved.
        """
        notification = self._queue.get(notification_id)
        target = position_id or (notification.position_id if notification else None)
        self.dismiss(notification_id)

        if target is None:
            self._logger.warning("Cannot navigate from %s: notification gone and no position id given", notification_id)
            return None
        if self._navigator is not None:
            self._navigator.go_to_position(target)
        return target

    async def teardown(self) -> None:
        self._timers.cancel_all()
        self._queue.clear()
        self._hovered.clear()
        for task in list(self._push_tasks):
            task.cancel()
        if self._push_tasks:
            await asyncio.gather(*self._push_tasks, return_exceptions=True)
        self._push_tasks.clear()

    async def wait_idle(self) -> None:
        """Await outstanding system-notifier pushes."""
        while self._push_tasks:
            await asyncio.gather(*list(self._push_tasks), return_exceptions=True)

    # ---------------------
    # internals
    # ---------------------

    def _duration_for(self, notification: Notification) -> float:
        if notification.dismiss_after_sec is not None:
            return float(notification.dismiss_after_sec)
        return self._dismiss_after

    def _start_timer(self, notification: Notification) -> None:
        duration = self._duration_for(notification)
        notification.dismiss_at = datetime.now(timezone.utc) + timedelta(seconds=duration)
        nid = notification.id
        self._timers.schedule(nid, duration, lambda: self._expire(nid))

    def _expire(self, notification_id: str) -> None:
        if self.dismiss(notification_id):
            self._logger.debug("Notification expired: %s", notification_id)

    def _push_to_system(self, notification: Notification) -> None:
        notifier = self._system_notifier
        if notifier is None or not notifier.enabled:
            return
        task = asyncio.get_running_loop().create_task(self._safe_push(notifier, notification))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    async def _safe_push(self, notifier: SystemNotifier, notification: Notification) -> None:
        try:
            await notifier.notify(notification)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.warning("System notification for %s failed (ignored): %s", notification.id, exc)
