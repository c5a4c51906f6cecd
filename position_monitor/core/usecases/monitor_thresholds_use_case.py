import asyncio
import logging
from typing import Dict, Iterable, Mapping, Optional, Set

from ..domain.entities.position_entity import Position, Valuation
from ..domain.entities.price_tick_entity import PriceTick
from ..domain.enums.position_enums import PositionStatus
from ..domain.exceptions import PersistenceError
from ..repositories.position_repository import PositionRepository
from ..services.notification_factory import tp_sl_notification
from ..services.notification_manager import NotificationManager
from ..services.position_valuation_service import PositionValuationService
from ..services.timer_table import TimerTable


class MonitorThresholdsUseCase:
    """
    Take-profit / stop-loss watcher for ACTIVE positions, run once per check tick.

    Per position:
      - skipped while in-flight (a trigger or background write is pending) or terminal
      - on a crossing: mark in-flight, persist the new status + P/L once, then
        show a TP_SL notification; the position becomes terminal for this monitor
      - otherwise: make sure one background update is scheduled; when it fires it
        persists current_price + P/L unless the position went in-flight meanwhile

    A failed write clears the in-flight marker so the next pass re-evaluates.
    """

    def __init__(
        self,
        position_repo: PositionRepository,
        notification_manager: NotificationManager,
        tolerance: float = 0.0001,
        background_update_delay_sec: float = 30.0,
        valuation_service: Optional[PositionValuationService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._repo = position_repo
        self._notifications = notification_manager
        self._tolerance = float(tolerance)
        self._bg_delay = float(background_update_delay_sec)
        self._valuation = valuation_service or PositionValuationService()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._in_flight: Set[str] = set()
        self._terminal: Set[str] = set()
        self._bg_timers = TimerTable("background-update", self._logger)
        self._tasks: Set[asyncio.Task] = set()

        self._positions: Dict[str, Position] = {}
        self._prices: Mapping[str, PriceTick] = {}

    # ---------------------
    # read side
    # ---------------------

    @property
    def pending_timers(self) -> int:
        return len(self._bg_timers)

    def is_in_flight(self, position_id: str) -> bool:
        return position_id in self._in_flight

    def is_terminal(self, position_id: str) -> bool:
        return position_id in self._terminal

    def has_background_update(self, position_id: str) -> bool:
        return position_id in self._bg_timers

    # ---------------------
    # commands
    # ---------------------

    def mark_terminal(self, position_id: str) -> None:
        """Stop watching a position closed through another path (manual close)."""
        self._terminal.add(position_id)
        self._bg_timers.cancel(position_id)

    def release_terminal(self, position_id: str) -> None:
        """Undo mark_terminal after the closing write failed."""
        self._terminal.discard(position_id)

    async def execute_once(self, positions: Iterable[Position], prices: Mapping[str, PriceTick]) -> int:
        """
        One evaluation pass. Returns how many trigger writes were started.
        Writes run as background tasks; use wait_idle() to await them.
        """
        active = {p.id: p for p in positions if p.is_active}
        self._positions = active
        self._prices = prices
        self._prune(active)

        started = 0
        for position in active.values():
            pid = position.id
            if pid in self._in_flight or pid in self._terminal:
                continue

            price = self._valuation.stream_price(position, prices)
            if price is None:
                self._logger.debug("No live price yet for %s (%s); skipping", pid, position.pair)
                continue

            status = self._valuation.detect_crossing(position, price, self._tolerance)
            if status is not None:
                valuation = self._valuation.valuate(position, price)
                self._in_flight.add(pid)
                self._spawn(self._persist_trigger(position, status, valuation))
                started += 1
            elif pid not in self._bg_timers:
                self._bg_timers.schedule(pid, self._bg_delay, lambda pid=pid: self._on_background_due(pid))
        return started

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def teardown(self) -> None:
        self._bg_timers.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._in_flight.clear()
        self._terminal.clear()
        self._positions = {}
        self._prices = {}

    # ---------------------
    # internals
    # ---------------------

    def _prune(self, active: Dict[str, Position]) -> None:
        for pid in [k for k in self._terminal if k not in active]:
            self._terminal.discard(pid)
        # positions closed elsewhere no longer need a revaluation write
        for pid in [k for k in self._bg_timers.keys() if k not in active]:
            self._bg_timers.cancel(pid)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist_trigger(self, position: Position, status: PositionStatus, valuation: Valuation) -> None:
        pid = position.id
        fields = {"status": status.value, **valuation.as_update()}
        try:
            await self._repo.update_partial(pid, fields)
        except PersistenceError as exc:
            self._logger.warning("Trigger write failed for %s, will re-evaluate: %s", pid, exc)
            self._in_flight.discard(pid)
            return
        except Exception as exc:
            self._logger.exception("Unexpected error persisting trigger for %s: %s", pid, exc)
            self._in_flight.discard(pid)
            return

        self._terminal.add(pid)
        self._in_flight.discard(pid)
        self._bg_timers.cancel(pid)
        self._logger.info(
            "%s %s at %.8g (P/L %.2f%% / %.2f)",
            status.value, pid, valuation.price, valuation.pl_percent, valuation.pl_usd,
        )
        updated = position.with_updates(fields)
        self._positions[pid] = updated
        self._notifications.show(tp_sl_notification(updated, status, valuation))

    def _on_background_due(self, position_id: str) -> None:
        if position_id in self._in_flight or position_id in self._terminal:
            return
        position = self._positions.get(position_id)
        if position is None:
            return
        price = self._valuation.stream_price(position, self._prices)
        if price is None:
            return
        valuation = self._valuation.valuate(position, price)
        self._in_flight.add(position_id)
        self._spawn(self._persist_background(position, valuation))

    async def _persist_background(self, position: Position, valuation: Valuation) -> None:
        pid = position.id
        fields = valuation.as_update()
        try:
            await self._repo.update_partial(pid, fields)
            self._positions[pid] = position.with_updates(fields)
            self._logger.debug("Background update for %s at %.8g", pid, valuation.price)
        except PersistenceError as exc:
            self._logger.warning("Background update failed for %s: %s", pid, exc)
        except Exception as exc:
            self._logger.exception("Unexpected error in background update for %s: %s", pid, exc)
        finally:
            self._in_flight.discard(pid)
