import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from motor.motor_asyncio import AsyncIOMotorClient

from ..adapters.external.binance.binance_ticker_stream_client import BinanceTickerStreamClient
from ..adapters.external.database.alert_rule_repository_mongodb import AlertRuleRepositoryMongoDB
from ..adapters.external.database.position_repository_mongodb import PositionRepositoryMongoDB
from ..adapters.external.navigation.navigation_queue import NavigationQueue
from ..adapters.external.notifications.telegram_notifier import TelegramNotifier
from ..config import Settings, get_settings
from ..core.domain.entities.alert_rule_entity import AlertRule
from ..core.domain.entities.position_entity import Position, Valuation
from ..core.domain.entities.price_tick_entity import PriceTick
from ..core.domain.exceptions import PersistenceError
from ..core.ports.system_notifier import SystemNotifier
from ..core.repositories.alert_rule_repository import AlertRuleRepository
from ..core.repositories.position_repository import PositionRepository
from ..core.services.notification_factory import position_opened_notification
from ..core.services.notification_manager import NotificationManager
from ..core.services.position_valuation_service import PositionValuationService
from ..core.usecases.close_position_use_case import ClosePositionUseCase
from ..core.usecases.evaluate_alert_rules_use_case import EvaluateAlertRulesUseCase
from ..core.usecases.evaluate_progress_alerts_use_case import EvaluateProgressAlertsUseCase
from ..core.usecases.monitor_thresholds_use_case import MonitorThresholdsUseCase


class MonitorSupervisor:
    """
    High-level supervisor for the position monitor process.

    Responsibilities:
    - Connect to Mongo (unless repositories are injected), ensure indexes.
    - Wire stream client, notification manager and the evaluation use cases.
    - Run three background loops:
        positions refresh -> price stream subscription + "position opened" notices
        rules refresh     -> armed alert rules
        check tick        -> TP/SL monitor, alert rules, progress alerts
    - Tear everything down on stop(): loops, timers, pending writes, stream, Mongo.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        position_repo: Optional[PositionRepository] = None,
        rule_repo: Optional[AlertRuleRepository] = None,
        stream_client: Optional[BinanceTickerStreamClient] = None,
        navigator: Optional[NavigationQueue] = None,
        system_notifier: Optional[SystemNotifier] = None,
    ):
        self._settings = settings or get_settings()
        self._logger = logging.getLogger(self.__class__.__name__)
        s = self._settings

        self._mongo_client: AsyncIOMotorClient | None = None
        self._position_repo = position_repo
        self._rule_repo = rule_repo

        self.stream = stream_client or BinanceTickerStreamClient(
            base_ws_url=s.BINANCE_WS_URL,
            quote_assets=s.QUOTE_ASSETS,
            backoff_base_ms=s.RECONNECT_BASE_MS,
            backoff_max_ms=s.RECONNECT_MAX_MS,
        )
        self.navigation = navigator or NavigationQueue()
        self._system_notifier = system_notifier or TelegramNotifier(
            token=s.TELEGRAM_BOT_TOKEN,
            chat_id=s.TELEGRAM_CHAT_ID,
            preference_enabled=s.OS_NOTIFICATIONS_ENABLED,
        )
        self.notifications = NotificationManager(
            navigator=self.navigation,
            system_notifier=self._system_notifier,
            dismiss_after_sec=s.DISMISS_AFTER_SEC,
        )
        self._valuation = PositionValuationService()

        self._threshold_monitor: MonitorThresholdsUseCase | None = None
        self._rule_engine: EvaluateAlertRulesUseCase | None = None
        self._progress: EvaluateProgressAlertsUseCase | None = None
        self._close_uc: ClosePositionUseCase | None = None

        self._positions: List[Position] = []
        self._rules: List[AlertRule] = []
        self._known_ids: Optional[Set[str]] = None
        self._tasks: List[asyncio.Task] = []

    # ---------------------
    # lifecycle
    # ---------------------

    async def start(self) -> None:
        """
        Create connections, ensure indexes, load initial state and spawn loops.
        """
        s = self._settings
        if self._position_repo is None or self._rule_repo is None:
            self._mongo_client = AsyncIOMotorClient(s.MONGODB_URI)
            db = self._mongo_client[s.MONGODB_DB_NAME]
            self._position_repo = self._position_repo or PositionRepositoryMongoDB(db)
            self._rule_repo = self._rule_repo or AlertRuleRepositoryMongoDB(db)

        await self._position_repo.ensure_indexes()
        await self._rule_repo.ensure_indexes()

        self._threshold_monitor = MonitorThresholdsUseCase(
            position_repo=self._position_repo,
            notification_manager=self.notifications,
            tolerance=s.THRESHOLD_TOLERANCE,
            background_update_delay_sec=s.BACKGROUND_UPDATE_DELAY_SEC,
            valuation_service=self._valuation,
        )
        self._rule_engine = EvaluateAlertRulesUseCase(
            rule_repo=self._rule_repo,
            notification_manager=self.notifications,
            valuation_service=self._valuation,
        )
        self._progress = EvaluateProgressAlertsUseCase(
            notification_manager=self.notifications,
            threshold_pct=s.PROGRESS_ALERT_PCT,
            dismiss_after_sec=s.PROGRESS_DISMISS_AFTER_SEC,
            valuation_service=self._valuation,
        )
        self._close_uc = ClosePositionUseCase(
            position_repo=self._position_repo,
            threshold_monitor=self._threshold_monitor,
            valuation_service=self._valuation,
        )

        await self.refresh_positions()
        await self.refresh_rules()

        self._tasks = [
            asyncio.create_task(self._every(s.POSITIONS_REFRESH_SEC, self.refresh_positions, "positions refresh")),
            asyncio.create_task(self._every(s.RULES_REFRESH_SEC, self.refresh_rules, "rules refresh")),
            asyncio.create_task(self._every(s.CHECK_INTERVAL_SEC, self.check_once, "check tick")),
        ]
        self._logger.info(
            "Position monitor started (%d active positions, %d armed rules)",
            len(self._positions), len(self._rules),
        )

    async def stop(self) -> None:
        """
        Gracefully stop loops, cancel every pending timer/write and close resources.
        """
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._tasks = []

        if self._threshold_monitor:
            await self._threshold_monitor.teardown()
        if self._rule_engine:
            await self._rule_engine.teardown()
        if self._progress:
            self._progress.reset()
        await self.notifications.teardown()
        await self.stream.close()

        if self._mongo_client:
            self._mongo_client.close()
            self._mongo_client = None
        self._known_ids = None
        self._logger.info("Position monitor stopped")

    async def _every(self, interval_sec: float, fn: Callable[[], Awaitable[None]], name: str) -> None:
        """
        Forever-loop running `fn` every `interval_sec`. Errors are logged, never fatal.
        """
        while True:
            await asyncio.sleep(interval_sec)
            try:
                await fn()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._logger.exception("%s loop error: %s", name, exc)

    # ---------------------
    # loop bodies
    # ---------------------

    async def refresh_positions(self) -> None:
        try:
            positions = await self._position_repo.list_active()
        except PersistenceError as exc:
            self._logger.warning("Could not refresh positions, keeping last snapshot: %s", exc)
            return

        ids = {p.id for p in positions}
        if self._known_ids is not None:
            for p in positions:
                if p.id not in self._known_ids:
                    self.notifications.show(position_opened_notification(p))
        self._known_ids = ids
        self._positions = positions

        await self.stream.subscribe({p.pair for p in positions})

    async def refresh_rules(self) -> None:
        try:
            self._rules = await self._rule_repo.list_active_rules()
        except PersistenceError as exc:
            self._logger.warning("Could not refresh alert rules, keeping last snapshot: %s", exc)

    async def check_once(self) -> None:
        prices = self.stream.prices
        # the monitor gets the raw active list so it can keep its own terminal markers
        await self._threshold_monitor.execute_once(self._positions, prices)
        watched = self.active_positions()
        await self._rule_engine.execute_once(self._rules, watched, prices)
        self._progress.execute_once(watched, prices)

    # ---------------------
    # read side / commands for the HTTP layer
    # ---------------------

    @property
    def pending_timers(self) -> int:
        n = self.notifications.pending_timers
        if self._threshold_monitor:
            n += self._threshold_monitor.pending_timers
        return n

    @property
    def prices(self) -> Dict[str, PriceTick]:
        return dict(self.stream.prices)

    def active_positions(self) -> List[Position]:
        monitor = self._threshold_monitor
        return [
            p for p in self._positions
            if p.is_active and not (monitor and monitor.is_terminal(p.id))
        ]

    def valuations(self) -> List[Valuation]:
        prices = self.stream.prices
        return [self._valuation.valuate(p, self._valuation.latest_price(p, prices)) for p in self.active_positions()]

    def open_pl_usd(self) -> float:
        return self._valuation.open_pl_usd(self.active_positions(), self.stream.prices)

    async def wait_idle(self) -> None:
        """Await pending trigger/rule writes and system notification pushes."""
        if self._threshold_monitor:
            await self._threshold_monitor.wait_idle()
        if self._rule_engine:
            await self._rule_engine.wait_idle()
        await self.notifications.wait_idle()

    async def close_position(self, position_id: str) -> Position:
        # the position stays in the snapshot (as terminal) until the next refresh drops it
        return await self._close_uc.execute(position_id, self.stream.prices)
