import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Mapping, Optional, Set

from ..domain.entities.alert_rule_entity import AlertRule
from ..domain.entities.position_entity import Position, Valuation
from ..domain.entities.price_tick_entity import PriceTick
from ..domain.enums.position_enums import ConditionType
from ..domain.exceptions import PersistenceError
from ..repositories.alert_rule_repository import AlertRuleRepository
from ..services.notification_factory import rule_alert_notification
from ..services.notification_manager import NotificationManager
from ..services.position_valuation_service import PositionValuationService


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvaluateAlertRulesUseCase:
    """
    Evaluates armed user alert rules against the live valuation of their position.

    A rule fires at most once: the processed marker is set before the
    deactivation write, so an overlapping pass cannot fire it again. A failed
    write removes the marker and the rule is retried on the next pass.
    Markers of rules that left the armed set are purged every pass.
    """

    def __init__(
        self,
        rule_repo: AlertRuleRepository,
        notification_manager: NotificationManager,
        valuation_service: Optional[PositionValuationService] = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self._repo = rule_repo
        self._notifications = notification_manager
        self._valuation = valuation_service or PositionValuationService()
        self._clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._processed: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def processed_ids(self) -> Set[str]:
        return set(self._processed)

    @staticmethod
    def condition_met(rule: AlertRule, valuation: Valuation) -> bool:
        value = rule.condition_value
        if rule.condition_type == ConditionType.PRICE:
            return valuation.price >= value
        metric = valuation.pl_percent if rule.condition_type == ConditionType.PL_PERCENTAGE else valuation.pl_usd
        if value >= 0:
            return metric >= value
        return metric <= value

    async def execute_once(
        self,
        rules: Iterable[AlertRule],
        positions: Iterable[Position],
        prices: Mapping[str, PriceTick],
    ) -> int:
        """
        One evaluation pass. Returns how many rules fired (writes started).
        """
        armed = [r for r in rules if r.is_armed]
        armed_ids = {r.id for r in armed}
        self._processed.intersection_update(armed_ids)

        by_id: Dict[str, Position] = {p.id: p for p in positions if p.is_active}
        fired = 0
        for rule in armed:
            if rule.id in self._processed:
                continue

            position = by_id.get(rule.position_id)
            if position is None:
                continue
            price = self._valuation.known_price(position, prices)
            if price is None:
                continue

            valuation = self._valuation.valuate(position, price)
            if not self.condition_met(rule, valuation):
                continue

            self._processed.add(rule.id)
            self._spawn(self._fire(rule, position, valuation))
            fired += 1
        return fired

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def teardown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._processed.clear()

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fire(self, rule: AlertRule, position: Position, valuation: Valuation) -> None:
        try:
            await self._repo.deactivate(rule.id, self._clock())
        except PersistenceError as exc:
            self._logger.warning("Deactivating rule %s failed, will retry: %s", rule.id, exc)
            self._processed.discard(rule.id)
            return
        except Exception as exc:
            self._logger.exception("Unexpected error deactivating rule %s: %s", rule.id, exc)
            self._processed.discard(rule.id)
            return

        self._logger.info(
            "Rule %s fired for %s (%s %s) at %.8g",
            rule.id, position.id, rule.condition_type.value, rule.condition_value, valuation.price,
        )
        snapshot = position.with_updates(valuation.as_update())
        self._notifications.show(rule_alert_notification(rule, snapshot, valuation))
