import logging
from typing import Iterable, Mapping, Optional, Set

from ..domain.entities.position_entity import Position
from ..domain.entities.price_tick_entity import PriceTick
from ..services.notification_factory import progress_notification
from ..services.notification_manager import NotificationManager
from ..services.position_valuation_service import PositionValuationService


class EvaluateProgressAlertsUseCase:
    """
    Warns once per position when it has covered `threshold_pct` of the way to
    its take profit (while in profit) or its stop loss (while in loss).
    Nothing is persisted; the marker lives until the position stops being active.
    """

    def __init__(
        self,
        notification_manager: NotificationManager,
        threshold_pct: float = 60.0,
        dismiss_after_sec: float = 30.0,
        valuation_service: Optional[PositionValuationService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._notifications = notification_manager
        self._threshold = float(threshold_pct)
        self._dismiss_after = float(dismiss_after_sec)
        self._valuation = valuation_service or PositionValuationService()
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._alerted: Set[str] = set()

    def execute_once(self, positions: Iterable[Position], prices: Mapping[str, PriceTick]) -> int:
        active = [p for p in positions if p.is_active]
        self._alerted.intersection_update({p.id for p in active})

        shown = 0
        for position in active:
            if position.id in self._alerted or position.entry_price == 0:
                continue
            price = self._valuation.known_price(position, prices)
            if price is None:
                continue

            progress = self._valuation.progress_to_target(position, price)
            if progress < self._threshold:
                continue

            self._alerted.add(position.id)
            valuation = self._valuation.valuate(position, price)
            self._notifications.show(progress_notification(position, valuation, progress, self._dismiss_after))
            self._logger.info("Progress alert for %s: %.0f%% of target", position.id, progress)
            shown += 1
        return shown

    def reset(self) -> None:
        self._alerted.clear()
