import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from ..domain.entities.position_entity import Position
from ..domain.entities.price_tick_entity import PriceTick
from ..domain.enums.position_enums import PositionStatus
from ..repositories.position_repository import PositionRepository
from ..services.position_valuation_service import PositionValuationService
from .monitor_thresholds_use_case import MonitorThresholdsUseCase


class PositionNotClosableError(Exception):
    def __init__(self, position_id: str, reason: str):
        super().__init__(f"position {position_id} cannot be closed: {reason}")
        self.position_id = position_id
        self.reason = reason


class ClosePositionUseCase:
    """
    Manual close: value the position at the latest known price and persist
    status CLOSED with the final P/L. The threshold monitor stops watching it
    before the write so no TP/SL trigger can race the close.
    """

    def __init__(
        self,
        position_repo: PositionRepository,
        threshold_monitor: MonitorThresholdsUseCase,
        valuation_service: Optional[PositionValuationService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._repo = position_repo
        self._monitor = threshold_monitor
        self._valuation = valuation_service or PositionValuationService()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def execute(self, position_id: str, prices: Mapping[str, PriceTick]) -> Position:
        """
        :raises LookupError: unknown position
        :raises InvalidDocumentError: stored document cannot be read
        :raises PositionNotClosableError: already closed or hit
        :raises PersistenceError: write failed (position is watched again)
        """
        position = await self._repo.get_by_id(position_id)
        if position is None:
            raise LookupError(f"position {position_id} not found")
        if not position.is_active:
            raise PositionNotClosableError(position_id, f"status is {position.status.value}")
        if self._monitor.is_terminal(position_id):
            raise PositionNotClosableError(position_id, "take profit / stop loss already triggered")
        if self._monitor.is_in_flight(position_id):
            raise PositionNotClosableError(position_id, "a monitor write is pending")

        price = self._valuation.latest_price(position, prices)
        valuation = self._valuation.valuate(position, price)
        fields = {
            "status": PositionStatus.CLOSED.value,
            **valuation.as_update(),
            "closed_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

        self._monitor.mark_terminal(position_id)
        try:
            await self._repo.update_partial(position_id, fields)
        except Exception:
            self._monitor.release_terminal(position_id)
            raise

        self._logger.info("Position %s closed manually at %.8g (P/L %.2f)", position_id, price, valuation.pl_usd)
        return position.with_updates(fields)
