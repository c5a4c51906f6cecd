from typing import Iterable, Mapping, Optional

from ..domain.entities.position_entity import Position, Valuation
from ..domain.entities.price_tick_entity import PriceTick
from ..domain.enums.position_enums import PositionStatus


class PositionValuationService:
    """
    Stateless helpers for revaluing positions at a given price.

    Nothing here touches I/O or mutable state, so every method is safe to call
    from any evaluation pass.
    """

    @staticmethod
    def valuate(position: Position, current_price: float) -> Valuation:
        """
        P/L of a leveraged position at `current_price`.

        plPercent = (current - entry) / entry * 100   (LONG)
                  = (entry - current) / entry * 100   (SHORT)
        plUsd     = plPercent / 100 * margin * leverage

        An entry price of 0 yields 0 / 0 instead of raising.
        """
        entry = float(position.entry_price)
        price = float(current_price)
        if entry == 0:
            return Valuation(position_id=position.id, price=price, pl_percent=0.0, pl_usd=0.0)

        if position.is_long:
            pl_percent = (price - entry) / entry * 100.0
        else:
            pl_percent = (entry - price) / entry * 100.0

        operated = float(position.margin) * int(position.leverage)
        pl_usd = pl_percent / 100.0 * operated
        return Valuation(position_id=position.id, price=price, pl_percent=pl_percent, pl_usd=pl_usd)

    @staticmethod
    def stream_price(position: Position, prices: Mapping[str, PriceTick]) -> Optional[float]:
        """Live price for the position's pair, or None if the stream has not seen it."""
        tick = prices.get(position.pair)
        if tick is None or not tick.price:
            return None
        return float(tick.price)

    @classmethod
    def known_price(cls, position: Position, prices: Mapping[str, PriceTick]) -> Optional[float]:
        """Stream price, falling back to the last persisted current_price."""
        live = cls.stream_price(position, prices)
        if live is not None:
            return live
        if position.current_price:
            return float(position.current_price)
        return None

    @classmethod
    def latest_price(cls, position: Position, prices: Mapping[str, PriceTick]) -> float:
        """Stream price -> last persisted current_price -> entry_price."""
        known = cls.known_price(position, prices)
        if known is not None:
            return known
        return float(position.entry_price)

    @staticmethod
    def detect_crossing(position: Position, price: float, tolerance: float = 0.0001) -> Optional[PositionStatus]:
        """
        Return TAKE_PROFIT_HIT / STOP_LOSS_HIT if `price` crossed a target,
        else None. Take profit wins when both qualify.

        The tolerance band (1 bp by default) counts a price a hair short of the
        level as a hit:
          LONG : tp hit if price >= tp*(1-tol), sl hit if price <= sl*(1+tol)
          SHORT: tp hit if price <= tp*(1+tol), sl hit if price >= sl*(1-tol)
        """
        lower = 1.0 - tolerance
        upper = 1.0 + tolerance
        tp = position.take_profit
        sl = position.stop_loss

        if position.is_long:
            tp_hit = tp is not None and price >= tp * lower
            sl_hit = sl is not None and price <= sl * upper
        else:
            tp_hit = tp is not None and price <= tp * upper
            sl_hit = sl is not None and price >= sl * lower

        if tp_hit:
            return PositionStatus.TAKE_PROFIT_HIT
        if sl_hit:
            return PositionStatus.STOP_LOSS_HIT
        return None

    @classmethod
    def progress_to_target(cls, position: Position, price: float) -> float:
        """
        How far (in %) the position has travelled toward the target on its
        current side: toward take_profit while in profit, toward stop_loss while
        in loss. 0 when the relevant target is missing or degenerate.
        """
        pl_percent = cls.valuate(position, price).pl_percent
        progress_tp = 0.0
        progress_sl = 0.0

        if pl_percent > 0 and position.take_profit:
            max_gain = cls.valuate(position, position.take_profit).pl_percent
            if max_gain > 0:
                progress_tp = pl_percent / max_gain * 100.0

        if pl_percent < 0 and position.stop_loss:
            max_loss = cls.valuate(position, position.stop_loss).pl_percent
            if max_loss < 0:
                progress_sl = pl_percent / max_loss * 100.0

        return max(progress_tp, progress_sl)

    @classmethod
    def open_pl_usd(cls, positions: Iterable[Position], prices: Mapping[str, PriceTick]) -> float:
        """Sum of unrealised P/L across ACTIVE positions at their latest price."""
        total = 0.0
        for p in positions:
            if not p.is_active:
                continue
            total += cls.valuate(p, cls.latest_price(p, prices)).pl_usd
        return total
