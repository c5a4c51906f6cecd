# position_monitor/core/domain/entities/price_tick_entity.py

from pydantic import BaseModel, Field


class PriceTick(BaseModel):
    """
    Latest 24h ticker for one pair. Held only in the stream client's symbol
    map; each new tick replaces the previous one (last value wins).
    """

    symbol: str  # application pair, e.g. "BTC/USDT"
    price: float = Field(..., gt=0)
    high: float
    low: float
    change24h: float       # percent
    change24h_abs: float   # quote currency
    received_at: int       # unix ms
