# position_monitor/core/domain/entities/position_entity.py

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..enums.position_enums import PositionSide, PositionStatus


_LEGACY_SIDES = {"BUY": PositionSide.LONG, "SELL": PositionSide.SHORT}


class Position(BaseModel):
    """
    Canonical in-memory representation of a document in the 'positions'
    collection (called "trades" by the dashboard that creates them).

    The monitor reads it, revalues it and writes back status / current_price /
    P/L fields. It never creates or deletes positions.
    """

    id: str
    pair: str  # application format, e.g. "BTC/USDT"
    side: PositionSide
    entry_price: float = Field(..., ge=0)
    margin: float = Field(0.0, ge=0)
    leverage: int = Field(1, ge=1)

    take_profit: Optional[float] = None
    stop_loss: Optional[float] = None

    status: PositionStatus = PositionStatus.ACTIVE

    # last observed values, written by the monitor
    current_price: Optional[float] = None
    profit_loss_percentage: Optional[float] = None
    profit_loss_usd: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _map_stored_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        doc = dict(data)
        if "id" not in doc and "_id" in doc:
            doc["id"] = str(doc["_id"])
        if "side" not in doc and "type" in doc:
            doc["side"] = doc["type"]
        if "margin" not in doc and "entry_amount" in doc:
            doc["margin"] = doc["entry_amount"]
        if doc.get("leverage") in (None, 0):
            doc["leverage"] = 1
        if doc.get("margin") is None:
            doc["margin"] = 0.0
        return doc

    @field_validator("side", mode="before")
    @classmethod
    def _legacy_side(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().upper()
            return _LEGACY_SIDES.get(v, v)
        return v

    @field_validator("take_profit", "stop_loss", mode="before")
    @classmethod
    def _zero_means_unset(cls, v: Any) -> Any:
        # dashboard stores 0 / "" for "no target"
        if v in (0, 0.0, "", None):
            return None
        return v

    @property
    def is_active(self) -> bool:
        return self.status == PositionStatus.ACTIVE

    @property
    def is_long(self) -> bool:
        return self.side == PositionSide.LONG

    def with_updates(self, fields: Dict[str, Any]) -> "Position":
        """Return a copy with persisted partial fields applied."""
        known = {k: v for k, v in fields.items() if k in type(self).model_fields}
        return type(self).model_validate({**self.model_dump(), **known})


class Valuation(BaseModel):
    """
    Result of revaluing a position at a given price.
    """

    position_id: str
    price: float
    pl_percent: float
    pl_usd: float

    def as_update(self) -> Dict[str, float]:
        return {
            "current_price": self.price,
            "profit_loss_percentage": self.pl_percent,
            "profit_loss_usd": self.pl_usd,
        }
