# position_monitor/core/domain/entities/alert_rule_entity.py

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, model_validator

from ..enums.position_enums import ConditionType


class AlertRule(BaseModel):
    """
    User-defined threshold alert attached to one position.

    condition_value is signed for the P/L conditions:
      >= 0 -> fire when the metric rises to or above it
      <  0 -> fire when the metric falls to or below it
    PRICE rules always fire on "price >= condition_value".
    """

    id: str
    position_id: str
    name: str = "Alert"
    condition_type: ConditionType
    condition_value: float
    is_active: bool = True
    triggered_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _map_stored_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        doc = dict(data)
        if "id" not in doc and "_id" in doc:
            doc["id"] = str(doc["_id"])
        if "position_id" not in doc and "trade_id" in doc:
            doc["position_id"] = doc["trade_id"]
        if doc.get("position_id") is not None:
            doc["position_id"] = str(doc["position_id"])
        if not doc.get("name"):
            doc.pop("name", None)
        return doc

    @property
    def is_armed(self) -> bool:
        """Dormant rules (inactive or already triggered) are never evaluated."""
        return self.is_active and self.triggered_at is None
