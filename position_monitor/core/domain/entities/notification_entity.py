# position_monitor/core/domain/entities/notification_entity.py

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..enums.position_enums import NotificationKind, PositionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(BaseModel):
    """
    Transient on-screen alert owned by the NotificationManager.

    `id` is the dedup key: at most one notification with a given id is queued.
    `dismiss_at` is None while the user hovers it (expiry paused).
    """

    id: str
    kind: NotificationKind
    position_id: str
    title: str
    message: str = ""

    # position snapshot + triggering values (price, P/L, rule, progress...)
    payload: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=_utcnow)
    dismiss_at: Optional[datetime] = None

    # explicit per-notification expiry; None means the manager default
    dismiss_after_sec: Optional[float] = None

    @staticmethod
    def tp_sl_id(position_id: str, status: PositionStatus) -> str:
        return f"position-{position_id}-{status.value}"

    @staticmethod
    def rule_id(rule_id: str) -> str:
        return f"rule-{rule_id}"

    @staticmethod
    def opened_id(position_id: str) -> str:
        return f"opened-{position_id}"

    @staticmethod
    def progress_id(position_id: str) -> str:
        return f"progress-{position_id}"
