from typing import Any, Dict

from ..domain.entities.alert_rule_entity import AlertRule
from ..domain.entities.notification_entity import Notification
from ..domain.entities.position_entity import Position, Valuation
from ..domain.enums.position_enums import ConditionType, NotificationKind, PositionStatus


def _signed_usd(v: float) -> str:
    return f"{'+' if v >= 0 else '-'}${abs(v):,.2f}"


def _snapshot(position: Position, valuation: Valuation | None = None) -> Dict[str, Any]:
    snap = {"position": position.model_dump(mode="json")}
    if valuation is not None:
        snap["valuation"] = valuation.model_dump(mode="json")
    return snap


def condition_text(rule: AlertRule) -> str:
    value = rule.condition_value
    if rule.condition_type == ConditionType.PRICE:
        return f"Price crossed ${value:,.2f}"
    if rule.condition_type == ConditionType.PL_PERCENTAGE:
        return f"P/L crossed {'+' if value >= 0 else ''}{value:g}%"
    return f"P/L crossed {_signed_usd(value)}"


def tp_sl_notification(position: Position, status: PositionStatus, valuation: Valuation) -> Notification:
    title = "Take Profit hit!" if status == PositionStatus.TAKE_PROFIT_HIT else "Stop Loss hit!"
    payload = _snapshot(position, valuation)
    payload["status"] = status.value
    return Notification(
        id=Notification.tp_sl_id(position.id, status),
        kind=NotificationKind.TP_SL,
        position_id=position.id,
        title=title,
        message=f"{position.pair} {_signed_usd(valuation.pl_usd)}",
        payload=payload,
    )


def rule_alert_notification(rule: AlertRule, position: Position, valuation: Valuation) -> Notification:
    payload = _snapshot(position, valuation)
    payload["rule"] = rule.model_dump(mode="json")
    return Notification(
        id=Notification.rule_id(rule.id),
        kind=NotificationKind.RULE_ALERT,
        position_id=position.id,
        title=rule.name,
        message=f"{position.pair} - {condition_text(rule)}",
        payload=payload,
    )


def position_opened_notification(position: Position) -> Notification:
    return Notification(
        id=Notification.opened_id(position.id),
        kind=NotificationKind.POSITION_OPENED,
        position_id=position.id,
        title="Position opened",
        message=f"{position.pair} - {position.side.value} {position.leverage}x @ {position.entry_price:g}",
        payload=_snapshot(position),
    )


def progress_notification(
    position: Position, valuation: Valuation, progress: float, dismiss_after_sec: float
) -> Notification:
    payload = _snapshot(position, valuation)
    payload["progress"] = progress
    return Notification(
        id=Notification.progress_id(position.id),
        kind=NotificationKind.PROGRESS,
        position_id=position.id,
        title=f"{position.pair} reached {progress:.0f}% of target",
        message=f"{'+' if valuation.pl_usd >= 0 else ''}{valuation.pl_percent:.2f}% ({_signed_usd(valuation.pl_usd)})",
        payload=payload,
        dismiss_after_sec=dismiss_after_sec,
    )
