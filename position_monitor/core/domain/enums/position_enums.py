# position_monitor/core/domain/enums/position_enums.py

from enum import Enum


class PositionSide(str, Enum):
    """
    Direction of a leveraged position.
    Stored trade documents still use BUY/SELL; those are mapped on load.
    """
    LONG = "LONG"
    SHORT = "SHORT"


class PositionStatus(str, Enum):
    """
    Lifecycle of a position. Only ACTIVE positions are monitored;
    every other status is terminal for the monitor.
    """
    ACTIVE = "ACTIVE"
    TAKE_PROFIT_HIT = "TAKE_PROFIT_HIT"
    STOP_LOSS_HIT = "STOP_LOSS_HIT"
    CLOSED = "CLOSED"


class ConditionType(str, Enum):
    """
    What a user alert rule compares against.
    """
    PRICE = "price"                  # last price >= condition_value
    PL_PERCENTAGE = "pl_percentage"  # signed threshold on P/L %
    PL_USD = "pl_usd"                # signed threshold on P/L in quote currency

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class NotificationKind(str, Enum):
    TP_SL = "TP_SL"
    RULE_ALERT = "RULE_ALERT"
    POSITION_OPENED = "POSITION_OPENED"
    PROGRESS = "PROGRESS"


class ConnectionState(str, Enum):
    """
    Price stream connection lifecycle.
    DISCONNECTED -> CONNECTING -> CONNECTED -> (ERROR) -> DISCONNECTED
    """
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"
