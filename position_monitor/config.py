import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _csv(s: str | None) -> list[str]:
    if not s:
        return []
    return [x.strip().upper() for x in s.split(",") if x.strip()]


def _bool(s: str | None, default: bool = False) -> bool:
    if s is None:
        return default
    return str(s).strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass
class Settings:
    # storage
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "trading_db"

    # market data
    BINANCE_WS_URL: str = "wss://stream.binance.com:9443"
    QUOTE_ASSETS: list[str] = field(default_factory=lambda: ["USDT", "USDC"])
    RECONNECT_BASE_MS: int = 1000
    RECONNECT_MAX_MS: int = 30000

    # monitor cadence / tolerances
    CHECK_INTERVAL_SEC: float = 1.0
    BACKGROUND_UPDATE_DELAY_SEC: float = 30.0
    THRESHOLD_TOLERANCE: float = 0.0001     # 1 basis point around TP/SL
    POSITIONS_REFRESH_SEC: float = 5.0
    RULES_REFRESH_SEC: float = 5.0

    # notifications
    DISMISS_AFTER_SEC: float = 7.0
    PROGRESS_ALERT_PCT: float = 60.0
    PROGRESS_DISMISS_AFTER_SEC: float = 30.0
    OS_NOTIFICATIONS_ENABLED: bool = True
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""

    # generic
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        MONGODB_URI=os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
        MONGODB_DB_NAME=os.getenv("MONGODB_DB_NAME", "trading_db"),
        BINANCE_WS_URL=os.getenv("BINANCE_WS_URL", "wss://stream.binance.com:9443"),
        QUOTE_ASSETS=_csv(os.getenv("QUOTE_ASSETS", "USDT,USDC")),
        RECONNECT_BASE_MS=int(os.getenv("RECONNECT_BASE_MS", "1000")),
        RECONNECT_MAX_MS=int(os.getenv("RECONNECT_MAX_MS", "30000")),
        CHECK_INTERVAL_SEC=float(os.getenv("CHECK_INTERVAL_SEC", "1")),
        BACKGROUND_UPDATE_DELAY_SEC=float(os.getenv("BACKGROUND_UPDATE_DELAY_SEC", "30")),
        THRESHOLD_TOLERANCE=float(os.getenv("THRESHOLD_TOLERANCE", "0.0001")),
        POSITIONS_REFRESH_SEC=float(os.getenv("POSITIONS_REFRESH_SEC", "5")),
        RULES_REFRESH_SEC=float(os.getenv("RULES_REFRESH_SEC", "5")),
        DISMISS_AFTER_SEC=float(os.getenv("DISMISS_AFTER_SEC", "7")),
        PROGRESS_ALERT_PCT=float(os.getenv("PROGRESS_ALERT_PCT", "60")),
        PROGRESS_DISMISS_AFTER_SEC=float(os.getenv("PROGRESS_DISMISS_AFTER_SEC", "30")),
        OS_NOTIFICATIONS_ENABLED=_bool(os.getenv("OS_NOTIFICATIONS_ENABLED"), default=True),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        TELEGRAM_CHAT_ID=os.getenv("TELEGRAM_CHAT_ID", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
