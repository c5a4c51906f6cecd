"""
Telegram push channel used as the "system notification" for monitor alerts.
Best effort: every failure is logged and ignored.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from ....core.domain.entities.notification_entity import Notification
from ....core.domain.enums.position_enums import NotificationKind
from ....core.ports.system_notifier import SystemNotifier


_ICONS = {
    NotificationKind.TP_SL: "🎯",
    NotificationKind.RULE_ALERT: "🔔",
    NotificationKind.POSITION_OPENED: "✅",
    NotificationKind.PROGRESS: "⚠️",
}


class TelegramNotifier(SystemNotifier):
    """
    Thin async wrapper around the Bot API sendMessage call.
    Disabled when the user preference is off or token/chat are missing.
    """

    def __init__(
        self,
        token: Optional[str],
        chat_id: Optional[str],
        preference_enabled: bool = True,
        timeout_sec: float = 10.0,
        base_url: str = "https://api.telegram.org",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._token = token
        self._chat_id = chat_id
        self._preference_enabled = preference_enabled
        self._timeout = timeout_sec
        self._base = f"{base_url.rstrip('/')}/bot{token}"
        self._transport = transport
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        if preference_enabled and not (token and chat_id):
            self._logger.warning(
                "Telegram not configured (missing TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID). "
                "System notifications will be skipped."
            )

    @property
    def enabled(self) -> bool:
        return bool(self._preference_enabled and self._token and self._chat_id)

    @staticmethod
    def format_text(notification: Notification) -> str:
        icon = _ICONS.get(notification.kind, "")
        title = f"{icon} {notification.title}".strip()
        if notification.message:
            return f"{title}\n{notification.message}"
        return title

    async def notify(self, notification: Notification) -> None:
        if not self.enabled:
            return
        payload: Dict[str, Any] = {
            "chat_id": self._chat_id,
            "text": self.format_text(notification),
            "disable_web_page_preview": True,
        }
        url = f"{self._base}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(url, json=payload)
                if r.status_code != 200:
                    self._logger.warning("[TELEGRAM] HTTP %s: %.300s", r.status_code, r.text)
                    return
                data = r.json()
                if not data.get("ok"):
                    self._logger.warning("[TELEGRAM] API not ok: %.300s", data)
                    return
                self._logger.debug("[TELEGRAM] sent %s", notification.id)
        except Exception as exc:
            self._logger.warning("[TELEGRAM] error sending %s: %s", notification.id, exc)
