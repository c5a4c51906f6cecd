from abc import ABC, abstractmethod

from ..domain.entities.notification_entity import Notification


class SystemNotifier(ABC):
    """
    Out-of-band "system notification" channel (push message, desktop toast...).
    Best effort only: implementations must swallow and log their own failures.
    """

    @property
    @abstractmethod
    def enabled(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def notify(self, notification: Notification) -> None:
        raise NotImplementedError
