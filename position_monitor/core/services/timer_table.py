import asyncio
import logging
from typing import Callable, Dict, Hashable, List, Optional


class TimerTable:
    """
    Owned table of one-shot timers keyed by id (position id, notification id...).

    Wraps `loop.call_later` so a component can answer "is a timer pending for X?",
    replace it, cancel it, and cancel everything on teardown. A fired timer
    removes itself from the table before its callback runs.
    """

    def __init__(self, name: str = "timers", logger: Optional[logging.Logger] = None):
        self._name = name
        self._handles: Dict[Hashable, asyncio.TimerHandle] = {}
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._handles

    def keys(self) -> List[Hashable]:
        return list(self._handles.keys())

    def schedule(self, key: Hashable, delay_sec: float, callback: Callable[[], None]) -> None:
        """
        (Re)start the timer for `key`; any previous timer for the key is cancelled.
        Must be called from within the running event loop.
        """
        self.cancel(key)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(max(0.0, float(delay_sec)), self._fire, key, callback)
        self._handles[key] = handle

    def cancel(self, key: Hashable) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        n = len(self._handles)
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        if n:
            self._logger.debug("[%s] cancelled %d pending timer(s)", self._name, n)
        return n

    def _fire(self, key: Hashable, callback: Callable[[], None]) -> None:
        self._handles.pop(key, None)
        try:
            callback()
        except Exception as exc:
            self._logger.exception("[%s] timer callback for %s failed: %s", self._name, key, exc)
