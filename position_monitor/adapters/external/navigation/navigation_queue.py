import asyncio
import logging
from typing import Optional

from ....core.ports.navigator import Navigator


class NavigationQueue(Navigator):
    """
    Buffers "bring position X into view" requests for the presentation layer,
    which drains them over HTTP. Oldest requests are dropped when full.
    """

    def __init__(self, maxsize: int = 100, logger: Optional[logging.Logger] = None):
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def go_to_position(self, position_id: str) -> None:
        if self._queue.full():
            dropped = self._queue.get_nowait()
            self._logger.debug("Navigation queue full; dropping request for %s", dropped)
        self._queue.put_nowait(position_id)
        self._logger.info("Navigation requested to position %s", position_id)

    def pending(self) -> int:
        return self._queue.qsize()

    def next_nowait(self) -> Optional[str]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def next(self, timeout_sec: float) -> Optional[str]:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout_sec)
        except asyncio.TimeoutError:
            return None
