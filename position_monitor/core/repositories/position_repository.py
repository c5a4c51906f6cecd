from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..domain.entities.position_entity import Position


class PositionRepository(ABC):
    """
    Repository interface for the positions the monitor watches.
    Positions are created/closed by the dashboard; the monitor only reads
    them and writes partial updates (status, current_price, P/L).
    """

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_active(self) -> List[Position]:
        """
        Return every position with status ACTIVE.
        Documents that fail validation are skipped.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_by_id(self, position_id: str) -> Optional[Position]:
        raise NotImplementedError

    @abstractmethod
    async def update_partial(self, position_id: str, fields: Dict[str, Any]) -> None:
        """
        Apply a partial update. Raises PersistenceError on failure.
        """
        raise NotImplementedError
