from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from ..domain.entities.alert_rule_entity import AlertRule


class AlertRuleRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_active_rules(self) -> List[AlertRule]:
        """
        Return armed rules only (is_active and triggered_at unset).
        """
        raise NotImplementedError

    @abstractmethod
    async def deactivate(self, rule_id: str, triggered_at: datetime) -> None:
        """
        Set is_active=false and triggered_at. Raises PersistenceError on failure.
        """
        raise NotImplementedError
