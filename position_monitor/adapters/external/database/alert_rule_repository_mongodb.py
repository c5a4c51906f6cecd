# position_monitor/adapters/external/database/alert_rule_repository_mongodb.py

import logging
import time
from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from ....core.domain.entities.alert_rule_entity import AlertRule
from ....core.domain.exceptions import PersistenceError
from ....core.repositories.alert_rule_repository import AlertRuleRepository


class AlertRuleRepositoryMongoDB(AlertRuleRepository):
    """
    Mongo implementation for user alert rules.
    """

    COLLECTION = "alert_rules"

    def __init__(self, db: AsyncIOMotorDatabase, logger: Optional[logging.Logger] = None):
        self._col = db[self.COLLECTION]
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [("is_active", 1), ("triggered_at", 1)],
            name="ix_active_triggered",
        )
        await self._col.create_index([("position_id", 1)], name="ix_position")

    async def list_active_rules(self) -> List[AlertRule]:
        try:
            cursor = self._col.find({"is_active": True, "triggered_at": None})
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise PersistenceError("list_active_rules", None, str(exc)) from exc

        rules: List[AlertRule] = []
        for d in docs:
            try:
                rules.append(AlertRule.model_validate(d))
            except ValidationError as exc:
                self._logger.warning("Skipping alert rule %s: %s", d.get("_id"), exc)
        return rules

    async def deactivate(self, rule_id: str, triggered_at: datetime) -> None:
        key = {"_id": {"$in": [ObjectId(rule_id), rule_id]}} if ObjectId.is_valid(rule_id) else {"_id": rule_id}
        try:
            res = await self._col.update_one(
                key,
                {
                    "$set": {
                        "is_active": False,
                        "triggered_at": triggered_at,
                        "updated_at": int(time.time() * 1000),
                    }
                },
            )
        except PyMongoError as exc:
            raise PersistenceError("deactivate", rule_id, str(exc)) from exc
        if res.matched_count == 0:
            raise PersistenceError("deactivate", rule_id, "no such rule")
