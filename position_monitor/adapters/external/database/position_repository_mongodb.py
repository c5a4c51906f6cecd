# position_monitor/adapters/external/database/position_repository_mongodb.py

import logging
import time
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from ....core.domain.entities.position_entity import Position
from ....core.domain.enums.position_enums import PositionStatus
from ....core.domain.exceptions import InvalidDocumentError, PersistenceError
from ....core.repositories.position_repository import PositionRepository


def _key(position_id: str) -> Dict[str, Any]:
    # dashboard ids may be ObjectIds or plain strings
    if ObjectId.is_valid(position_id):
        return {"_id": {"$in": [ObjectId(position_id), position_id]}}
    return {"_id": position_id}


def _plain(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}


class PositionRepositoryMongoDB(PositionRepository):
    """
    Mongo implementation for positions (the dashboard's trade documents).
    """

    COLLECTION = "positions"

    def __init__(self, db: AsyncIOMotorDatabase, logger: Optional[logging.Logger] = None):
        self._col = db[self.COLLECTION]
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("status", 1), ("pair", 1)], name="ix_status_pair")

    def _to_entity(self, doc: Dict) -> Position:
        try:
            return Position.model_validate(doc)
        except ValidationError as exc:
            raise InvalidDocumentError(self.COLLECTION, str(doc.get("_id")), str(exc)) from exc

    async def list_active(self) -> List[Position]:
        try:
            cursor = self._col.find({"status": PositionStatus.ACTIVE.value})
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise PersistenceError("list_active", None, str(exc)) from exc

        out: List[Position] = []
        for d in docs:
            try:
                out.append(self._to_entity(d))
            except InvalidDocumentError as exc:
                self._logger.warning("Skipping position: %s", exc)
        return out

    async def get_by_id(self, position_id: str) -> Optional[Position]:
        try:
            doc = await self._col.find_one(_key(position_id))
        except PyMongoError as exc:
            raise PersistenceError("get_by_id", position_id, str(exc)) from exc
        if not doc:
            return None
        return self._to_entity(doc)

    async def update_partial(self, position_id: str, fields: Dict[str, Any]) -> None:
        now_ms = int(time.time() * 1000)
        try:
            res = await self._col.update_one(
                _key(position_id),
                {"$set": {**_plain(fields), "updated_at": now_ms}},
            )
        except PyMongoError as exc:
            raise PersistenceError("update_partial", position_id, str(exc)) from exc
        if res.matched_count == 0:
            raise PersistenceError("update_partial", position_id, "no such position")
