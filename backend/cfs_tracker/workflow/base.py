from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Sequence

from bson import ObjectId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ..memory.status_history import StatusHistory
from ..schemas.documents import to_object_id
from ..utils.logging import log_db_error
from .errors import NotFound, StorageError


@dataclass
class WorkflowEvent:
    type: str
    payload: Dict[str, Any]


EventSink = Callable[[WorkflowEvent], Awaitable[None]]


@contextmanager
def storage_errors(context: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        log_db_error(context, exc)
        raise StorageError(f"Storage failure during {context.replace('_', ' ')}") from exc


def _to_serializable(payload: Any) -> Any:
    def _convert(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, ObjectId):
            return str(value)
        return str(value)

    return json.loads(json.dumps(payload, default=_convert))


class WorkflowBase:
    def __init__(self, database: AsyncIOMotorDatabase, event_sink: Optional[EventSink] = None) -> None:
        self.donations: AsyncIOMotorCollection = database.get_collection("donations")
        self.requests: AsyncIOMotorCollection = database.get_collection("school_requests")
        self.inventory: AsyncIOMotorCollection = database.get_collection("computer_inventory")
        self.users: AsyncIOMotorCollection = database.get_collection("users")
        self.schools: AsyncIOMotorCollection = database.get_collection("schools")
        self.history = StatusHistory(database.get_collection("status_history"))
        self.event_sink = event_sink

    @staticmethod
    async def _get(collection: AsyncIOMotorCollection, raw_id: Any, label: str) -> Dict[str, Any]:
        object_id = to_object_id(raw_id)
        document = await collection.find_one({"_id": object_id}) if object_id else None
        if document is None:
            raise NotFound(f"{label} not found")
        return document

    async def _record(
        self,
        entity: str,
        entity_id: Any,
        from_status: Optional[str],
        to_status: str,
        actor_id: Optional[str],
        side_effects: Sequence[str] = (),
        note: Optional[str] = None,
    ) -> None:
        try:
            await self.history.log(entity, entity_id, from_status, to_status, actor_id, side_effects, note)
        except PyMongoError as exc:
            # The transition itself is already committed.
            log_db_error("status_history", exc)

    async def _publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.event_sink is None:
            return
        try:
            await self.event_sink(WorkflowEvent(type=event_type, payload=_to_serializable(payload)))
        except Exception as exc:
            logger.warning("Event sink failed for {}: {}", event_type, exc)
