from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorCollection


class StatusHistory:
    """Append-only log of every applied status transition."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def log(
        self,
        entity: str,
        entity_id: Any,
        from_status: Optional[str],
        to_status: str,
        actor_id: Optional[str] = None,
        side_effects: Sequence[str] = (),
        note: Optional[str] = None,
    ) -> None:
        document = {
            "entity": entity,
            "entity_id": entity_id,
            "from_status": from_status,
            "to_status": to_status,
            "actor_id": actor_id,
            "side_effects": list(side_effects),
            "note": note,
            "timestamp": datetime.utcnow(),
        }
        await self.collection.insert_one(document)

    async def history(self, entity: str, entity_id: Any, limit: int = 50) -> List[Dict[str, Any]]:
        cursor = self.collection.find({"entity": entity, "entity_id": entity_id}).sort("timestamp", -1).limit(limit)
        return [doc async for doc in cursor]
