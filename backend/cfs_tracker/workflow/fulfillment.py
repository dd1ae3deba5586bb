from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from loguru import logger
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from ..schemas.documents import to_object_id
from ..utils.logging import log_db_error
from .base import WorkflowBase, storage_errors
from .errors import (
    InvalidFulfillment,
    InvalidTransition,
    NotFound,
    PartialFulfillmentInconsistency,
    StorageError,
)

UNASSIGNABLE = ("delivered", "unusable")
FULFILLABLE = ("approved", "fulfilled")


def _unique(values: Iterable[Any]) -> List[Any]:
    seen = set()
    ordered = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


class FulfillmentMatcher(WorkflowBase):
    """Assigns inventory to a school request until its quantity is met.

    The multi-step update runs as a saga: items are stamped with a batch id
    when marked delivered, and any later failure puts them (and the request
    status) back before the error is raised.
    """

    async def _increment_school_counter(self, request: Dict[str, Any], count: int) -> Optional[int]:
        if request.get("school_id") is not None:
            school_filter: Dict[str, Any] = {"_id": request["school_id"]}
        else:
            school_filter = {"name": request.get("school_name")}
        school = await self.schools.find_one_and_update(
            school_filter,
            {"$inc": {"computers_received": count}, "$set": {"updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if school is None:
            logger.info("No school record for request {}; impact counter not updated", request["_id"])
            return None
        return school["computers_received"]

    async def _compensate(
        self,
        batch: str,
        items: List[Dict[str, Any]],
        request: Dict[str, Any],
        restore_status: Optional[str],
    ) -> None:
        groups: Dict[Tuple[str, Any], List[Any]] = defaultdict(list)
        for item in items:
            groups[(item["status"], item.get("assigned_school_request"))].append(item["_id"])
        try:
            for (status, assigned), ids in groups.items():
                await self.inventory.update_many(
                    {"_id": {"$in": ids}, "fulfillment_batch": batch},
                    {
                        "$set": {"status": status, "assigned_school_request": assigned, "updated_at": datetime.utcnow()},
                        "$unset": {"fulfillment_batch": "", "delivered_at": ""},
                    },
                )
            if restore_status is not None:
                await self.requests.update_one({"_id": request["_id"]}, {"$set": {"status": restore_status}})
        except PyMongoError as exc:
            logger.critical(
                "Fulfillment rollback failed for request {} (batch {}): {}", request["_id"], batch, exc
            )
            raise PartialFulfillmentInconsistency(
                "Fulfillment failed and could not be rolled back; inventory needs manual review"
            ) from exc
        logger.warning("Rolled back fulfillment batch {} for request {}", batch, request["_id"])

    async def fulfill(
        self,
        inventory_item_ids: Iterable[Any],
        request_id: Any,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        raw_ids = _unique(str(value) for value in inventory_item_ids)
        if not raw_ids:
            raise InvalidFulfillment("At least one inventory item is required")

        with storage_errors("fulfill"):
            request = await self._get(self.requests, request_id, "School request")
            object_ids = []
            for raw in raw_ids:
                object_id = to_object_id(raw)
                if object_id is None:
                    raise NotFound(f"Inventory item {raw} not found")
                object_ids.append(object_id)
            items = [doc async for doc in self.inventory.find({"_id": {"$in": object_ids}})]

        found = {item["_id"] for item in items}
        missing = [str(object_id) for object_id in object_ids if object_id not in found]
        if missing:
            raise NotFound(f"Inventory item(s) not found: {', '.join(missing)}")
        if request["status"] not in FULFILLABLE:
            raise InvalidTransition(f"Only approved requests can receive inventory (request is {request['status']})")
        unavailable = [str(item["_id"]) for item in items if item["status"] in UNASSIGNABLE]
        if unavailable:
            raise InvalidFulfillment(
                f"Inventory item(s) already delivered or unusable: {', '.join(unavailable)}",
                status_code=409,
            )

        batch = uuid4().hex
        now = datetime.utcnow()
        try:
            result = await self.inventory.update_many(
                {"_id": {"$in": object_ids}, "status": {"$nin": list(UNASSIGNABLE)}},
                {
                    "$set": {
                        "status": "delivered",
                        "assigned_school_request": request["_id"],
                        "fulfillment_batch": batch,
                        "delivered_at": now,
                        "updated_at": now,
                    }
                },
            )
        except PyMongoError as exc:
            log_db_error("fulfill", exc)
            raise StorageError("Failed to assign inventory items") from exc
        if result.modified_count != len(object_ids):
            await self._compensate(batch, items, request, None)
            raise InvalidFulfillment(
                "Some inventory items were assigned by another request; nothing was changed",
                status_code=409,
            )

        previous_status = request["status"]
        request_status = previous_status
        status_changed = False
        quantity = int(request["quantity"])
        try:
            assigned_count = await self.inventory.count_documents({"assigned_school_request": request["_id"]})
            if assigned_count >= quantity and previous_status != "fulfilled":
                await self.requests.update_one(
                    {"_id": request["_id"]},
                    {"$set": {"status": "fulfilled", "updated_at": now}},
                )
                status_changed = True
                request_status = "fulfilled"
            school_total = await self._increment_school_counter(request, len(object_ids))
        except PyMongoError as exc:
            log_db_error("fulfill", exc)
            await self._compensate(batch, items, request, previous_status if status_changed else None)
            raise StorageError("Fulfillment failed; inventory assignment was rolled back") from exc

        if status_changed:
            await self._record("school_request", request["_id"], previous_status, "fulfilled", actor_id, ("fulfillment",))
        logger.info(
            "Assigned {} item(s) to request {} ({}/{})", len(object_ids), request["_id"], assigned_count, quantity
        )
        await self._publish(
            "request_fulfilled" if status_changed else "inventory_assigned",
            {
                "request_id": request["_id"],
                "items": object_ids,
                "assigned_count": assigned_count,
                "quantity": quantity,
                "school_computers_received": school_total,
            },
        )
        if request_status == "fulfilled":
            message = "Request fulfilled and inventory updated successfully"
        else:
            message = f"{len(object_ids)} computer(s) assigned to school ({assigned_count}/{quantity} delivered)"
        return {
            "message": message,
            "request_id": str(request["_id"]),
            "assigned_count": assigned_count,
            "requested_quantity": quantity,
            "request_status": request_status,
            "delivered_items": [str(object_id) for object_id in object_ids],
        }
