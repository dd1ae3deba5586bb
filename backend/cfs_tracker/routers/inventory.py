from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from ..dependencies import Donations, Engine, Inventory, Matcher
from ..models.inventory import FulfillmentRequest, FulfillmentResult, InventoryItem, InventoryUpdate
from ..schemas.documents import serialize_document, to_object_id
from .auth import AdminUser

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


async def _with_donor_names(donations, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    donation_ids = list({doc["donation_id"] for doc in documents if doc.get("donation_id") is not None})
    names: Dict[Any, str] = {}
    if donation_ids:
        async for donation in donations.find({"_id": {"$in": donation_ids}}, {"donor_name": 1}):
            names[donation["_id"]] = donation.get("donor_name")
    return [{**doc, "donor_name": names.get(doc.get("donation_id"))} for doc in documents]


@router.get("", response_model=List[InventoryItem])
async def list_inventory(
    _: AdminUser,
    inventory: Inventory,
    donations: Donations,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    condition: Optional[str] = None,
    donation_id: Optional[str] = None,
) -> List[InventoryItem]:
    query: Dict[str, Any] = {}
    if status_filter:
        query["status"] = status_filter
    if condition:
        query["condition_received"] = condition
    if donation_id:
        query["donation_id"] = to_object_id(donation_id)
    documents = [doc async for doc in inventory.find(query).sort("created_at", -1)]
    documents = await _with_donor_names(donations, documents)
    return [InventoryItem(**serialize_document(doc)) for doc in documents]


@router.post("/fulfill", response_model=FulfillmentResult)
async def fulfill_request(payload: FulfillmentRequest, admin: AdminUser, matcher: Matcher) -> FulfillmentResult:
    result = await matcher.fulfill(payload.inventoryItemIds, payload.requestId, actor_id=admin.id)
    return FulfillmentResult(**result)


@router.get("/{item_id}", response_model=InventoryItem)
async def get_inventory_item(item_id: str, _: AdminUser, inventory: Inventory) -> InventoryItem:
    object_id = to_object_id(item_id)
    item = await inventory.find_one({"_id": object_id}) if object_id else None
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inventory item not found")
    return InventoryItem(**serialize_document(item))


@router.patch("/{item_id}", response_model=InventoryItem)
async def update_inventory_item(
    item_id: str,
    payload: InventoryUpdate,
    admin: AdminUser,
    engine: Engine,
) -> InventoryItem:
    updated = await engine.update_inventory_item(item_id, payload.model_dump(exclude_none=True), actor_id=admin.id)
    return InventoryItem(**serialize_document(updated))
