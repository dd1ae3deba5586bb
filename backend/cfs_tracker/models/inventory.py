from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..database import MongoBaseModel


InventoryComputerType = Literal["desktop", "laptop", "tablet"]
InventoryConditionReceived = Literal["working", "needs-repair", "not-working"]
InventoryConditionRefurbished = Literal["excellent", "good", "fair", "unusable"]
InventoryStatus = Literal["received", "in-refurbishment", "ready", "delivered", "unusable"]


class InventoryItem(MongoBaseModel):
    id: str = Field(alias="_id")
    donation_id: str
    unit_index: Optional[int] = None
    computer_type: InventoryComputerType
    status: InventoryStatus
    condition_received: InventoryConditionReceived
    condition_after_refurbishment: Optional[InventoryConditionRefurbished] = None
    refurbishment_notes: Optional[str] = None
    serial_number: str
    assigned_school_request: Optional[str] = None
    delivered_at: Optional[datetime] = None
    donor_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InventoryUpdate(BaseModel):
    computer_type: Optional[InventoryComputerType] = None
    # Validated by the workflow so an unknown value is a 400, not a 422.
    status: Optional[str] = None
    condition_after_refurbishment: Optional[InventoryConditionRefurbished] = None
    refurbishment_notes: Optional[str] = None
    serial_number: Optional[str] = Field(default=None, min_length=1)


class FulfillmentRequest(BaseModel):
    requestId: str
    inventoryItemIds: List[str]


class FulfillmentResult(BaseModel):
    message: str
    request_id: str
    assigned_count: int
    requested_quantity: int
    request_status: str
    delivered_items: List[str]
