from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from ..database import MongoBaseModel
from .common import MAX_UNITS, Pagination


DonationComputerType = Literal["desktop", "laptop", "tablet", "mixed"]
DonationCondition = Literal["working", "needs-repair", "not-working", "mixed"]
DonationStatus = Literal["pending", "approved", "collected", "processing", "delivered", "rejected"]


class DonationCreate(BaseModel):
    donor_name: str = Field(min_length=1, max_length=200)
    organization: Optional[str] = None
    email: EmailStr
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    computer_type: DonationComputerType
    quantity: int = Field(ge=1, le=MAX_UNITS)
    condition_status: DonationCondition
    pickup_date: Optional[date] = None
    message: Optional[str] = None


class Donation(MongoBaseModel):
    id: str = Field(alias="_id")
    user_id: Optional[str] = None
    donor_name: str
    organization: Optional[str] = None
    email: str
    phone: str
    address: str
    computer_type: DonationComputerType
    quantity: int
    condition_status: DonationCondition
    pickup_date: Optional[str] = None
    message: Optional[str] = None
    status: DonationStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DonationStatusUpdate(BaseModel):
    # Plain str so unknown values reach the workflow and come back as 400.
    status: str
    collection_date: Optional[date] = None


class DonationCreated(BaseModel):
    success: bool = True
    message: str
    donation_id: str


class DonationList(BaseModel):
    donations: List[Donation]
    pagination: Optional[Pagination] = None


class DonationStats(BaseModel):
    total_donations: int
    total_computers: int
    delivered_donations: int
    pending_donations: int
