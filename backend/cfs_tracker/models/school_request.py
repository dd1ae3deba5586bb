from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from ..database import MongoBaseModel
from .common import MAX_UNITS, Pagination


RequestComputerType = Literal["desktop", "laptop", "tablet", "any"]
RequestStatus = Literal["pending", "approved", "fulfilled", "rejected"]


class SchoolRequestCreate(BaseModel):
    school_name: str = Field(min_length=1)
    contact_person: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    location: str = Field(min_length=1)
    computer_type: RequestComputerType
    quantity: int = Field(ge=1, le=MAX_UNITS)
    justification: str = Field(
        min_length=1,
        validation_alias=AliasChoices("justification", "reason_for_request"),
    )


class SchoolRequest(MongoBaseModel):
    id: str = Field(alias="_id")
    user_id: Optional[str] = None
    school_id: Optional[str] = None
    school_name: str
    contact_person: str
    email: str
    phone: str
    location: str
    computer_type: RequestComputerType
    quantity: int
    justification: str
    status: RequestStatus
    admin_comment: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RequestStatusUpdate(BaseModel):
    status: str
    admin_comment: Optional[str] = None


class RequestStatusResult(BaseModel):
    message: str
    request: SchoolRequest


class SchoolRequestCreated(BaseModel):
    message: str
    request: SchoolRequest


class SchoolRequestList(BaseModel):
    requests: List[SchoolRequest]
    pagination: Optional[Pagination] = None


class SchoolRequestStats(BaseModel):
    total_requests: int
    total_computers_requested: int
    approved_requests: int
    pending_requests: int
    fulfilled_requests: int
