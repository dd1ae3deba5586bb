from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from ..database import MongoBaseModel
from .common import Pagination


SchoolLevel = Literal["primary", "secondary", "tertiary"]
SchoolStatus = Literal["active", "inactive"]


class SchoolCreate(BaseModel):
    name: str = Field(min_length=1)
    contact_person: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    location: Optional[str] = None
    school_type: SchoolLevel = "primary"
    student_count: Optional[int] = Field(default=None, ge=0)
    status: SchoolStatus = "active"


class School(MongoBaseModel):
    id: str = Field(alias="_id")
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    location: Optional[str] = None
    school_type: SchoolLevel = "primary"
    student_count: Optional[int] = None
    computers_received: int = 0
    status: SchoolStatus = "active"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SchoolList(BaseModel):
    schools: List[School]
    pagination: Pagination
