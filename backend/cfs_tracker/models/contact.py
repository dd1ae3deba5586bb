from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, EmailStr, Field

from ..database import MongoBaseModel
from .common import Pagination


ContactStatus = Literal["unread", "read", "replied"]


class ContactMessageCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)


class ContactMessage(MongoBaseModel):
    id: str = Field(alias="_id")
    name: str
    email: str
    subject: str
    message: str
    status: ContactStatus
    created_at: datetime | None = None


class ContactStatusUpdate(BaseModel):
    status: ContactStatus


class ContactMessageCreated(BaseModel):
    message: str
    contactMessage: ContactMessage


class ContactMessageList(BaseModel):
    messages: List[ContactMessage]
    pagination: Pagination
