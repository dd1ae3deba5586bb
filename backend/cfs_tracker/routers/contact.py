from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from ..database import settings
from ..dependencies import ContactMessages
from ..models.common import Pagination
from ..models.contact import (
    ContactMessage,
    ContactMessageCreate,
    ContactMessageCreated,
    ContactMessageList,
    ContactStatusUpdate,
)
from ..schemas.documents import serialize_document, to_object_id
from ..utils.logging import log_db_error
from ..utils.notifications import EmailNotification, NotificationService, get_notifier
from .auth import AdminUser

router = APIRouter(prefix="/api/contact", tags=["contact"])


def contact_email(payload: ContactMessageCreate, recipient: str) -> EmailNotification:
    body = (
        "New Contact Message\n\n"
        f"Name: {payload.name}\n"
        f"Email: {payload.email}\n"
        f"Subject: {payload.subject}\n\n"
        f"{payload.message}\n\n"
        f"This message was sent from the {settings.organization_name} website contact form.\n"
    )
    return EmailNotification(to=recipient, subject=f"[New Contact] {payload.subject}", body=body, reply_to=payload.email)


@router.post("", response_model=ContactMessageCreated, status_code=status.HTTP_201_CREATED)
async def create_contact_message(
    payload: ContactMessageCreate,
    messages: ContactMessages,
    notifier: NotificationService = Depends(get_notifier),
) -> ContactMessageCreated:
    document = {**payload.model_dump(), "status": "unread", "created_at": datetime.utcnow()}
    try:
        result = await messages.insert_one(document)
        stored = await messages.find_one({"_id": result.inserted_id})
    except PyMongoError as exc:
        log_db_error("create_contact_message", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send message") from exc

    if settings.contact_email_to:
        try:
            await notifier.send_email(contact_email(payload, settings.contact_email_to))
        except Exception as exc:
            logger.warning("Contact notification failed: {}", exc)
    else:
        logger.warning("CONTACT_EMAIL_TO is not defined. Contact email will not be sent.")

    return ContactMessageCreated(
        message="Message sent successfully",
        contactMessage=ContactMessage(**serialize_document(stored)),
    )


@router.get("", response_model=ContactMessageList)
async def list_contact_messages(
    _: AdminUser,
    messages: ContactMessages,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> ContactMessageList:
    query: Dict[str, Any] = {"status": status_filter} if status_filter else {}
    total = await messages.count_documents(query)
    cursor = messages.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    items = [ContactMessage(**serialize_document(doc)) async for doc in cursor]
    return ContactMessageList(messages=items, pagination=Pagination.build(total, page, limit))


@router.patch("/{message_id}/status", response_model=ContactMessage)
async def update_contact_status(
    message_id: str,
    payload: ContactStatusUpdate,
    _: AdminUser,
    messages: ContactMessages,
) -> ContactMessage:
    object_id = to_object_id(message_id)
    updated = None
    if object_id:
        updated = await messages.find_one_and_update(
            {"_id": object_id},
            {"$set": {"status": payload.status}},
            return_document=ReturnDocument.AFTER,
        )
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return ContactMessage(**serialize_document(updated))
