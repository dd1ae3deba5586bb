from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pymongo.errors import PyMongoError

from ..dependencies import Database, Donations, Engine
from ..memory.status_history import StatusHistory
from ..models.common import Pagination
from ..models.donation import Donation, DonationCreate, DonationCreated, DonationList, DonationStats, DonationStatusUpdate
from ..schemas.documents import date_to_storage, serialize_document, serialize_documents, to_object_id
from ..utils.logging import log_db_error
from .auth import AdminUser, CurrentUser, OptionalUser, ensure_owner_or_admin

router = APIRouter(prefix="/api/donations", tags=["donations"])


@router.post("", response_model=DonationCreated, status_code=status.HTTP_201_CREATED)
async def create_donation(payload: DonationCreate, donations: Donations, user: OptionalUser) -> DonationCreated:
    now = datetime.utcnow()
    document = {
        **payload.model_dump(),
        "pickup_date": date_to_storage(payload.pickup_date),
        "user_id": to_object_id(user.id) if user else None,
        "status": "pending",
        "created_at": now,
        "updated_at": now,
    }
    try:
        result = await donations.insert_one(document)
    except PyMongoError as exc:
        log_db_error("create_donation", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to submit donation.") from exc
    return DonationCreated(
        message="Donation submitted successfully. We will contact you within 24 hours.",
        donation_id=str(result.inserted_id),
    )


@router.get("", response_model=DonationList)
async def list_donations(
    _: AdminUser,
    donations: Donations,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> DonationList:
    query: Dict[str, Any] = {"status": status_filter} if status_filter else {}
    total = await donations.count_documents(query)
    cursor = donations.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    items = [Donation(**serialize_document(doc)) async for doc in cursor]
    return DonationList(donations=items, pagination=Pagination.build(total, page, limit))


@router.get("/mine", response_model=DonationList)
async def list_my_donations(user: CurrentUser, donations: Donations) -> DonationList:
    cursor = donations.find({"user_id": to_object_id(user.id)}).sort("created_at", -1)
    return DonationList(donations=[Donation(**serialize_document(doc)) async for doc in cursor])


@router.get("/stats", response_model=DonationStats)
async def donation_stats(_: AdminUser, donations: Donations) -> DonationStats:
    total_computers = 0
    async for doc in donations.find({}, {"quantity": 1}):
        total_computers += doc.get("quantity") or 0
    return DonationStats(
        total_donations=await donations.count_documents({}),
        total_computers=total_computers,
        delivered_donations=await donations.count_documents({"status": "delivered"}),
        pending_donations=await donations.count_documents({"status": "pending"}),
    )


@router.get("/{donation_id}", response_model=Donation)
async def get_donation(donation_id: str, user: CurrentUser, donations: Donations) -> Donation:
    object_id = to_object_id(donation_id)
    donation = await donations.find_one({"_id": object_id}) if object_id else None
    if not donation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")
    donation = serialize_document(donation)
    ensure_owner_or_admin(user, donation.get("user_id"))
    return Donation(**donation)


@router.patch("/{donation_id}/status", response_model=Donation)
async def update_donation_status(
    donation_id: str,
    payload: DonationStatusUpdate,
    admin: AdminUser,
    engine: Engine,
) -> Donation:
    updated = await engine.apply_donation_status(
        donation_id,
        payload.status,
        collection_date=payload.collection_date,
        actor_id=admin.id,
    )
    return Donation(**serialize_document(updated))


@router.get("/{donation_id}/history")
async def donation_history(donation_id: str, _: AdminUser, database: Database) -> Dict[str, List[Dict[str, Any]]]:
    object_id = to_object_id(donation_id)
    if object_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")
    entries = await StatusHistory(database.get_collection("status_history")).history("donation", object_id)
    return {"history": serialize_documents(entries)}
