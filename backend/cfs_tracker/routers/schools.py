from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pymongo.errors import PyMongoError

from ..dependencies import Engine, SchoolRequests, Schools
from ..models.common import Pagination
from ..models.school import School, SchoolCreate, SchoolList
from ..models.school_request import (
    RequestStatusResult,
    RequestStatusUpdate,
    SchoolRequest,
    SchoolRequestCreate,
    SchoolRequestCreated,
    SchoolRequestList,
    SchoolRequestStats,
)
from ..schemas.documents import serialize_document, to_object_id
from ..utils.logging import log_db_error
from .auth import AdminUser, CurrentUser, SchoolUser, ensure_owner_or_admin

router = APIRouter(prefix="/api/schools", tags=["schools"])


async def _find_school_id(schools, school_name: str) -> Any:
    school = await schools.find_one(
        {"name": {"$regex": f"^{re.escape(school_name.strip())}$", "$options": "i"}},
        {"_id": 1},
    )
    return school["_id"] if school else None


@router.post("/requests", response_model=SchoolRequestCreated, status_code=status.HTTP_201_CREATED)
async def create_school_request(
    payload: SchoolRequestCreate,
    user: SchoolUser,
    requests: SchoolRequests,
    schools: Schools,
) -> SchoolRequestCreated:
    now = datetime.utcnow()
    try:
        document = {
            **payload.model_dump(),
            "user_id": to_object_id(user.id),
            "school_id": await _find_school_id(schools, payload.school_name),
            "status": "pending",
            "admin_comment": None,
            "created_at": now,
            "updated_at": now,
        }
        result = await requests.insert_one(document)
        stored = await requests.find_one({"_id": result.inserted_id})
    except PyMongoError as exc:
        log_db_error("create_school_request", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create request") from exc
    return SchoolRequestCreated(
        message="School request submitted successfully",
        request=SchoolRequest(**serialize_document(stored)),
    )


@router.get("/requests", response_model=SchoolRequestList)
async def list_school_requests(
    _: AdminUser,
    requests: SchoolRequests,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> SchoolRequestList:
    query: Dict[str, Any] = {"status": status_filter} if status_filter else {}
    total = await requests.count_documents(query)
    cursor = requests.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    items = [SchoolRequest(**serialize_document(doc)) async for doc in cursor]
    return SchoolRequestList(requests=items, pagination=Pagination.build(total, page, limit))


@router.get("/requests/mine", response_model=SchoolRequestList)
async def list_my_school_requests(user: CurrentUser, requests: SchoolRequests) -> SchoolRequestList:
    cursor = requests.find({"user_id": to_object_id(user.id)}).sort("created_at", -1)
    return SchoolRequestList(requests=[SchoolRequest(**serialize_document(doc)) async for doc in cursor])


@router.get("/requests/stats", response_model=SchoolRequestStats)
async def school_request_stats(_: AdminUser, requests: SchoolRequests) -> SchoolRequestStats:
    total_computers = 0
    async for doc in requests.find({}, {"quantity": 1}):
        total_computers += doc.get("quantity") or 0
    return SchoolRequestStats(
        total_requests=await requests.count_documents({}),
        total_computers_requested=total_computers,
        approved_requests=await requests.count_documents({"status": "approved"}),
        pending_requests=await requests.count_documents({"status": "pending"}),
        fulfilled_requests=await requests.count_documents({"status": "fulfilled"}),
    )


@router.get("/requests/{request_id}", response_model=SchoolRequest)
async def get_school_request(request_id: str, user: CurrentUser, requests: SchoolRequests) -> SchoolRequest:
    object_id = to_object_id(request_id)
    request = await requests.find_one({"_id": object_id}) if object_id else None
    if not request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="School request not found")
    request = serialize_document(request)
    ensure_owner_or_admin(user, request.get("user_id"))
    return SchoolRequest(**request)


@router.patch("/requests/{request_id}/status", response_model=RequestStatusResult)
async def update_school_request_status(
    request_id: str,
    payload: RequestStatusUpdate,
    admin: AdminUser,
    engine: Engine,
) -> RequestStatusResult:
    result = await engine.apply_request_status(
        request_id,
        payload.status,
        admin_comment=payload.admin_comment,
        actor_id=admin.id,
    )
    return RequestStatusResult(
        message=result["message"],
        request=SchoolRequest(**serialize_document(result["request"])),
    )


@router.get("", response_model=SchoolList)
async def list_schools(
    schools: Schools,
    location: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> SchoolList:
    query: Dict[str, Any] = {}
    if location:
        query["location"] = location
    if status_filter:
        query["status"] = status_filter
    total = await schools.count_documents(query)
    cursor = schools.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    items = [School(**serialize_document(doc)) async for doc in cursor]
    return SchoolList(schools=items, pagination=Pagination.build(total, page, limit))


@router.post("", response_model=School, status_code=status.HTTP_201_CREATED)
async def create_school(payload: SchoolCreate, _: AdminUser, schools: Schools) -> School:
    if await _find_school_id(schools, payload.name) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="School already registered")
    now = datetime.utcnow()
    document = {**payload.model_dump(), "computers_received": 0, "created_at": now, "updated_at": now}
    result = await schools.insert_one(document)
    stored = await schools.find_one({"_id": result.inserted_id})
    return School(**serialize_document(stored))


@router.get("/{school_id}", response_model=School)
async def get_school(school_id: str, schools: Schools) -> School:
    object_id = to_object_id(school_id)
    school = await schools.find_one({"_id": object_id}) if object_id else None
    if not school:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="School not found")
    return School(**serialize_document(school))
