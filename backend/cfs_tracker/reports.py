from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

OPEN_REQUEST_STATUSES = ("pending", "approved")
INVENTORY_STATUSES = ("received", "in-refurbishment", "ready", "delivered", "unusable")


def month_key(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%Y-%m")


def bucket_by_month(rows: Iterable[Dict[str, Any]], date_field: str, weight_field: Optional[str] = None) -> Dict[str, int]:
    """Sum ``weight_field`` (or count rows) per ``YYYY-MM`` of ``date_field``."""
    buckets: Dict[str, int] = defaultdict(int)
    for row in rows:
        key = month_key(row.get(date_field))
        if key is None:
            continue
        buckets[key] += int(row.get(weight_field) or 0) if weight_field else 1
    return dict(buckets)


async def dashboard_counts(database: AsyncIOMotorDatabase) -> Dict[str, Any]:
    inventory = database.get_collection("computer_inventory")
    by_status = {status: await inventory.count_documents({"status": status}) for status in INVENTORY_STATUSES}
    return {
        "pending": {
            "donations": await database.get_collection("donations").count_documents({"status": "pending"}),
            "requests": await database.get_collection("school_requests").count_documents({"status": "pending"}),
        },
        "inventory_by_status": by_status,
    }


async def impact_report(database: AsyncIOMotorDatabase) -> Dict[str, Any]:
    donations = database.get_collection("donations")
    requests = database.get_collection("school_requests")
    inventory = database.get_collection("computer_inventory")

    total_donations = 0
    computers_donated = 0
    async for donation in donations.find({"status": {"$ne": "rejected"}}, {"quantity": 1}):
        total_donations += 1
        computers_donated += donation.get("quantity") or 0

    served_requests = await inventory.distinct("assigned_school_request", {"status": "delivered"})
    served_requests = [request_id for request_id in served_requests if request_id is not None]
    schools = set()
    if served_requests:
        async for request in requests.find({"_id": {"$in": served_requests}}, {"school_name": 1}):
            schools.add((request.get("school_name") or "").strip().lower())

    return {
        "total_donations": total_donations,
        "computers_donated": computers_donated,
        "computers_in_inventory": await inventory.count_documents({"status": {"$in": ["received", "in-refurbishment", "ready"]}}),
        "computers_ready": await inventory.count_documents({"status": "ready"}),
        "computers_delivered": await inventory.count_documents({"status": "delivered"}),
        "schools_served": len(schools),
        "requests_fulfilled": await requests.count_documents({"status": "fulfilled"}),
        "requests_open": await requests.count_documents({"status": {"$in": list(OPEN_REQUEST_STATUSES)}}),
    }


async def beneficiaries(database: AsyncIOMotorDatabase) -> List[Dict[str, Any]]:
    """Schools that received computers, most recent distribution first."""
    inventory = database.get_collection("computer_inventory")
    requests = database.get_collection("school_requests")

    delivered: Dict[Any, Dict[str, Any]] = {}
    async for item in inventory.find({"status": "delivered", "assigned_school_request": {"$ne": None}}):
        entry = delivered.setdefault(item["assigned_school_request"], {"count": 0, "last": None})
        entry["count"] += 1
        when = item.get("delivered_at") or item.get("updated_at")
        if when is not None and (entry["last"] is None or when > entry["last"]):
            entry["last"] = when
    if not delivered:
        return []

    results = []
    async for request in requests.find({"_id": {"$in": list(delivered)}}):
        entry = delivered[request["_id"]]
        results.append(
            {
                "request_id": str(request["_id"]),
                "school_name": request.get("school_name"),
                "location": request.get("location"),
                "computers_received": entry["count"],
                "date_received": entry["last"],
            }
        )
    results.sort(key=lambda row: row["date_received"] or datetime.min, reverse=True)
    return results


async def monthly_report(database: AsyncIOMotorDatabase, months: int = 12) -> List[Dict[str, Any]]:
    donation_rows = [
        row async for row in database.get_collection("donations").find({}, {"created_at": 1, "quantity": 1})
    ]
    delivered_rows = [
        row
        async for row in database.get_collection("computer_inventory").find(
            {"status": "delivered"}, {"delivered_at": 1}
        )
    ]
    donation_counts = bucket_by_month(donation_rows, "created_at")
    donated_units = bucket_by_month(donation_rows, "created_at", "quantity")
    delivered_units = bucket_by_month(delivered_rows, "delivered_at")

    keys = sorted(set(donation_counts) | set(delivered_units), reverse=True)[:months]
    return [
        {
            "month": key,
            "donations": donation_counts.get(key, 0),
            "computers_donated": donated_units.get(key, 0),
            "computers_delivered": delivered_units.get(key, 0),
        }
        for key in sorted(keys)
    ]
