from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId


REFERENCE_FIELDS = ("user_id", "donation_id", "assigned_school_request", "school_id", "entity_id", "actor_id")


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a path/body identifier; ``None`` when it cannot be an ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Render a stored document with string ids, ready for a response model."""
    serialized = dict(document)
    if "_id" in serialized:
        serialized["_id"] = str(serialized["_id"])
    for field in REFERENCE_FIELDS:
        if isinstance(serialized.get(field), ObjectId):
            serialized[field] = str(serialized[field])
    return serialized


def serialize_documents(documents: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_document(document) for document in documents]


def date_to_storage(value: date | datetime | str | None) -> Optional[str]:
    # BSON has no plain date type; pickup dates are kept as ISO strings.
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value
