from __future__ import annotations

import random
from datetime import datetime
from typing import Any, Dict, Iterable, List, Set

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import BulkWriteError, PyMongoError

from ..utils.logging import log_db_error
from .errors import StorageError

TYPE_FALLBACK = {"mixed": "desktop"}
CONDITION_FALLBACK = {"mixed": "needs-repair"}
DUPLICATE_KEY = 11000


def resolve_computer_type(computer_type: str) -> str:
    return TYPE_FALLBACK.get(computer_type, computer_type)


def resolve_condition(condition: str) -> str:
    return CONDITION_FALLBACK.get(condition, condition)


def _suffix_pool(width: int) -> range:
    return range(10 ** (width - 1), 10**width)


def draw_serial_suffixes(count: int, taken: Iterable[str] = ()) -> List[str]:
    """Pick ``count`` distinct numeric suffixes, avoiding ``taken``.

    Four digits unless a single donation needs more than the 9000 four-digit
    values, in which case the width grows.
    """
    taken_set: Set[str] = set(taken)
    width = 4
    while len(_suffix_pool(width)) - len(taken_set) < count:
        width += 1
    pool = _suffix_pool(width)
    chosen: Set[str] = set()
    while len(chosen) < count:
        for number in random.sample(pool, count - len(chosen)):
            suffix = str(number)
            if suffix not in taken_set:
                chosen.add(suffix)
    return list(chosen)


def placeholder_serial(donation_id: str, suffix: str) -> str:
    return f"PENDING-{donation_id}-{suffix}"


class InventoryGenerator:
    """Turns a donation into one inventory row per donated unit."""

    def __init__(self, inventory: AsyncIOMotorCollection) -> None:
        self.inventory = inventory

    async def _existing_units(self, donation_id: Any) -> Dict[int, str]:
        units: Dict[int, str] = {}
        cursor = self.inventory.find({"donation_id": donation_id}, {"unit_index": 1, "serial_number": 1})
        async for row in cursor:
            units[row.get("unit_index") or 0] = row.get("serial_number", "")
        return units

    def build_records(self, donation: Dict[str, Any], unit_indexes: List[int], taken_serials: Iterable[str] = ()) -> List[Dict[str, Any]]:
        donation_id = donation["_id"]
        prefix = placeholder_serial(str(donation_id), "")
        taken_suffixes = [serial[len(prefix):] for serial in taken_serials if serial.startswith(prefix)]
        suffixes = draw_serial_suffixes(len(unit_indexes), taken_suffixes)
        now = datetime.utcnow()
        return [
            {
                "donation_id": donation_id,
                "unit_index": unit_index,
                "computer_type": resolve_computer_type(donation["computer_type"]),
                "condition_received": resolve_condition(donation["condition_status"]),
                "condition_after_refurbishment": None,
                "refurbishment_notes": None,
                "status": "received",
                "serial_number": placeholder_serial(str(donation_id), suffix),
                "assigned_school_request": None,
                "created_at": now,
                "updated_at": now,
            }
            for unit_index, suffix in zip(unit_indexes, suffixes)
        ]

    async def generate_for_donation(self, donation: Dict[str, Any]) -> int:
        """Insert the donation's inventory batch; returns how many rows were added.

        Repeated calls are no-ops once the batch exists.
        """
        donation_id = donation["_id"]
        quantity = int(donation["quantity"])
        try:
            existing = await self.inventory.count_documents({"donation_id": donation_id})
            if existing >= quantity:
                logger.debug("Inventory for donation {} already generated ({} rows)", donation_id, existing)
                return 0
            units = await self._existing_units(donation_id) if existing else {}
            missing = [index for index in range(1, quantity + 1) if index not in units]
            if existing:
                logger.warning(
                    "Donation {} has a partial inventory batch ({}/{}); adding the missing units",
                    donation_id,
                    existing,
                    quantity,
                )
            records = self.build_records(donation, missing, units.values())
            result = await self.inventory.insert_many(records, ordered=False)
        except BulkWriteError as exc:
            write_errors = exc.details.get("writeErrors", [])
            if any(error.get("code") != DUPLICATE_KEY for error in write_errors):
                log_db_error("generate_inventory", exc)
                raise StorageError("Failed to generate inventory for donation") from exc
            inserted = exc.details.get("nInserted", 0)
            logger.info("Concurrent inventory generation for donation {}; inserted {} rows", donation_id, inserted)
            return inserted
        except PyMongoError as exc:
            log_db_error("generate_inventory", exc)
            raise StorageError("Failed to generate inventory for donation") from exc
        inserted = len(result.inserted_ids)
        logger.info("Generated {} inventory items for donation {}", inserted, donation_id)
        return inserted
