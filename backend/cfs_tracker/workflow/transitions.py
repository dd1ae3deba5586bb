"""Transition table for donations, school requests and inventory items.

Every status change in the service is looked up here by
``(entity, current, requested)``. The table says whether the move is allowed
and which side effects it triggers, so the engine never re-derives policy
from scattered conditionals.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Literal, Optional, Tuple, get_args

from ..models.donation import DonationStatus
from ..models.inventory import InventoryStatus
from ..models.school_request import RequestStatus
from .errors import InvalidStatus

Entity = Literal["donation", "school_request", "inventory"]

GENERATE_INVENTORY = "generate_inventory"
NOTIFY_DONOR = "notify_donor"
NOTIFY_REQUESTER = "notify_requester"

DONATION_STATUSES: Tuple[str, ...] = get_args(DonationStatus)
REQUEST_STATUSES: Tuple[str, ...] = get_args(RequestStatus)
INVENTORY_STATUSES: Tuple[str, ...] = get_args(InventoryStatus)

STATUSES: Dict[str, Tuple[str, ...]] = {
    "donation": DONATION_STATUSES,
    "school_request": REQUEST_STATUSES,
    "inventory": INVENTORY_STATUSES,
}

# Donation statuses that spawn the inventory batch.
FULFILLMENT_ELIGIBLE: FrozenSet[str] = frozenset({"processing", "collected"})

DONATION_PIPELINE = ("pending", "approved", "collected", "processing", "delivered")
REQUEST_PIPELINE = ("pending", "approved")
INVENTORY_PIPELINE = ("received", "in-refurbishment", "ready")

USE_FULFILLMENT = "Requests become fulfilled only through inventory fulfillment"
DELIVER_VIA_FULFILLMENT = "Inventory is delivered only through fulfillment"


@dataclass(frozen=True)
class Transition:
    allowed: bool
    side_effects: Tuple[str, ...] = ()
    reason: Optional[str] = None


TransitionKey = Tuple[str, str, str]


def _forward_moves(pipeline: Tuple[str, ...]):
    for i, current in enumerate(pipeline):
        for requested in pipeline[i:]:
            yield current, requested


def _donation_table() -> Dict[TransitionKey, Transition]:
    table: Dict[TransitionKey, Transition] = {}
    for current, requested in _forward_moves(DONATION_PIPELINE):
        effects = []
        if requested in FULFILLMENT_ELIGIBLE:
            effects.append(GENERATE_INVENTORY)
        if requested == "approved" and current != "approved":
            effects.append(NOTIFY_DONOR)
        table[("donation", current, requested)] = Transition(True, tuple(effects))
    for current in DONATION_PIPELINE[:-1]:
        table[("donation", current, "rejected")] = Transition(True)
    table[("donation", "rejected", "rejected")] = Transition(True)
    return table


def _request_table() -> Dict[TransitionKey, Transition]:
    table: Dict[TransitionKey, Transition] = {}
    for current, requested in _forward_moves(REQUEST_PIPELINE):
        table[("school_request", current, requested)] = Transition(True, (NOTIFY_REQUESTER,))
    for current in REQUEST_PIPELINE + ("rejected",):
        table[("school_request", current, "rejected")] = Transition(True, (NOTIFY_REQUESTER,))
    for current in REQUEST_STATUSES:
        table[("school_request", current, "fulfilled")] = Transition(False, reason=USE_FULFILLMENT)
    return table


def _inventory_table() -> Dict[TransitionKey, Transition]:
    table: Dict[TransitionKey, Transition] = {}
    for current, requested in _forward_moves(INVENTORY_PIPELINE):
        table[("inventory", current, requested)] = Transition(True)
    for current in INVENTORY_PIPELINE + ("unusable",):
        table[("inventory", current, "unusable")] = Transition(True)
    for current in INVENTORY_STATUSES:
        table[("inventory", current, "delivered")] = Transition(False, reason=DELIVER_VIA_FULFILLMENT)
    return table


TRANSITIONS: Dict[TransitionKey, Transition] = {
    **_donation_table(),
    **_request_table(),
    **_inventory_table(),
}


def validate_status(entity: str, status: str) -> str:
    allowed = STATUSES[entity]
    if status not in allowed:
        raise InvalidStatus(f"Invalid {entity.replace('_', ' ')} status '{status}'. Expected one of: {', '.join(allowed)}")
    return status


def resolve(entity: str, current: str, requested: str) -> Transition:
    transition = TRANSITIONS.get((entity, current, requested))
    if transition is None:
        return Transition(False, reason=f"Cannot move {entity.replace('_', ' ')} from '{current}' to '{requested}'")
    return transition
