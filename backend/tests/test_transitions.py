import pytest

from cfs_tracker.workflow.errors import InvalidStatus
from cfs_tracker.workflow.transitions import (
    FULFILLMENT_ELIGIBLE,
    GENERATE_INVENTORY,
    NOTIFY_DONOR,
    NOTIFY_REQUESTER,
    resolve,
    validate_status,
)


def test_eligible_statuses_generate_inventory():
    assert FULFILLMENT_ELIGIBLE == {"processing", "collected"}
    assert GENERATE_INVENTORY in resolve("donation", "pending", "processing").side_effects
    assert GENERATE_INVENTORY in resolve("donation", "approved", "collected").side_effects
    assert GENERATE_INVENTORY in resolve("donation", "processing", "processing").side_effects
    assert GENERATE_INVENTORY not in resolve("donation", "pending", "approved").side_effects


def test_donor_notified_only_when_entering_approved():
    assert NOTIFY_DONOR in resolve("donation", "pending", "approved").side_effects
    assert NOTIFY_DONOR not in resolve("donation", "approved", "approved").side_effects
    assert NOTIFY_DONOR not in resolve("donation", "approved", "collected").side_effects


@pytest.mark.parametrize(
    "current,requested",
    [
        ("approved", "pending"),
        ("processing", "collected"),
        ("delivered", "processing"),
        ("rejected", "approved"),
        ("delivered", "rejected"),
    ],
)
def test_backward_and_terminal_donation_moves_refused(current, requested):
    assert not resolve("donation", current, requested).allowed


def test_rejection_reachable_before_delivery():
    for current in ("pending", "approved", "collected", "processing"):
        assert resolve("donation", current, "rejected").allowed


def test_request_cannot_be_marked_fulfilled_directly():
    transition = resolve("school_request", "approved", "fulfilled")
    assert not transition.allowed
    assert "fulfillment" in transition.reason


def test_request_changes_notify_requester():
    assert resolve("school_request", "pending", "approved").side_effects == (NOTIFY_REQUESTER,)
    assert resolve("school_request", "approved", "rejected").side_effects == (NOTIFY_REQUESTER,)
    assert not resolve("school_request", "fulfilled", "approved").allowed


def test_inventory_delivery_only_through_fulfillment():
    assert resolve("inventory", "received", "ready").allowed
    assert resolve("inventory", "in-refurbishment", "unusable").allowed
    assert not resolve("inventory", "ready", "delivered").allowed
    assert not resolve("inventory", "ready", "received").allowed


def test_validate_status_rejects_unknown_values():
    assert validate_status("donation", "collected") == "collected"
    with pytest.raises(InvalidStatus):
        validate_status("donation", "archived")
    with pytest.raises(InvalidStatus):
        validate_status("school_request", "processing")
