import pytest
from pymongo.errors import PyMongoError

from cfs_tracker.workflow.errors import (
    InvalidFulfillment,
    InvalidTransition,
    NotFound,
    PartialFulfillmentInconsistency,
    StorageError,
)


class BrokenUpdates:
    """Collection proxy whose single-document updates fail."""

    def __init__(self, collection):
        self._collection = collection

    async def update_one(self, *args, **kwargs):
        raise PyMongoError("primary stepped down")

    def __getattr__(self, name):
        return getattr(self._collection, name)


@pytest.fixture
def stock(engine, database, create_donation):
    async def _stock(quantity=3, **overrides):
        donation_id = await create_donation(quantity=quantity, status="approved", **overrides)
        await engine.apply_donation_status(donation_id, "processing")
        return [doc["_id"] async for doc in database["computer_inventory"].find({"donation_id": donation_id})]

    return _stock


async def test_request_fulfilled_once_quantity_reached(matcher, database, stock, create_request, events):
    items = await stock(3)
    request_id = await create_request(quantity=3)

    first = await matcher.fulfill(items[:2], str(request_id))
    assert first["request_status"] == "approved"
    assert first["assigned_count"] == 2
    assert first["message"] == "2 computer(s) assigned to school (2/3 delivered)"

    second = await matcher.fulfill([str(items[2])], request_id)
    assert second["request_status"] == "fulfilled"
    assert second["assigned_count"] == 3
    assert second["message"] == "Request fulfilled and inventory updated successfully"

    stored = await database["school_requests"].find_one({"_id": request_id})
    assert stored["status"] == "fulfilled"
    assert events.types[-2:] == ["inventory_assigned", "request_fulfilled"]


async def test_delivered_items_point_at_request(matcher, database, stock, create_request):
    items = await stock(2)
    request_id = await create_request(quantity=2)

    result = await matcher.fulfill(items, request_id)

    assert sorted(result["delivered_items"]) == sorted(str(item) for item in items)
    async for item in database["computer_inventory"].find({"_id": {"$in": items}}):
        assert item["status"] == "delivered"
        assert item["assigned_school_request"] == request_id
        assert item["delivered_at"] is not None


async def test_donation_to_school_end_to_end(engine, matcher, database, create_donation, create_request):
    donation_id = await create_donation(quantity=2)
    await engine.apply_donation_status(donation_id, "approved")
    await engine.apply_donation_status(donation_id, "processing")
    items = [doc["_id"] async for doc in database["computer_inventory"].find({"donation_id": donation_id})]
    for item_id in items:
        await engine.update_inventory_item(item_id, {"status": "in-refurbishment"})
        await engine.update_inventory_item(item_id, {"status": "ready", "condition_after_refurbishment": "good"})
    request_id = await create_request(status="pending", quantity=2)
    await engine.apply_request_status(request_id, "approved")

    result = await matcher.fulfill(items, request_id)

    assert result["request_status"] == "fulfilled"
    assert await database["computer_inventory"].count_documents({"status": "delivered"}) == 2


async def test_duplicate_ids_count_once(matcher, stock, create_request):
    items = await stock(2)
    request_id = await create_request(quantity=2)

    result = await matcher.fulfill([items[0], str(items[0])], request_id)

    assert result["delivered_items"] == [str(items[0])]
    assert result["assigned_count"] == 1


async def test_school_counter_matched_by_id(matcher, database, stock, create_request):
    school = await database["schools"].insert_one({"name": "Kibera Primary", "computers_received": 4})
    items = await stock(2)
    request_id = await create_request(quantity=5, school_id=school.inserted_id, school_name="Renamed School")

    await matcher.fulfill(items, request_id)

    stored = await database["schools"].find_one({"_id": school.inserted_id})
    assert stored["computers_received"] == 6


async def test_school_counter_matched_by_name(matcher, database, stock, create_request, events):
    await database["schools"].insert_one({"name": "Kibera Primary", "computers_received": 0})
    items = await stock(1)
    request_id = await create_request(quantity=1)

    await matcher.fulfill(items, request_id)

    stored = await database["schools"].find_one({"name": "Kibera Primary"})
    assert stored["computers_received"] == 1
    assert events.events[-1].payload["school_computers_received"] == 1


async def test_missing_school_record_is_not_an_error(matcher, database, stock, create_request):
    items = await stock(1)
    request_id = await create_request(quantity=1, school_name="Unregistered School")

    result = await matcher.fulfill(items, request_id)

    assert result["request_status"] == "fulfilled"
    assert await database["schools"].count_documents({}) == 0


async def test_empty_selection_rejected(matcher, create_request):
    request_id = await create_request()
    with pytest.raises(InvalidFulfillment):
        await matcher.fulfill([], request_id)


async def test_unknown_request_or_item(matcher, stock, create_request):
    items = await stock(1)
    with pytest.raises(NotFound):
        await matcher.fulfill(items, "64b7f0c2a1b2c3d4e5f60718")

    request_id = await create_request()
    with pytest.raises(NotFound):
        await matcher.fulfill([items[0], "64b7f0c2a1b2c3d4e5f60718"], request_id)
    with pytest.raises(NotFound):
        await matcher.fulfill(["garbage"], request_id)


async def test_rejected_request_cannot_receive_inventory(matcher, stock, create_request):
    items = await stock(1)
    request_id = await create_request(status="rejected")

    with pytest.raises(InvalidTransition):
        await matcher.fulfill(items, request_id)


async def test_unapproved_request_cannot_receive_inventory(matcher, database, stock, create_request):
    items = await stock(1)
    request_id = await create_request(status="pending", quantity=1)

    with pytest.raises(InvalidTransition):
        await matcher.fulfill(items, request_id)

    assert (await database["school_requests"].find_one({"_id": request_id}))["status"] == "pending"
    assert (await database["computer_inventory"].find_one({"_id": items[0]}))["status"] == "received"


async def test_delivered_items_cannot_be_reassigned(matcher, database, stock, create_request):
    items = await stock(2)
    first = await create_request(quantity=1)
    second = await create_request(quantity=2, school_name="Mathare North")
    await matcher.fulfill(items[:1], first)

    with pytest.raises(InvalidFulfillment) as excinfo:
        await matcher.fulfill(items, second)

    assert excinfo.value.status_code == 409
    untouched = await database["computer_inventory"].find_one({"_id": items[1]})
    assert untouched["status"] == "received"
    assert untouched["assigned_school_request"] is None


async def test_failure_after_assignment_rolls_back(matcher, database, stock, create_request):
    await database["schools"].insert_one({"name": "Kibera Primary", "computers_received": 0})
    items = await stock(2)
    request_id = await create_request(quantity=2)
    matcher.requests = BrokenUpdates(database["school_requests"])

    with pytest.raises(StorageError):
        await matcher.fulfill(items, request_id)

    async for item in database["computer_inventory"].find({"_id": {"$in": items}}):
        assert item["status"] == "received"
        assert item["assigned_school_request"] is None
        assert "fulfillment_batch" not in item
    stored = await database["school_requests"].find_one({"_id": request_id})
    assert stored["status"] == "approved"
    school = await database["schools"].find_one({"name": "Kibera Primary"})
    assert school["computers_received"] == 0


async def test_failed_rollback_is_reported(matcher, database, stock, create_request):
    items = await stock(1)
    request_id = await create_request(quantity=1)
    matcher.requests = BrokenUpdates(database["school_requests"])
    inventory = BrokenUpdates(database["computer_inventory"])
    matcher.inventory = inventory

    original_update_many = inventory.update_many
    calls = []

    async def update_many_once(*args, **kwargs):
        calls.append(args)
        if len(calls) > 1:
            raise PyMongoError("connection lost")
        return await original_update_many(*args, **kwargs)

    inventory.update_many = update_many_once

    with pytest.raises(PartialFulfillmentInconsistency):
        await matcher.fulfill(items, request_id)


async def test_mixed_donation_delivered_one_item_per_call(engine, matcher, database, create_donation, create_request):
    donation_id = await create_donation(quantity=2, computer_type="mixed", condition_status="working")
    await engine.apply_donation_status(donation_id, "processing")
    items = [doc async for doc in database["computer_inventory"].find({"donation_id": donation_id})]
    assert len(items) == 2
    assert {(item["computer_type"], item["condition_received"], item["status"]) for item in items} == {
        ("desktop", "working", "received")
    }
    request_id = await create_request(quantity=2)

    first = await matcher.fulfill([items[0]["_id"]], request_id)
    assert first["request_status"] == "approved"
    second = await matcher.fulfill([items[1]["_id"]], request_id)
    assert second["request_status"] == "fulfilled"
