from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

from .database import get_database
from .realtime import hub
from .utils.notifications import NotificationService, get_notifier
from .workflow.engine import StatusTransitionEngine
from .workflow.fulfillment import FulfillmentMatcher

Database = Annotated[AsyncIOMotorDatabase, Depends(get_database)]


async def get_donation_collection(database: Database) -> AsyncIOMotorCollection:
    return database.get_collection("donations")


async def get_request_collection(database: Database) -> AsyncIOMotorCollection:
    return database.get_collection("school_requests")


async def get_inventory_collection(database: Database) -> AsyncIOMotorCollection:
    return database.get_collection("computer_inventory")


async def get_school_collection(database: Database) -> AsyncIOMotorCollection:
    return database.get_collection("schools")


async def get_contact_collection(database: Database) -> AsyncIOMotorCollection:
    return database.get_collection("contact_messages")


async def get_status_engine(
    database: Database,
    notifier: NotificationService = Depends(get_notifier),
) -> StatusTransitionEngine:
    return StatusTransitionEngine(database, notifier, hub.workflow_event)


async def get_fulfillment_matcher(database: Database) -> FulfillmentMatcher:
    return FulfillmentMatcher(database, hub.workflow_event)


Donations = Annotated[AsyncIOMotorCollection, Depends(get_donation_collection)]
SchoolRequests = Annotated[AsyncIOMotorCollection, Depends(get_request_collection)]
Inventory = Annotated[AsyncIOMotorCollection, Depends(get_inventory_collection)]
Schools = Annotated[AsyncIOMotorCollection, Depends(get_school_collection)]
ContactMessages = Annotated[AsyncIOMotorCollection, Depends(get_contact_collection)]
Engine = Annotated[StatusTransitionEngine, Depends(get_status_engine)]
Matcher = Annotated[FulfillmentMatcher, Depends(get_fulfillment_matcher)]
