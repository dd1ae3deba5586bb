from __future__ import annotations

import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ADMIN_REGISTRATION_KEY", "let-me-in")
os.environ.setdefault("SMTP_HOST", "")

from datetime import datetime
from typing import Any, Dict, List

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from cfs_tracker.database import ensure_indexes, get_database
from cfs_tracker.main import app
from cfs_tracker.utils.notifications import EmailNotification, get_notifier
from cfs_tracker.utils.security import create_access_token
from cfs_tracker.workflow.base import WorkflowEvent
from cfs_tracker.workflow.engine import StatusTransitionEngine
from cfs_tracker.workflow.errors import NotificationError
from cfs_tracker.workflow.fulfillment import FulfillmentMatcher


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[EmailNotification] = []
        self.fail = False

    async def send_email(self, message: EmailNotification) -> None:
        if self.fail:
            raise NotificationError("SMTP server unreachable")
        self.sent.append(message)


class EventRecorder:
    def __init__(self) -> None:
        self.events: List[WorkflowEvent] = []

    async def __call__(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[str]:
        return [event.type for event in self.events]


@pytest.fixture
async def database():
    client = AsyncMongoMockClient()
    database = client["cfs_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def engine(database, notifier, events) -> StatusTransitionEngine:
    return StatusTransitionEngine(database, notifier, events)


@pytest.fixture
def matcher(database, events) -> FulfillmentMatcher:
    return FulfillmentMatcher(database, events)


def donation_document(**overrides: Any) -> Dict[str, Any]:
    now = datetime.utcnow()
    document = {
        "user_id": None,
        "donor_name": "Jane Wanjiru",
        "organization": "Acme Ltd",
        "email": "jane@example.com",
        "phone": "+254700000001",
        "address": "12 Moi Avenue, Nairobi",
        "computer_type": "laptop",
        "quantity": 3,
        "condition_status": "working",
        "pickup_date": None,
        "message": None,
        "status": "pending",
        "created_at": now,
        "updated_at": now,
    }
    document.update(overrides)
    return document


def request_document(**overrides: Any) -> Dict[str, Any]:
    now = datetime.utcnow()
    document = {
        "user_id": None,
        "school_id": None,
        "school_name": "Kibera Primary",
        "contact_person": "Mr. Otieno",
        "email": "head@kibera.example.org",
        "phone": "+254700000002",
        "location": "Nairobi",
        "computer_type": "any",
        "quantity": 3,
        "justification": "Computer lab for 400 pupils",
        "status": "approved",
        "admin_comment": None,
        "created_at": now,
        "updated_at": now,
    }
    document.update(overrides)
    return document


@pytest.fixture
def create_donation(database):
    async def _create(**overrides: Any):
        result = await database["donations"].insert_one(donation_document(**overrides))
        return result.inserted_id

    return _create


@pytest.fixture
def create_request(database):
    async def _create(**overrides: Any):
        result = await database["school_requests"].insert_one(request_document(**overrides))
        return result.inserted_id

    return _create


@pytest.fixture
def create_user(database):
    async def _create(role: str = "admin", email: str | None = None, name: str = "Test User"):
        document = {
            "email": email or f"{role}@example.com",
            "name": name,
            "password": "not-used",
            "role": role,
            "created_at": datetime.utcnow(),
        }
        result = await database["users"].insert_one(document)
        token = create_access_token(str(result.inserted_id), role)
        return result.inserted_id, {"Authorization": f"Bearer {token}"}

    return _create


@pytest.fixture
async def client(database, notifier):
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_notifier] = lambda: notifier
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
