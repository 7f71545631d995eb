"""Global test configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["STORE_BACKEND"] = "memory"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["QRCODE_ENCRYPTION_KEY"] = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"

from eventhub.auth.dependencies import ROLE_ADMIN, ROLE_USER, create_access_token
from eventhub.main import app
from eventhub.services.event_service import EventService
from eventhub.services.image_service import ImageResolver, image_resolver
from eventhub.services.participation_service import ParticipationService
from eventhub.stores import InMemoryEventStore, set_event_store
from tests._helpers.fakes import FakeBlobStore


# Store fixtures
@pytest.fixture
def store():
    """Fresh in-memory store installed as the process-wide store."""
    store = InMemoryEventStore()
    set_event_store(store)
    yield store
    set_event_store(None)


@pytest.fixture
def catalog(store):
    """Small event type hierarchy keyed by name."""
    university = store.add_event_type("University Activities")
    competency = store.add_event_type("Competency Development")
    return {
        "University Activities": university,
        "Competency Development": competency,
        "Leadership": store.add_event_type("Leadership", parent_id=competency.id),
        "Digital Skills": store.add_event_type("Digital Skills", parent_id=competency.id),
        "Social Service": store.add_event_type("Social Service"),
    }


@pytest.fixture
def admin(store):
    return store.add_user("auth|admin", "admin", role=ROLE_ADMIN)


@pytest.fixture
def alice(store):
    return store.add_user("auth|alice", "alice", profile_picture_url="https://cdn.test/alice.png")


@pytest.fixture
def bob(store):
    return store.add_user("auth|bob", "bob")


@pytest.fixture
def event_fields():
    """Factory for valid create-event attributes."""

    def make(**overrides):
        now = datetime.now(timezone.utc)
        fields = {
            "name": "Campus Cleanup",
            "activity_hours": 3,
            "total_seats": 10,
            "start_time": now + timedelta(days=1),
            "end_time": now + timedelta(days=1, hours=3),
            "location": "Main Gate",
            "description": "Bring gloves",
        }
        fields.update(overrides)
        return fields

    return make


# Service fixtures
@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def event_service(store, blob_store):
    return EventService(store=store, images=ImageResolver(blob_store=blob_store))


@pytest.fixture
def participation_service(store):
    return ParticipationService(store=store)


@pytest.fixture
def create_event(event_service, admin, catalog, event_fields):
    """Create an event through the service and return its record."""

    async def make(event_types=("Social Service",), **overrides):
        event_id = await event_service.create_event(admin.id, event_fields(**overrides), list(event_types))
        return await event_service.store.find_by_id(event_id)

    return make


# API fixtures
@pytest.fixture
def auth_headers():
    """Bearer headers for an identity-provider subject."""

    def make(subject: str, role: str = ROLE_USER):
        token = create_access_token(subject, [role])
        return {"Authorization": f"Bearer {token}"}

    return make


@pytest_asyncio.fixture
async def client(store, blob_store, monkeypatch):
    monkeypatch.setattr(image_resolver, "_blob_store", blob_store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
