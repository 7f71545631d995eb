from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import asyncpg
import pytest

from eventhub.errors import RejectedError, TransientStoreError
from eventhub.stores import JoinOutcome, SqlEventStore

pytestmark = pytest.mark.asyncio

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """`databases.Database` stand-in with an async transaction context."""
    db = Mock()
    db.execute = AsyncMock()
    db.execute_many = AsyncMock()
    db.fetch_one = AsyncMock(return_value=None)
    db.fetch_all = AsyncMock(return_value=[])
    db.fetch_val = AsyncMock(return_value=0)

    @asynccontextmanager
    async def transaction():
        yield

    db.transaction = transaction
    return db


@pytest.fixture
def sql_store(db):
    return SqlEventStore(db=db)


def event_row(event_id: str, **overrides) -> dict:
    row = {
        "id": event_id,
        "name": "Campus Cleanup",
        "image_url": None,
        "activity_hours": 3.0,
        "total_seats": 2,
        "start_time": NOW,
        "end_time": NOW,
        "location": "Main Gate",
        "description": "",
        "is_active": True,
        "is_deactivated": False,
        "qr_code_string": None,
        "qr_code_iv": None,
        "created_by": None,
        "created_at": NOW,
        "updated_at": NOW,
        "participants_count": 1,
        "event_type_ids": [uuid4()],
    }
    row.update(overrides)
    return row


async def test_non_uuid_ids_are_not_found(sql_store, db):
    assert await sql_store.find_by_id("not-a-uuid") is None
    assert (await sql_store.join("user", "not-a-uuid", NOW)).outcome is JoinOutcome.NOT_FOUND
    db.fetch_one.assert_not_awaited()


async def test_find_by_id_converts_row(sql_store, db):
    event_id = str(uuid4())
    db.fetch_one.return_value = event_row(event_id)

    event = await sql_store.find_by_id(event_id)

    assert event.id == event_id
    assert event.participants_count == 1
    assert all(isinstance(t, str) for t in event.event_type_ids)


class TestJoin:
    async def test_checks_in_order(self, sql_store, db):
        event_id = str(uuid4())

        db.fetch_one.side_effect = [None]
        assert (await sql_store.join("u", event_id, NOW)).outcome is JoinOutcome.NOT_FOUND

        db.fetch_one.side_effect = [{"id": event_id, "total_seats": 2, "is_active": False, "is_deactivated": True}]
        assert (await sql_store.join("u", event_id, NOW)).outcome is JoinOutcome.DEACTIVATED

        db.fetch_one.side_effect = [{"id": event_id, "total_seats": 2, "is_active": False, "is_deactivated": False}]
        assert (await sql_store.join("u", event_id, NOW)).outcome is JoinOutcome.NOT_ACTIVE

        db.fetch_one.side_effect = [
            {"id": event_id, "total_seats": 2, "is_active": True, "is_deactivated": False},
            {"id": "existing"},
        ]
        assert (await sql_store.join("u", event_id, NOW)).outcome is JoinOutcome.ALREADY_JOINED

        db.fetch_one.side_effect = [
            {"id": event_id, "total_seats": 2, "is_active": True, "is_deactivated": False},
            None,
        ]
        db.fetch_val.return_value = 2
        assert (await sql_store.join("u", event_id, NOW)).outcome is JoinOutcome.FULL
        db.execute.assert_not_awaited()

    async def test_inserts_participation(self, sql_store, db):
        event_id = str(uuid4())
        db.fetch_one.side_effect = [
            {"id": event_id, "total_seats": 2, "is_active": True, "is_deactivated": False},
            None,
        ]
        db.fetch_val.return_value = 1

        result = await sql_store.join("u", event_id, NOW)

        assert result.outcome is JoinOutcome.JOINED
        assert result.participation_id
        params = db.execute.await_args.args[1]
        assert params["id"] == result.participation_id
        assert params["event_id"] == event_id

    async def test_unique_violation_means_already_joined(self, sql_store, db):
        event_id = str(uuid4())
        db.fetch_one.side_effect = [
            {"id": event_id, "total_seats": 2, "is_active": True, "is_deactivated": False},
            None,
        ]
        db.execute.side_effect = asyncpg.exceptions.UniqueViolationError("duplicate key")

        result = await sql_store.join("u", event_id, NOW)
        assert result.outcome is JoinOutcome.ALREADY_JOINED


async def test_connection_failure_is_transient(sql_store, db):
    db.fetch_one.side_effect = ConnectionRefusedError("db down")

    with pytest.raises(TransientStoreError):
        await sql_store.find_by_id(str(uuid4()))


async def test_conditional_updates(sql_store, db):
    event_id = str(uuid4())

    db.fetch_one.return_value = None
    assert await sql_store.deactivate(event_id, NOW) is False

    db.fetch_one.return_value = {"id": event_id}
    assert await sql_store.deactivate(event_id, NOW) is True

    db.fetch_all.return_value = [{"id": uuid4()}, {"id": uuid4()}]
    assert await sql_store.sweep_expired(NOW) == 2


async def test_validation_happens_before_sql(sql_store, db):
    with pytest.raises(RejectedError):
        await sql_store.create({"name": "Incomplete"}, NOW)
    db.execute.assert_not_awaited()


async def test_list_events_uses_built_queries(sql_store, db):
    from eventhub.stores import EventFilter

    event_id = str(uuid4())
    db.fetch_val.return_value = 1
    db.fetch_all.return_value = [event_row(event_id)]

    events, total = await sql_store.list_events(EventFilter(page_size=5), None)

    assert total == 1
    assert [e.id for e in events] == [event_id]
    assert db.fetch_all.await_args.args[1] == {"limit": 5, "offset": 0}


async def test_update_skips_deactivated_event(sql_store, db):
    event_id = str(uuid4())
    db.fetch_one.side_effect = [None, event_row(event_id, is_active=False, is_deactivated=True)]

    event = await sql_store.update(event_id, {"name": "Renamed", "event_type_ids": ["t-1"]}, NOW)

    assert event.is_deactivated
    assert event.name == "Campus Cleanup"
    assert "is_deactivated = FALSE" in db.fetch_one.await_args_list[0].args[0]
    db.execute.assert_not_awaited()
    db.execute_many.assert_not_awaited()
