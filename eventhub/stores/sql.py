"""
PostgreSQL Event Store
Raw SQL over the shared `databases` connection
"""

import asyncio
import functools
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import asyncpg

from eventhub.database import database
from eventhub.errors import TransientStoreError
from eventhub.stores.base import (
    EventStore,
    JoinOutcome,
    JoinResult,
    validate_event_fields,
)
from eventhub.stores.query import (
    EVENT_COLUMNS,
    PARTICIPANT_COUNTS_JOIN,
    EventFilter,
    build_list_query,
    build_recommended_query,
)
from eventhub.stores.records import (
    BanRecord,
    EventRecord,
    EventTypeRecord,
    ParticipantView,
    ParticipationRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
)

# Columns an update may write directly
UPDATABLE_COLUMNS = (
    "name",
    "image_url",
    "activity_hours",
    "total_seats",
    "start_time",
    "end_time",
    "location",
    "description",
)


def persistence(func):
    """Turn connection-level failures into a retryable store error"""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            logger.error("Event store %s failed: %s", func.__name__, e)
            raise TransientStoreError("Storage is temporarily unavailable, please retry") from e

    return wrapper


def _is_uuid(value: str) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _str_id(value) -> Optional[str]:
    return str(value) if value is not None else None


def _event_from_row(row) -> EventRecord:
    data = dict(row)
    data["id"] = str(data["id"])
    data["created_by"] = _str_id(data.get("created_by"))
    data["event_type_ids"] = [str(t) for t in (data.get("event_type_ids") or [])]
    data["participants_count"] = int(data.get("participants_count") or 0)
    return EventRecord(**data)


def _participation_from_row(row) -> ParticipationRecord:
    data = dict(row)
    for key in ("id", "event_id", "user_id"):
        data[key] = str(data[key])
    return ParticipationRecord(**data)


def _user_from_row(row) -> UserRecord:
    data = dict(row)
    data["id"] = str(data["id"])
    return UserRecord(**data)


class SqlEventStore(EventStore):
    """PostgreSQL backend; joins lock the event row for the length of the check-and-insert"""

    def __init__(self, db=database):
        self.db = db

    # Events

    @persistence
    async def create(self, fields: dict, now: datetime) -> EventRecord:
        data = validate_event_fields(fields)
        event_id = str(uuid4())

        async with self.db.transaction():
            await self.db.execute(
                """
                INSERT INTO events (
                    id, name, image_url, activity_hours, total_seats, start_time, end_time,
                    location, description, is_active, is_deactivated, created_by,
                    created_at, updated_at
                )
                VALUES (
                    :id, :name, :image_url, :activity_hours, :total_seats, :start_time, :end_time,
                    :location, :description, TRUE, FALSE, :created_by,
                    :now, :now
                )
                """,
                {
                    "id": event_id,
                    "name": data["name"],
                    "image_url": data.get("image_url"),
                    "activity_hours": data["activity_hours"],
                    "total_seats": data["total_seats"],
                    "start_time": data["start_time"],
                    "end_time": data["end_time"],
                    "location": data["location"],
                    "description": data.get("description", ""),
                    "created_by": data.get("created_by"),
                    "now": now,
                }
            )
            await self._replace_event_types(event_id, data.get("event_type_ids", []))

        return await self.find_by_id(event_id)

    async def _replace_event_types(self, event_id: str, type_ids: list[str]) -> None:
        await self.db.execute(
            "DELETE FROM event_event_types WHERE event_id = :event_id",
            {"event_id": event_id}
        )
        if type_ids:
            await self.db.execute_many(
                "INSERT INTO event_event_types (event_id, event_type_id) VALUES (:event_id, :event_type_id)",
                [{"event_id": event_id, "event_type_id": t} for t in type_ids]
            )

    @persistence
    async def find_by_id(self, event_id: str) -> Optional[EventRecord]:
        if not _is_uuid(event_id):
            return None

        row = await self.db.fetch_one(
            f"""
            SELECT {EVENT_COLUMNS}
            FROM events e
            {PARTICIPANT_COUNTS_JOIN}
            WHERE e.id = :id
            """,
            {"id": event_id}
        )
        return _event_from_row(row) if row else None

    @persistence
    async def update(self, event_id: str, fields: dict, now: datetime) -> Optional[EventRecord]:
        if not _is_uuid(event_id):
            return None

        data = validate_event_fields(fields, partial=True)
        columns = [c for c in UPDATABLE_COLUMNS if c in data]
        assignments = ", ".join([f"{c} = :{c}" for c in columns] + ["updated_at = :now"])

        async with self.db.transaction():
            updated = await self.db.fetch_one(
                f"UPDATE events SET {assignments} WHERE id = :id AND is_deactivated = FALSE RETURNING id",
                {**{c: data[c] for c in columns}, "now": now, "id": event_id}
            )
            if not updated:
                # Missing, or deactivated since the caller read it
                return await self.find_by_id(event_id)
            if "event_type_ids" in data:
                await self._replace_event_types(event_id, data["event_type_ids"])

        return await self.find_by_id(event_id)

    @persistence
    async def list_events(self, event_filter: EventFilter, type_ids: Optional[list[str]] = None) -> tuple[list[EventRecord], int]:
        query = build_list_query(event_filter, type_ids)
        total = await self.db.fetch_val(query.count_sql, query.count_params)
        rows = await self.db.fetch_all(query.page_sql, query.page_params)
        return [_event_from_row(r) for r in rows], int(total or 0)

    @persistence
    async def list_recommended(
        self, interested_type_ids: list[str], page_number: int, page_size: int
    ) -> tuple[list[EventRecord], int]:
        query = build_recommended_query(interested_type_ids, page_number, page_size)
        total = await self.db.fetch_val(query.count_sql, query.count_params)
        rows = await self.db.fetch_all(query.page_sql, query.page_params)
        return [_event_from_row(r) for r in rows], int(total or 0)

    @persistence
    async def sweep_expired(self, now: datetime) -> int:
        rows = await self.db.fetch_all(
            """
            UPDATE events
            SET is_active = FALSE, updated_at = :now
            WHERE is_active = TRUE AND end_time < :now
            RETURNING id
            """,
            {"now": now}
        )
        return len(rows)

    @persistence
    async def deactivate(self, event_id: str, now: datetime) -> bool:
        if not _is_uuid(event_id):
            return False

        row = await self.db.fetch_one(
            """
            UPDATE events
            SET is_active = FALSE, is_deactivated = TRUE, updated_at = :now
            WHERE id = :id AND is_deactivated = FALSE
            RETURNING id
            """,
            {"id": event_id, "now": now}
        )
        return row is not None

    @persistence
    async def set_qr_code_if_absent(
        self, event_id: str, ciphertext: str, iv: str, now: datetime
    ) -> Optional[EventRecord]:
        if not _is_uuid(event_id):
            return None

        await self.db.execute(
            """
            UPDATE events
            SET qr_code_string = :ciphertext, qr_code_iv = :iv, updated_at = :now
            WHERE id = :id AND qr_code_string IS NULL AND is_deactivated = FALSE
            """,
            {"id": event_id, "ciphertext": ciphertext, "iv": iv, "now": now}
        )
        # Whoever wrote first, the stored code is the answer
        return await self.find_by_id(event_id)

    # Participations

    @persistence
    async def join(self, user_id: str, event_id: str, now: datetime) -> JoinResult:
        if not _is_uuid(event_id):
            return JoinResult(JoinOutcome.NOT_FOUND)

        try:
            async with self.db.transaction():
                event = await self.db.fetch_one(
                    """
                    SELECT id, total_seats, is_active, is_deactivated
                    FROM events
                    WHERE id = :id
                    FOR UPDATE
                    """,
                    {"id": event_id}
                )
                if not event:
                    return JoinResult(JoinOutcome.NOT_FOUND)
                if event["is_deactivated"]:
                    return JoinResult(JoinOutcome.DEACTIVATED)
                if not event["is_active"]:
                    return JoinResult(JoinOutcome.NOT_ACTIVE)

                existing = await self.db.fetch_one(
                    """
                    SELECT id FROM participations
                    WHERE user_id = :user_id AND event_id = :event_id AND is_active = TRUE
                    """,
                    {"user_id": user_id, "event_id": event_id}
                )
                if existing:
                    return JoinResult(JoinOutcome.ALREADY_JOINED)

                active = await self.db.fetch_val(
                    "SELECT COUNT(*) FROM participations WHERE event_id = :event_id AND is_active = TRUE",
                    {"event_id": event_id}
                )
                if active >= event["total_seats"]:
                    return JoinResult(JoinOutcome.FULL)

                participation_id = str(uuid4())
                await self.db.execute(
                    """
                    INSERT INTO participations (id, event_id, user_id, is_active, is_confirmed, created_at, updated_at)
                    VALUES (:id, :event_id, :user_id, TRUE, FALSE, :now, :now)
                    """,
                    {"id": participation_id, "event_id": event_id, "user_id": user_id, "now": now}
                )
        except asyncpg.exceptions.UniqueViolationError:
            return JoinResult(JoinOutcome.ALREADY_JOINED)

        return JoinResult(JoinOutcome.JOINED, participation_id)

    @persistence
    async def leave(self, user_id: str, event_id: str, now: datetime) -> int:
        if not _is_uuid(event_id):
            return 0

        rows = await self.db.fetch_all(
            """
            UPDATE participations
            SET is_active = FALSE, updated_at = :now
            WHERE user_id = :user_id AND event_id = :event_id AND is_active = TRUE
            RETURNING id
            """,
            {"user_id": user_id, "event_id": event_id, "now": now}
        )
        return len(rows)

    @persistence
    async def find_active_participation(self, user_id: str, event_id: str) -> Optional[ParticipationRecord]:
        if not _is_uuid(event_id):
            return None

        row = await self.db.fetch_one(
            """
            SELECT * FROM participations
            WHERE user_id = :user_id AND event_id = :event_id AND is_active = TRUE
            """,
            {"user_id": user_id, "event_id": event_id}
        )
        return _participation_from_row(row) if row else None

    @persistence
    async def list_participations(self, user_id: str, event_id: str) -> list[ParticipationRecord]:
        if not _is_uuid(event_id):
            return []

        rows = await self.db.fetch_all(
            """
            SELECT * FROM participations
            WHERE user_id = :user_id AND event_id = :event_id
            ORDER BY created_at ASC
            """,
            {"user_id": user_id, "event_id": event_id}
        )
        return [_participation_from_row(r) for r in rows]

    @persistence
    async def confirm_participation(self, participation_id: str, now: datetime) -> bool:
        row = await self.db.fetch_one(
            """
            UPDATE participations
            SET is_confirmed = TRUE, updated_at = :now
            WHERE id = :id AND is_active = TRUE AND is_confirmed = FALSE
            RETURNING id
            """,
            {"id": participation_id, "now": now}
        )
        return row is not None

    @persistence
    async def list_active_participants(self, event_id: str) -> list[ParticipantView]:
        rows = await self.db.fetch_all(
            """
            SELECT u.id, u.username, u.profile_picture_url
            FROM participations p
            JOIN users u ON u.id = p.user_id
            WHERE p.event_id = :event_id AND p.is_active = TRUE
            ORDER BY p.created_at ASC
            """,
            {"event_id": event_id}
        )
        return [
            ParticipantView(
                user_id=str(r["id"]),
                username=r["username"],
                profile_picture_url=r["profile_picture_url"],
            )
            for r in rows
        ]

    @persistence
    async def count_active(self, event_id: str) -> int:
        count = await self.db.fetch_val(
            "SELECT COUNT(*) FROM participations WHERE event_id = :event_id AND is_active = TRUE",
            {"event_id": event_id}
        )
        return int(count or 0)

    # Event type catalog

    @persistence
    async def list_event_types(self) -> list[EventTypeRecord]:
        rows = await self.db.fetch_all("SELECT id, name, parent_id FROM event_types ORDER BY name")
        return [
            EventTypeRecord(id=str(r["id"]), name=r["name"], parent_id=_str_id(r["parent_id"]))
            for r in rows
        ]

    @persistence
    async def find_event_types(self, names: list[str]) -> list[EventTypeRecord]:
        if not names:
            return []

        rows = await self.db.fetch_all(
            "SELECT id, name, parent_id FROM event_types WHERE name = ANY(:names)",
            {"names": list(names)}
        )
        return [
            EventTypeRecord(id=str(r["id"]), name=r["name"], parent_id=_str_id(r["parent_id"]))
            for r in rows
        ]

    @persistence
    async def event_type_names(self, type_ids: list[str]) -> list[str]:
        if not type_ids:
            return []

        rows = await self.db.fetch_all(
            "SELECT name FROM event_types WHERE id::text = ANY(:ids) ORDER BY name",
            {"ids": list(type_ids)}
        )
        return [r["name"] for r in rows]

    # User directory

    @persistence
    async def find_user_by_subject(self, subject: str) -> Optional[UserRecord]:
        row = await self.db.fetch_one(
            """
            SELECT id, auth_subject, username, profile_picture_url, role
            FROM users WHERE auth_subject = :subject
            """,
            {"subject": subject}
        )
        return _user_from_row(row) if row else None

    @persistence
    async def find_user(self, user_id: str) -> Optional[UserRecord]:
        if not _is_uuid(user_id):
            return None

        row = await self.db.fetch_one(
            "SELECT id, auth_subject, username, profile_picture_url, role FROM users WHERE id = :id",
            {"id": user_id}
        )
        return _user_from_row(row) if row else None

    @persistence
    async def interested_type_ids(self, user_id: str) -> list[str]:
        rows = await self.db.fetch_all(
            "SELECT event_type_id FROM user_interested_event_types WHERE user_id = :user_id",
            {"user_id": user_id}
        )
        return [str(r["event_type_id"]) for r in rows]

    @persistence
    async def find_active_ban(self, user_id: str) -> Optional[BanRecord]:
        row = await self.db.fetch_one(
            """
            SELECT id, user_id, reason, is_active, expires_at
            FROM bans
            WHERE user_id = :user_id AND is_active = TRUE
            ORDER BY created_at DESC
            LIMIT 1
            """,
            {"user_id": user_id}
        )
        if not row:
            return None
        data = dict(row)
        data["id"] = str(data["id"])
        data["user_id"] = str(data["user_id"])
        return BanRecord(**data)

    @persistence
    async def expire_ban(self, ban_id: str, now: datetime) -> None:
        await self.db.execute(
            "UPDATE bans SET is_active = FALSE, updated_at = :now WHERE id = :id",
            {"id": ban_id, "now": now}
        )
