"""
In-Memory Event Store
Process-local backend for development and tests
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Optional
from uuid import uuid4

from eventhub.stores.base import (
    EventStore,
    JoinOutcome,
    JoinResult,
    validate_event_fields,
)
from eventhub.stores.query import (
    EventFilter,
    matches,
    order_events,
    order_recommended,
)
from eventhub.stores.records import (
    BanRecord,
    EventRecord,
    EventTypeRecord,
    ParticipantView,
    ParticipationRecord,
    UserRecord,
)


class InMemoryEventStore(EventStore):
    """Dict-backed store; a lock per created event serialises joins and leaves"""

    def __init__(self):
        self._events: dict[str, EventRecord] = {}
        self._participations: dict[str, ParticipationRecord] = {}
        self._event_types: dict[str, EventTypeRecord] = {}
        self._users: dict[str, UserRecord] = {}
        self._interests: dict[str, list[str]] = defaultdict(list)
        self._bans: dict[str, BanRecord] = {}
        self._event_locks: dict[str, asyncio.Lock] = {}
        self._qr_lock = asyncio.Lock()

    # Seeding

    def add_event_type(self, name: str, parent_id: Optional[str] = None) -> EventTypeRecord:
        record = EventTypeRecord(id=str(uuid4()), name=name, parent_id=parent_id)
        self._event_types[record.id] = record
        return record

    def add_user(
        self,
        auth_subject: str,
        username: str,
        role: str = "user",
        profile_picture_url: Optional[str] = None,
        interested_type_ids: Optional[list[str]] = None,
    ) -> UserRecord:
        record = UserRecord(
            id=str(uuid4()),
            auth_subject=auth_subject,
            username=username,
            role=role,
            profile_picture_url=profile_picture_url,
        )
        self._users[record.id] = record
        self._interests[record.id] = list(interested_type_ids or [])
        return record

    def add_ban(self, user_id: str, expires_at: datetime, reason: Optional[str] = None) -> BanRecord:
        record = BanRecord(id=str(uuid4()), user_id=user_id, reason=reason, expires_at=expires_at)
        self._bans[record.id] = record
        return record

    # Events

    def _with_count(self, event: EventRecord) -> EventRecord:
        count = sum(
            1 for p in self._participations.values()
            if p.event_id == event.id and p.is_active
        )
        return event.model_copy(update={"participants_count": count})

    async def create(self, fields: dict, now: datetime) -> EventRecord:
        data = validate_event_fields(fields)
        event = EventRecord(id=str(uuid4()), created_at=now, updated_at=now, **data)
        self._events[event.id] = event
        self._event_locks[event.id] = asyncio.Lock()
        return event

    async def find_by_id(self, event_id: str) -> Optional[EventRecord]:
        event = self._events.get(event_id)
        return self._with_count(event) if event else None

    async def update(self, event_id: str, fields: dict, now: datetime) -> Optional[EventRecord]:
        event = self._events.get(event_id)
        if not event:
            return None
        data = validate_event_fields(fields, partial=True)
        if event.is_deactivated:
            return self._with_count(event)
        data["updated_at"] = now
        self._events[event_id] = event.model_copy(update=data)
        return await self.find_by_id(event_id)

    async def list_events(self, event_filter: EventFilter, type_ids: Optional[list[str]] = None) -> tuple[list[EventRecord], int]:
        found = [
            self._with_count(e) for e in self._events.values()
            if matches(e, event_filter, type_ids)
        ]
        ordered = order_events(found, event_filter.sort, event_filter.sort_active_first)
        start = event_filter.offset
        return ordered[start:start + event_filter.page_size], len(ordered)

    async def list_recommended(
        self, interested_type_ids: list[str], page_number: int, page_size: int
    ) -> tuple[list[EventRecord], int]:
        start = EventFilter(page_number=page_number, page_size=page_size).offset
        found = [self._with_count(e) for e in self._events.values() if not e.is_deactivated]
        ordered = order_recommended(found, interested_type_ids)
        return ordered[start:start + page_size], len(ordered)

    async def sweep_expired(self, now: datetime) -> int:
        swept = 0
        for event_id, event in list(self._events.items()):
            if event.is_active and event.end_time < now:
                self._events[event_id] = event.model_copy(update={"is_active": False, "updated_at": now})
                swept += 1
        return swept

    async def deactivate(self, event_id: str, now: datetime) -> bool:
        event = self._events.get(event_id)
        if not event or event.is_deactivated:
            return False
        self._events[event_id] = event.model_copy(
            update={"is_active": False, "is_deactivated": True, "updated_at": now}
        )
        return True

    async def set_qr_code_if_absent(
        self, event_id: str, ciphertext: str, iv: str, now: datetime
    ) -> Optional[EventRecord]:
        async with self._qr_lock:
            event = self._events.get(event_id)
            if not event:
                return None
            if event.qr_code_string is None and not event.is_deactivated:
                event = event.model_copy(
                    update={"qr_code_string": ciphertext, "qr_code_iv": iv, "updated_at": now}
                )
                self._events[event_id] = event
            return self._with_count(event)

    # Participations

    async def join(self, user_id: str, event_id: str, now: datetime) -> JoinResult:
        lock = self._event_locks.get(event_id)
        if lock is None:
            return JoinResult(JoinOutcome.NOT_FOUND)

        async with lock:
            event = await self.find_by_id(event_id)
            if not event:
                return JoinResult(JoinOutcome.NOT_FOUND)
            if event.is_deactivated:
                return JoinResult(JoinOutcome.DEACTIVATED)
            if not event.is_active:
                return JoinResult(JoinOutcome.NOT_ACTIVE)
            if await self.find_active_participation(user_id, event_id):
                return JoinResult(JoinOutcome.ALREADY_JOINED)
            if event.participants_count >= event.total_seats:
                return JoinResult(JoinOutcome.FULL)

            participation = ParticipationRecord(
                id=str(uuid4()),
                event_id=event_id,
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
            self._participations[participation.id] = participation
            return JoinResult(JoinOutcome.JOINED, participation.id)

    async def leave(self, user_id: str, event_id: str, now: datetime) -> int:
        lock = self._event_locks.get(event_id)
        if lock is None:
            return 0

        async with lock:
            left = 0
            for p in await self.list_participations(user_id, event_id):
                if p.is_active:
                    self._participations[p.id] = p.model_copy(update={"is_active": False, "updated_at": now})
                    left += 1
            return left

    async def find_active_participation(self, user_id: str, event_id: str) -> Optional[ParticipationRecord]:
        for p in self._participations.values():
            if p.user_id == user_id and p.event_id == event_id and p.is_active:
                return p
        return None

    async def list_participations(self, user_id: str, event_id: str) -> list[ParticipationRecord]:
        return sorted(
            (p for p in self._participations.values() if p.user_id == user_id and p.event_id == event_id),
            key=lambda p: p.created_at,
        )

    async def confirm_participation(self, participation_id: str, now: datetime) -> bool:
        p = self._participations.get(participation_id)
        if not p or not p.is_active or p.is_confirmed:
            return False
        self._participations[participation_id] = p.model_copy(update={"is_confirmed": True, "updated_at": now})
        return True

    async def list_active_participants(self, event_id: str) -> list[ParticipantView]:
        views = []
        active = sorted(
            (p for p in self._participations.values() if p.event_id == event_id and p.is_active),
            key=lambda p: p.created_at,
        )
        for p in active:
            user = self._users.get(p.user_id)
            if user:
                views.append(ParticipantView(
                    user_id=user.id,
                    username=user.username,
                    profile_picture_url=user.profile_picture_url,
                ))
        return views

    async def count_active(self, event_id: str) -> int:
        return sum(1 for p in self._participations.values() if p.event_id == event_id and p.is_active)

    # Event type catalog

    async def list_event_types(self) -> list[EventTypeRecord]:
        return list(self._event_types.values())

    async def find_event_types(self, names: list[str]) -> list[EventTypeRecord]:
        wanted = set(names)
        return [t for t in self._event_types.values() if t.name in wanted]

    async def event_type_names(self, type_ids: list[str]) -> list[str]:
        return [self._event_types[t].name for t in type_ids if t in self._event_types]

    # User directory

    async def find_user_by_subject(self, subject: str) -> Optional[UserRecord]:
        for user in self._users.values():
            if user.auth_subject == subject:
                return user
        return None

    async def find_user(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)

    async def interested_type_ids(self, user_id: str) -> list[str]:
        return list(self._interests.get(user_id, []))

    async def find_active_ban(self, user_id: str) -> Optional[BanRecord]:
        for ban in self._bans.values():
            if ban.user_id == user_id and ban.is_active:
                return ban
        return None

    async def expire_ban(self, ban_id: str, now: datetime) -> None:
        ban = self._bans.get(ban_id)
        if ban:
            self._bans[ban_id] = ban.model_copy(update={"is_active": False})
