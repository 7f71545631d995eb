"""
Event Store Interface
Operations shared by the PostgreSQL and in-memory backends
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

from eventhub.errors import RejectedError
from eventhub.stores.query import EventFilter
from eventhub.stores.records import (
    BanRecord,
    EventRecord,
    EventTypeRecord,
    ParticipantView,
    ParticipationRecord,
    UserRecord,
)

# snake_case field -> wire name used in validation messages
REQUIRED_EVENT_FIELDS = {
    "name": "name",
    "activity_hours": "activityHours",
    "total_seats": "totalSeats",
    "start_time": "startTime",
    "end_time": "endTime",
    "location": "location",
}

EVENT_FIELDS = set(REQUIRED_EVENT_FIELDS) | {
    "image_url",
    "description",
    "event_type_ids",
    "created_by",
}


def validate_event_fields(fields: dict, partial: bool = False) -> dict:
    """
    Check and normalise event fields before a write

    Args:
        fields: snake_case event attributes
        partial: True for merge-patch updates, where None values are dropped

    Returns:
        The fields to persist

    Raises:
        RejectedError: On a missing required field or a seat count below 1
    """
    cleaned = {k: v for k, v in fields.items() if k in EVENT_FIELDS and v is not None}

    if not partial:
        for key, wire_name in REQUIRED_EVENT_FIELDS.items():
            if key not in cleaned:
                raise RejectedError(f"Missing attribute: '{wire_name}'")
        cleaned.setdefault("description", "")

    if "total_seats" in cleaned and cleaned["total_seats"] < 1:
        raise RejectedError(f"'totalSeats' must be at least 1, got {cleaned['total_seats']}")

    if "activity_hours" in cleaned and cleaned["activity_hours"] < 0:
        raise RejectedError(f"'activityHours' must not be negative, got {cleaned['activity_hours']}")

    return cleaned


class JoinOutcome(Enum):
    JOINED = "joined"
    NOT_FOUND = "not_found"
    DEACTIVATED = "deactivated"
    NOT_ACTIVE = "not_active"
    ALREADY_JOINED = "already_joined"
    FULL = "full"


class JoinResult(NamedTuple):
    outcome: JoinOutcome
    participation_id: Optional[str] = None


class EventStore(ABC):
    """Persistence for events, participations and the directory lookups they need"""

    # Events

    @abstractmethod
    async def create(self, fields: dict, now: datetime) -> EventRecord: ...

    @abstractmethod
    async def find_by_id(self, event_id: str) -> Optional[EventRecord]: ...

    @abstractmethod
    async def update(self, event_id: str, fields: dict, now: datetime) -> Optional[EventRecord]:
        """Merge-patch a live event; a deactivated event comes back unchanged"""

    @abstractmethod
    async def list_events(self, event_filter: EventFilter, type_ids: Optional[list[str]] = None) -> tuple[list[EventRecord], int]: ...

    @abstractmethod
    async def list_recommended(
        self, interested_type_ids: list[str], page_number: int, page_size: int
    ) -> tuple[list[EventRecord], int]: ...

    @abstractmethod
    async def sweep_expired(self, now: datetime) -> int: ...

    @abstractmethod
    async def deactivate(self, event_id: str, now: datetime) -> bool: ...

    @abstractmethod
    async def set_qr_code_if_absent(
        self, event_id: str, ciphertext: str, iv: str, now: datetime
    ) -> Optional[EventRecord]: ...

    # Participations

    @abstractmethod
    async def join(self, user_id: str, event_id: str, now: datetime) -> JoinResult: ...

    @abstractmethod
    async def leave(self, user_id: str, event_id: str, now: datetime) -> int: ...

    @abstractmethod
    async def find_active_participation(self, user_id: str, event_id: str) -> Optional[ParticipationRecord]: ...

    @abstractmethod
    async def list_participations(self, user_id: str, event_id: str) -> list[ParticipationRecord]: ...

    @abstractmethod
    async def confirm_participation(self, participation_id: str, now: datetime) -> bool: ...

    @abstractmethod
    async def list_active_participants(self, event_id: str) -> list[ParticipantView]: ...

    @abstractmethod
    async def count_active(self, event_id: str) -> int: ...

    # Event type catalog

    @abstractmethod
    async def list_event_types(self) -> list[EventTypeRecord]: ...

    @abstractmethod
    async def find_event_types(self, names: list[str]) -> list[EventTypeRecord]: ...

    @abstractmethod
    async def event_type_names(self, type_ids: list[str]) -> list[str]: ...

    # User directory

    @abstractmethod
    async def find_user_by_subject(self, subject: str) -> Optional[UserRecord]: ...

    @abstractmethod
    async def find_user(self, user_id: str) -> Optional[UserRecord]: ...

    @abstractmethod
    async def interested_type_ids(self, user_id: str) -> list[str]: ...

    @abstractmethod
    async def find_active_ban(self, user_id: str) -> Optional[BanRecord]: ...

    @abstractmethod
    async def expire_ban(self, ban_id: str, now: datetime) -> None: ...
