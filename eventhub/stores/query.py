"""
Event Query Builder
Typed list filters translated to SQL once, and mirrored for in-memory ordering
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, NamedTuple, Optional

from eventhub.errors import RejectedError
from eventhub.stores.records import EventRecord, EventTypeRecord


class EventSort(IntEnum):
    MOST_RECENTLY_CREATED = 0
    MOST_RECENT_START_DATE = 1
    MOST_PARTICIPANTS = 2
    LEAST_PARTICIPANTS = 3

    @classmethod
    def parse(cls, value) -> "EventSort":
        """Map a wire value to a sort key; unknown keys are a client error"""
        if value is None or value == "":
            return cls.MOST_RECENTLY_CREATED
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise RejectedError("Invalid sort type")


@dataclass(frozen=True)
class EventFilter:
    page_number: int = 1
    page_size: int = 20
    name_contains: Optional[str] = None
    event_type_names: list[str] = field(default_factory=list)
    sort: EventSort = EventSort.MOST_RECENTLY_CREATED
    sort_active_first: bool = True
    include_deactivated: bool = False

    def __post_init__(self):
        if self.page_number < 1:
            raise RejectedError(f"'pageNumber' must be at least 1, got {self.page_number}")
        if self.page_size < 1:
            raise RejectedError(f"'pageSize' must be at least 1, got {self.page_size}")

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size


def expand_event_type_ids(names: Iterable[str], catalog: Iterable[EventTypeRecord]) -> list[str]:
    """
    Resolve type names to ids, adding the ids of their direct children

    Args:
        names: Event type names as sent by the client
        catalog: Every known event type

    Returns:
        Matched ids followed by child ids, without duplicates
    """
    catalog = list(catalog)
    wanted = set(names)
    matched = [t.id for t in catalog if t.name in wanted]
    parents = set(matched)
    children = [t.id for t in catalog if t.parent_id in parents]

    ids: list[str] = []
    for type_id in matched + children:
        if type_id not in ids:
            ids.append(type_id)
    return ids


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

PARTICIPANT_COUNTS_JOIN = """
    LEFT JOIN (
        SELECT event_id, COUNT(*) AS cnt
        FROM participations
        WHERE is_active = TRUE
        GROUP BY event_id
    ) pc ON pc.event_id = e.id
"""

EVENT_COLUMNS = """
    e.*,
    COALESCE(pc.cnt, 0) AS participants_count,
    ARRAY(
        SELECT eet.event_type_id::text FROM event_event_types eet WHERE eet.event_id = e.id
    ) AS event_type_ids
"""

_SORT_SQL = {
    EventSort.MOST_RECENTLY_CREATED: "e.created_at DESC",
    EventSort.MOST_RECENT_START_DATE: "e.start_time DESC",
    EventSort.MOST_PARTICIPANTS: "participants_count DESC",
    EventSort.LEAST_PARTICIPANTS: "participants_count ASC",
}


class EventQuery(NamedTuple):
    count_sql: str
    count_params: dict
    page_sql: str
    page_params: dict


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_list_query(event_filter: EventFilter, type_ids: Optional[list[str]] = None) -> EventQuery:
    """
    Build the count and page queries for an event listing

    Args:
        event_filter: Validated filter
        type_ids: Expanded type ids; None means no type filter

    Returns:
        EventQuery whose count ignores paging
    """
    conditions = ["TRUE"]
    params: dict = {}

    if not event_filter.include_deactivated:
        conditions.append("e.is_deactivated = FALSE")

    if event_filter.name_contains:
        conditions.append("e.name ILIKE :name_pattern ESCAPE '\\'")
        params["name_pattern"] = f"%{_escape_like(event_filter.name_contains)}%"

    if type_ids is not None:
        conditions.append(
            "EXISTS (SELECT 1 FROM event_event_types eet "
            "WHERE eet.event_id = e.id AND eet.event_type_id::text = ANY(:type_ids))"
        )
        params["type_ids"] = list(type_ids)

    where = " AND ".join(conditions)

    order = []
    if event_filter.sort_active_first:
        order.append("e.is_active DESC")
    order.append(_SORT_SQL[event_filter.sort])
    order.append("e.id ASC")

    page_sql = f"""
        SELECT {EVENT_COLUMNS}
        FROM events e
        {PARTICIPANT_COUNTS_JOIN}
        WHERE {where}
        ORDER BY {", ".join(order)}
        LIMIT :limit OFFSET :offset
    """

    return EventQuery(
        count_sql=f"SELECT COUNT(*) AS count FROM events e WHERE {where}",
        count_params=dict(params),
        page_sql=page_sql,
        page_params={**params, "limit": event_filter.page_size, "offset": event_filter.offset},
    )


def build_recommended_query(interested_type_ids: list[str], page_number: int, page_size: int) -> EventQuery:
    """Rank events whose whole type set is within the interests first"""
    offset = EventFilter(page_number=page_number, page_size=page_size).offset

    page_sql = f"""
        SELECT
            {EVENT_COLUMNS},
            NOT EXISTS (
                SELECT 1 FROM event_event_types eet
                WHERE eet.event_id = e.id
                  AND NOT (eet.event_type_id::text = ANY(:interested_ids))
            ) AS is_interested
        FROM events e
        {PARTICIPANT_COUNTS_JOIN}
        WHERE e.is_deactivated = FALSE
        ORDER BY is_interested DESC, e.created_at DESC, e.is_active DESC, e.id ASC
        LIMIT :limit OFFSET :offset
    """

    return EventQuery(
        count_sql="SELECT COUNT(*) AS count FROM events e WHERE e.is_deactivated = FALSE",
        count_params={},
        page_sql=page_sql,
        page_params={
            "interested_ids": list(interested_type_ids),
            "limit": page_size,
            "offset": offset,
        },
    )


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

_SORT_KEYS = {
    EventSort.MOST_RECENTLY_CREATED: (lambda e: e.created_at, True),
    EventSort.MOST_RECENT_START_DATE: (lambda e: e.start_time, True),
    EventSort.MOST_PARTICIPANTS: (lambda e: e.participants_count, True),
    EventSort.LEAST_PARTICIPANTS: (lambda e: e.participants_count, False),
}


def matches(event: EventRecord, event_filter: EventFilter, type_ids: Optional[list[str]] = None) -> bool:
    if event.is_deactivated and not event_filter.include_deactivated:
        return False
    if event_filter.name_contains and event_filter.name_contains.lower() not in event.name.lower():
        return False
    if type_ids is not None and not set(event.event_type_ids) & set(type_ids):
        return False
    return True


def order_events(events: Iterable[EventRecord], sort: EventSort, active_first: bool) -> list[EventRecord]:
    """Same ordering as the SQL listing: active-first, sort key, then id"""
    ordered = sorted(events, key=lambda e: e.id)
    key, descending = _SORT_KEYS[sort]
    ordered.sort(key=key, reverse=descending)
    if active_first:
        ordered.sort(key=lambda e: e.is_active, reverse=True)
    return ordered


def order_recommended(events: Iterable[EventRecord], interested_type_ids: list[str]) -> list[EventRecord]:
    interested = set(interested_type_ids)
    ordered = sorted(events, key=lambda e: e.id)
    ordered.sort(key=lambda e: e.is_active, reverse=True)
    ordered.sort(key=lambda e: e.created_at, reverse=True)
    ordered.sort(key=lambda e: set(e.event_type_ids) <= interested, reverse=True)
    return ordered
