"""
Event Store
Backend selection by STORE_BACKEND
"""

from typing import Optional

from eventhub.config import settings
from eventhub.stores.base import EventStore, JoinOutcome, JoinResult
from eventhub.stores.memory import InMemoryEventStore
from eventhub.stores.query import EventFilter, EventSort
from eventhub.stores.sql import SqlEventStore

_store: Optional[EventStore] = None


def get_event_store() -> EventStore:
    """Return the process-wide store, creating it on first use"""
    global _store
    if _store is None:
        if settings.STORE_BACKEND == "memory":
            _store = InMemoryEventStore()
        else:
            _store = SqlEventStore()
    return _store


def set_event_store(store: Optional[EventStore]) -> None:
    """Replace the process-wide store (None resets to the configured backend)"""
    global _store
    _store = store


__all__ = [
    "EventStore",
    "EventFilter",
    "EventSort",
    "InMemoryEventStore",
    "JoinOutcome",
    "JoinResult",
    "SqlEventStore",
    "get_event_store",
    "set_event_store",
]
