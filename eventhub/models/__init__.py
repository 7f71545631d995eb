"""
Database Models
Import all models here for Alembic migrations
"""

from eventhub.models.user import User, Ban, user_interested_event_types
from eventhub.models.event_type import EventType
from eventhub.models.event import Event, event_event_types
from eventhub.models.participation import Participation

__all__ = [
    "User",
    "Ban",
    "EventType",
    "Event",
    "Participation",
    "user_interested_event_types",
    "event_event_types",
]
