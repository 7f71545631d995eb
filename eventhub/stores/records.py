"""
Store Records
Plain values returned by the event store backends
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EventRecord(BaseModel):
    id: str
    name: str
    image_url: Optional[str] = None
    activity_hours: float
    total_seats: int
    start_time: datetime
    end_time: datetime
    location: str
    description: str = ""
    is_active: bool = True
    is_deactivated: bool = False
    qr_code_string: Optional[str] = None
    qr_code_iv: Optional[str] = None
    event_type_ids: list[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    participants_count: int = 0  # active participations only

    @property
    def has_qr_code(self) -> bool:
        return bool(self.qr_code_string and self.qr_code_iv)


class ParticipationRecord(BaseModel):
    id: str
    event_id: str
    user_id: str
    is_active: bool = True
    is_confirmed: bool = False
    created_at: datetime
    updated_at: datetime


class ParticipantView(BaseModel):
    """Active participant of an event joined with its user"""
    user_id: str
    username: str
    profile_picture_url: Optional[str] = None


class EventTypeRecord(BaseModel):
    id: str
    name: str
    parent_id: Optional[str] = None


class UserRecord(BaseModel):
    id: str
    auth_subject: str
    username: str
    profile_picture_url: Optional[str] = None
    role: str = "user"


class BanRecord(BaseModel):
    id: str
    user_id: str
    reason: Optional[str] = None
    is_active: bool = True
    expires_at: datetime
