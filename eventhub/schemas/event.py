"""
Event Request/Response Models
camelCase on the wire, times as epoch milliseconds
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def to_millis(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def from_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# Requests

class EventImage(CamelModel):
    """Either a hosted URL or a base64 image to upload"""
    url: Optional[str] = None
    base64_image: Optional[str] = None


class EventFields(CamelModel):
    """Event attributes; required ones are enforced when the event is stored"""
    name: Optional[str] = Field(None, max_length=200)
    activity_hours: Optional[float] = None
    total_seats: Optional[int] = None
    start_time: Optional[int] = Field(None, description="Epoch milliseconds")
    end_time: Optional[int] = Field(None, description="Epoch milliseconds")
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    event_types: Optional[list[str]] = None
    image: Optional[EventImage] = None

    def store_fields(self) -> dict:
        """snake_case attributes for the store, None where not given"""
        return {
            "name": self.name,
            "activity_hours": self.activity_hours,
            "total_seats": self.total_seats,
            "start_time": from_millis(self.start_time),
            "end_time": from_millis(self.end_time),
            "location": self.location,
            "description": self.description,
        }


class CreateEventRequest(CamelModel):
    event: EventFields

    class Config:
        json_schema_extra = {
            "example": {
                "event": {
                    "name": "Campus Cleanup",
                    "activityHours": 3,
                    "totalSeats": 40,
                    "startTime": 1767225600000,
                    "endTime": 1767236400000,
                    "location": "Main Gate",
                    "description": "Bring gloves",
                    "eventTypes": ["Social Service"],
                    "image": {"url": "https://cdn.example.com/cleanup.png"}
                }
            }
        }


class EditEventRequest(CamelModel):
    event: EventFields


class ScanRequest(CamelModel):
    """Ciphertext read from the QR code, or the QR image as a data URL"""
    encrypted_string: Optional[str] = None


class CheckQrCodeRequest(ScanRequest):
    event_id: str


# Responses

class MessageResponse(BaseModel):
    message: str


class CreateEventResponse(MessageResponse):
    id: str


class JoinEventResponse(CamelModel):
    message: str
    participation_id: str


class EventSummaryResponse(CamelModel):
    """Event as shown in listings"""
    id: str
    name: str
    image_url: Optional[str] = None
    activity_hours: float
    total_seats: int
    start_time: int
    end_time: int
    location: str
    description: str = ""
    is_active: bool
    participants_count: int
    event_types: list[str] = []

    @classmethod
    def from_view(cls, view) -> "EventSummaryResponse":
        e = view.event
        return cls(
            id=e.id,
            name=e.name,
            image_url=e.image_url,
            activity_hours=e.activity_hours,
            total_seats=e.total_seats,
            start_time=to_millis(e.start_time),
            end_time=to_millis(e.end_time),
            location=e.location,
            description=e.description,
            is_active=e.is_active,
            participants_count=e.participants_count,
            event_types=view.event_types,
        )


class EventListResponse(CamelModel):
    page_number: int
    page_size: int
    no_pages: int
    events: list[EventSummaryResponse]
    total_count: int

    @classmethod
    def from_page(cls, page) -> "EventListResponse":
        return cls(
            page_number=page.page_number,
            page_size=page.page_size,
            no_pages=page.no_pages,
            events=[EventSummaryResponse.from_view(v) for v in page.events],
            total_count=page.total_count,
        )


class ParticipantResponse(CamelModel):
    id: str
    name: str
    profile_picture_url: Optional[str] = None
    is_self: bool = False


class EventDetailResponse(EventSummaryResponse):
    participants: list[ParticipantResponse]
    user_has_joined_event: bool

    @classmethod
    def from_detail(cls, detail) -> "EventDetailResponse":
        summary = EventSummaryResponse.from_view(detail)
        return cls(
            **summary.model_dump(),
            participants=[
                ParticipantResponse(
                    id=p.user_id,
                    name=p.username,
                    profile_picture_url=p.profile_picture_url,
                    is_self=p.user_id == detail.viewer_id,
                )
                for p in detail.participants
            ],
            user_has_joined_event=detail.user_has_joined_event,
        )


class EventDetailEnvelope(MessageResponse):
    event: EventDetailResponse


class EventEditResponse(CamelModel):
    """Current values to prefill the edit form"""
    name: str
    image_url: Optional[str] = None
    event_types: list[str]
    start_time: int
    end_time: int
    location: str
    activity_hours: float
    total_seats: int
    description: str = ""

    @classmethod
    def from_view(cls, view) -> "EventEditResponse":
        e = view.event
        return cls(
            name=e.name,
            image_url=e.image_url,
            event_types=view.event_types,
            start_time=to_millis(e.start_time),
            end_time=to_millis(e.end_time),
            location=e.location,
            activity_hours=e.activity_hours,
            total_seats=e.total_seats,
            description=e.description,
        )


class EventEditEnvelope(MessageResponse):
    event: EventEditResponse


class QrCodeResponse(CamelModel):
    message: str
    qr_code_string: str = Field(description="PNG data URL")


class QrCheckResults(CamelModel):
    is_valid: bool
    event_id: Optional[str] = None
    created_at: Optional[int] = None


class QrCheckResponse(MessageResponse):
    results: QrCheckResults
