"""
Pydantic schemas for request/response validation
"""

from eventhub.schemas.event import (
    CreateEventRequest,
    EditEventRequest,
    ScanRequest,
    CheckQrCodeRequest,
    MessageResponse,
    CreateEventResponse,
    JoinEventResponse,
    EventListResponse,
    EventDetailEnvelope,
    EventEditEnvelope,
    QrCodeResponse,
    QrCheckResponse,
)

__all__ = [
    "CreateEventRequest",
    "EditEventRequest",
    "ScanRequest",
    "CheckQrCodeRequest",
    "MessageResponse",
    "CreateEventResponse",
    "JoinEventResponse",
    "EventListResponse",
    "EventDetailEnvelope",
    "EventEditEnvelope",
    "QrCodeResponse",
    "QrCheckResponse",
]
