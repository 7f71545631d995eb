"""
Event Model
Plannable activities that users join and confirm attendance for
"""

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, ForeignKey, Table, Text,
    CheckConstraint, Index, func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from eventhub.database import Base


event_event_types = Table(
    "event_event_types",
    Base.metadata,
    Column("event_id", UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("event_type_id", UUID(as_uuid=True), ForeignKey("event_types.id", ondelete="CASCADE"), primary_key=True),
)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("total_seats >= 1", name="ck_events_total_seats_positive"),
        Index("ix_events_active_end_time", "is_active", "end_time"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False, index=True)
    image_url = Column(Text, nullable=True)
    activity_hours = Column(Float, nullable=False)
    total_seats = Column(Integer, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Status
    is_active = Column(Boolean, nullable=False, default=True)  # can currently be joined
    is_deactivated = Column(Boolean, nullable=False, default=False)  # permanently retired

    # Attendance QR code, written once
    qr_code_string = Column(Text, nullable=True)
    qr_code_iv = Column(String(64), nullable=True)

    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("User", backref="created_events")
    event_types = relationship("EventType", secondary=event_event_types)
