"""
Participation Model
One user's join record for one event
"""

from sqlalchemy import Column, Boolean, DateTime, ForeignKey, Index, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from eventhub.database import Base


class Participation(Base):
    __tablename__ = "participations"
    __table_args__ = (
        # At most one active participation per (user, event); inactive rows are history
        Index(
            "uq_participations_active_user_event",
            "user_id",
            "event_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("ix_participations_event_active", "event_id", "is_active"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)  # false once the user leaves
    is_confirmed = Column(Boolean, nullable=False, default=False)  # attendance verified by QR scan

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    event = relationship("Event", backref="participants")
    user = relationship("User", backref="joined_events")
