"""
Event Type Model
Category tags with one level of child categories
"""

from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from eventhub.database import Base


class EventType(Base):
    __tablename__ = "event_types"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False, index=True)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("event_types.id", ondelete="SET NULL"), nullable=True)

    parent = relationship("EventType", remote_side=[id], backref="child_types")
