"""
User Models
Directory of identity-provider users, their interests and bans
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Table, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from eventhub.database import Base


user_interested_event_types = Table(
    "user_interested_event_types",
    Base.metadata,
    Column("user_id", UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("event_type_id", UUID(as_uuid=True), ForeignKey("event_types.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    auth_subject = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(20), nullable=False)
    profile_picture_url = Column(Text, nullable=True)
    role = Column(String(10), nullable=False, default="user")  # 'user' or 'admin'

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    interested_event_types = relationship("EventType", secondary=user_interested_event_types)


class Ban(Base):
    __tablename__ = "bans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(Text, nullable=True)

    # Status
    is_active = Column(Boolean, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", backref="bans")
