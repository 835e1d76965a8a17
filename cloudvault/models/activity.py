from sqlalchemy import Column, String, ForeignKey, DateTime, Uuid, UniqueConstraint, Index
import uuid

from cloudvault.core.database import Base
from cloudvault.models.base import utcnow


class Star(Base):
    """A user's bookmark on a file or folder"""
    __tablename__ = "stars"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    item_kind = Column(String, nullable=False)
    item_id = Column(Uuid, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "item_kind", "item_id", name="unique_star_per_user"),
    )


class Activity(Base):
    """Append-only log of what a user did to an item"""
    __tablename__ = "activities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    item_kind = Column(String, nullable=False)
    item_id = Column(Uuid, nullable=False)
    action = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_activities_user_created", "user_id", "created_at"),
    )
