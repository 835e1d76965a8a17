from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Uuid, UniqueConstraint, Index
import uuid

from cloudvault.core.database import Base
from cloudvault.models.base import utcnow
from cloudvault.schemas.enums import Permission


class Share(Base):
    """Direct grant of an item to another user"""
    __tablename__ = "shares"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    item_kind = Column(String, nullable=False)  # file or folder
    item_id = Column(Uuid, nullable=False)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    shared_with_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    permission = Column(String, nullable=False, default=Permission.VIEWER.value)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Constraints
    __table_args__ = (
        UniqueConstraint("item_kind", "item_id", "shared_with_id", name="unique_share_per_user"),
    )


class LinkShare(Base):
    """Public, token-addressed grant of a single item"""
    __tablename__ = "link_shares"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    item_kind = Column(String, nullable=False)
    item_id = Column(Uuid, nullable=False)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    token = Column(String, unique=True, nullable=False, index=True)
    permission = Column(String, nullable=False, default=Permission.VIEWER.value)

    # Gating
    password_hash = Column(String, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_access_count = Column(Integer, nullable=True)
    access_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_link_shares_item", "item_kind", "item_id"),
    )

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None
