from sqlalchemy import Column, String, ForeignKey, DateTime, BigInteger, Boolean, Uuid
import uuid

from cloudvault.core.database import Base
from cloudvault.models.base import utcnow
from cloudvault.schemas.enums import FileStatus


class File(Base):
    __tablename__ = "files"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String, nullable=False)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    parent_id = Column(Uuid, ForeignKey("folders.id"), nullable=True, index=True)
    mime_type = Column(String, nullable=False, default="application/octet-stream")
    size = Column(BigInteger, nullable=False, default=0)

    # Object storage info
    storage_key = Column(String, unique=True, nullable=False, index=True)
    storage_bucket = Column(String, nullable=False)

    # Upload lifecycle: uploading -> ready | error
    status = Column(String, nullable=False, default=FileStatus.UPLOADING.value)
    upload_id = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)

    # Soft delete
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_image(self) -> bool:
        return (self.mime_type or "").startswith("image/")
