from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, Uuid, Index, func, cast, false
import uuid

from cloudvault.core.database import Base
from cloudvault.models.base import utcnow


class Folder(Base):
    __tablename__ = "folders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String, nullable=False)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    parent_id = Column(Uuid, ForeignKey("folders.id"), nullable=True, index=True)

    # Soft delete
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


# One live folder per name under an owner's parent; root folders have a NULL
# parent, so the parent is coalesced to keep them comparable
Index(
    "uq_folders_live_sibling_name",
    Folder.owner_id,
    func.coalesce(cast(Folder.parent_id, String), ""),
    Folder.name,
    unique=True,
    postgresql_where=Folder.is_deleted == false(),
    sqlite_where=Folder.is_deleted == false(),
)
