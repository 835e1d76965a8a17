from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
import uuid

from cloudvault.schemas.enums import FileStatus, ItemKind


class ItemBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    parent_id: Optional[uuid.UUID] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class Folder(ItemBase):
    kind: ItemKind = ItemKind.FOLDER


class File(ItemBase):
    kind: ItemKind = ItemKind.FILE
    mime_type: str
    size: int
    status: FileStatus
    storage_bucket: str
    storage_key: str
    thumbnail_url: Optional[str] = None


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[uuid.UUID] = None


class ItemRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ItemMove(BaseModel):
    parent_id: Optional[uuid.UUID] = None


class FolderContents(BaseModel):
    folder_id: Optional[uuid.UUID] = None
    folders: List[Folder] = []
    files: List[File] = []

    @classmethod
    def from_items(cls, folders, files, folder_id: Optional[uuid.UUID] = None) -> "FolderContents":
        return cls(
            folder_id=folder_id,
            folders=[Folder.model_validate(f) for f in folders],
            files=[File.model_validate(f) for f in files]
        )


class DownloadUrl(BaseModel):
    url: str
    expires_in: int


class StarStatus(BaseModel):
    item_id: uuid.UUID
    kind: ItemKind
    starred: bool


class RecentFiles(BaseModel):
    files: List[File] = []

    @classmethod
    def from_files(cls, files) -> "RecentFiles":
        return cls(files=[File.model_validate(f) for f in files])


def item_schema(item, kind: ItemKind) -> Union[File, Folder]:
    """Serialize a file or folder row with the schema for its kind"""
    match kind:
        case ItemKind.FILE:
            return File.model_validate(item)
        case ItemKind.FOLDER:
            return Folder.model_validate(item)
    raise ValueError(f"Unknown item kind: {kind}")
