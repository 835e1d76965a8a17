from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
import uuid

from cloudvault.schemas.enums import ItemKind, Permission
from cloudvault.schemas.item import File, Folder


class ShareCreate(BaseModel):
    item_id: uuid.UUID
    item_kind: ItemKind
    email: EmailStr
    permission: Permission = Permission.VIEWER


class Share(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    item_id: uuid.UUID
    item_kind: ItemKind
    owner_id: uuid.UUID
    shared_with_id: uuid.UUID
    permission: Permission
    created_at: datetime
    updated_at: Optional[datetime] = None


class LinkShareCreate(BaseModel):
    item_id: uuid.UUID
    item_kind: ItemKind
    permission: Permission = Permission.VIEWER
    password: Optional[str] = Field(None, min_length=1)
    expires_at: Optional[datetime] = None
    max_access_count: Optional[int] = Field(None, ge=1)


class LinkShare(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    item_id: uuid.UUID
    item_kind: ItemKind
    owner_id: uuid.UUID
    token: str
    permission: Permission
    expires_at: Optional[datetime] = None
    max_access_count: Optional[int] = None
    access_count: int
    has_password: bool = False
    created_at: datetime


class ItemShares(BaseModel):
    shares: List[Share] = []
    link_shares: List[LinkShare] = []


class LinkResolveRequest(BaseModel):
    password: Optional[str] = None


class ResolvedLink(BaseModel):
    item_kind: ItemKind
    item_id: uuid.UUID
    permission: Permission
    access_count: int
    item: Union[File, Folder]
    download_url: Optional[str] = None
