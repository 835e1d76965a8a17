from typing import Union
from fastapi import APIRouter, Depends, status
import uuid

from cloudvault.api.deps import get_current_active_user, get_item_service
from cloudvault.models.user import User
from cloudvault.schemas.enums import ItemKind
from cloudvault.schemas.item import File, Folder, ItemMove, ItemRename, item_schema
from cloudvault.services.items import ItemService

router = APIRouter()


@router.patch("/{kind}/{item_id}/name", response_model=Union[File, Folder])
async def rename_item(
    kind: ItemKind,
    item_id: uuid.UUID,
    rename: ItemRename,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Rename a file or folder"""
    item = await item_service.rename_item(current_user.id, item_id, kind, rename.name)
    return item_schema(item, kind)


@router.patch("/{kind}/{item_id}/parent", response_model=Union[File, Folder])
async def move_item(
    kind: ItemKind,
    item_id: uuid.UUID,
    move: ItemMove,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Move a file or folder"""
    item = await item_service.move_item(current_user.id, item_id, kind, move.parent_id)
    return item_schema(item, kind)


@router.delete("/{kind}/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    kind: ItemKind,
    item_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Delete a file, or a folder with its contents"""
    await item_service.delete_item(current_user.id, item_id, kind)
    return None
