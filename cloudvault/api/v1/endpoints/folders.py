from fastapi import APIRouter, Depends, status
import uuid

from cloudvault.api.deps import get_current_active_user, get_item_service
from cloudvault.models.user import User
from cloudvault.schemas.enums import ItemKind
from cloudvault.schemas.item import Folder, FolderCreate
from cloudvault.services.items import ItemService

router = APIRouter()


@router.post("", response_model=Folder, status_code=status.HTTP_201_CREATED)
async def create_folder(
    folder_data: FolderCreate,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Create a folder"""
    return await item_service.create_folder(current_user.id, folder_data.name, folder_data.parent_id)


@router.get("/{folder_id}", response_model=Folder)
async def get_folder(
    folder_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Get folder metadata"""
    return await item_service.get_item(current_user.id, folder_id, ItemKind.FOLDER)
