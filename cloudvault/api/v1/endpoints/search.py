from typing import Optional
import uuid
from fastapi import APIRouter, Depends, Query

from cloudvault.api.deps import get_current_active_user, get_item_service, get_library_service
from cloudvault.models.user import User
from cloudvault.schemas.enums import ItemKind
from cloudvault.schemas.item import FolderContents, RecentFiles, StarStatus
from cloudvault.services.items import ItemService
from cloudvault.services.library import LibraryService

router = APIRouter()


@router.get("", response_model=FolderContents)
async def search_items(
    q: str = Query(..., min_length=1),
    kind: Optional[ItemKind] = None,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Search files and folders by name"""
    return await item_service.search(current_user.id, q, kind, limit)


@router.get("/starred", response_model=FolderContents)
async def list_starred(
    current_user: User = Depends(get_current_active_user),
    library: LibraryService = Depends(get_library_service)
):
    """List starred files and folders"""
    return await library.list_starred(current_user.id)


@router.post("/star/{item_id}", response_model=StarStatus)
async def toggle_star(
    item_id: uuid.UUID,
    kind: ItemKind = Query(...),
    current_user: User = Depends(get_current_active_user),
    library: LibraryService = Depends(get_library_service)
):
    """Star an item, or unstar it when already starred"""
    starred = await library.toggle_star(current_user.id, item_id, kind)
    return StarStatus(item_id=item_id, kind=kind, starred=starred)


@router.get("/recent", response_model=RecentFiles)
async def list_recent(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    library: LibraryService = Depends(get_library_service)
):
    """Files recently uploaded, downloaded or viewed"""
    files = await library.list_recent(current_user.id, limit)
    return RecentFiles.from_files(files)
