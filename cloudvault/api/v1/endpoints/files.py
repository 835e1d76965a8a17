from typing import Optional
from fastapi import APIRouter, Depends, Form, Query, Response, status, UploadFile, File as FastAPIFile
from urllib.parse import quote
import uuid

from cloudvault.api.deps import get_current_active_user, get_item_service, get_upload_coordinator
from cloudvault.models.user import User
from cloudvault.schemas.item import DownloadUrl, File, FolderContents
from cloudvault.schemas.upload import UploadComplete, UploadInit, UploadInitResponse
from cloudvault.schemas.enums import ItemKind
from cloudvault.services.items import ItemService
from cloudvault.services.uploads import UploadCoordinator

router = APIRouter()


@router.get("/contents", response_model=FolderContents)
async def list_contents(
    folder_id: Optional[uuid.UUID] = None,
    include_shared: bool = True,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """List a folder, or the root and items shared with the current user"""
    return await item_service.list_contents(current_user.id, folder_id, include_shared)


@router.post("/uploads", response_model=UploadInitResponse, status_code=status.HTTP_201_CREATED)
async def init_upload(
    upload: UploadInit,
    current_user: User = Depends(get_current_active_user),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator)
):
    """Start an upload and get presigned part URLs"""
    return await coordinator.init_upload(
        user_id=current_user.id,
        name=upload.name,
        folder_id=upload.folder_id,
        mime_type=upload.mime_type,
        size=upload.size,
        part_count=upload.part_count
    )


@router.post("/uploads/{file_id}/complete", response_model=File)
async def complete_upload(
    file_id: uuid.UUID,
    body: Optional[UploadComplete] = None,
    current_user: User = Depends(get_current_active_user),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator)
):
    """Finish an upload"""
    parts = None
    if body and body.parts:
        parts = [(part.part_number, part.etag) for part in body.parts]
    return await coordinator.complete_upload(current_user.id, file_id, parts)


@router.post("/uploads/{file_id}/abort", response_model=File)
async def abort_upload(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator)
):
    """Abandon an upload"""
    return await coordinator.abort_upload(current_user.id, file_id)


@router.post("/upload", response_model=File, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    folder_id: Optional[uuid.UUID] = Form(None),
    name: Optional[str] = Form(None),
    current_user: User = Depends(get_current_active_user),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator)
):
    """Upload a small file through the API"""
    data = await file.read()
    return await coordinator.upload_direct(
        user_id=current_user.id,
        folder_id=folder_id,
        name=name or file.filename,
        mime_type=file.content_type,
        data=data
    )


@router.get("/{file_id}", response_model=File)
async def get_file(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Get file metadata"""
    return await item_service.get_item(current_user.id, file_id, ItemKind.FILE)


@router.get("/{file_id}/download-url", response_model=DownloadUrl)
async def get_download_url(
    file_id: uuid.UUID,
    expires: int = Query(3600, ge=60, le=86400),  # 1 minute to 24 hours
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Get presigned URL for direct file access"""
    url, expires_in = await item_service.get_download_url(current_user.id, file_id, expires)
    return DownloadUrl(url=url, expires_in=expires_in)


@router.get("/{file_id}/content")
async def download_file(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Download file content"""
    file, data = await item_service.read_file(current_user.id, file_id)
    return Response(
        content=data,
        media_type=file.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file.name)}"}
    )


@router.get("/{file_id}/thumbnail")
async def get_thumbnail(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    item_service: ItemService = Depends(get_item_service)
):
    """Get the generated thumbnail of an image"""
    data = await item_service.read_thumbnail(current_user.id, file_id)
    return Response(content=data, media_type="image/jpeg")
