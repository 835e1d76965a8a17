from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from cloudvault.core.config import settings
from cloudvault.core.storage import StorageBackend
from cloudvault.models import File, Folder, Item
from cloudvault.repositories.activity import ActivityRepository
from cloudvault.repositories.item import ItemRepository
from cloudvault.schemas.enums import ActivityAction, FileStatus, ItemKind, Permission
from cloudvault.schemas.item import FolderContents
from cloudvault.services.access import AccessResolver
from cloudvault.services.thumbnails import thumbnail_key
from cloudvault.utils.exceptions import (
    ConflictError,
    DataIntegrityError,
    InvalidMoveError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def validate_name(name: str) -> str:
    """Strip a file or folder name and reject path tricks"""
    name = (name or "").strip()

    if not name:
        raise ValidationError("Name is required")

    # block slashes and path tricks
    if "/" in name or "\\" in name:
        raise ValidationError("Name cannot contain slashes")

    if name in [".", ".."]:
        raise ValidationError("Invalid name")

    if len(name) > 255:
        raise ValidationError("Name is too long")

    return name


class ItemService:
    """Browse and reorganise the file/folder tree"""

    def __init__(self, db: AsyncSession, storage: StorageBackend):
        self.item_repo = ItemRepository(db)
        self.activity_repo = ActivityRepository(db)
        self.access = AccessResolver(db)
        self.storage = storage

    async def create_folder(self, user_id: uuid.UUID, name: str, parent_id: Optional[uuid.UUID] = None) -> Folder:
        """Create a folder owned by the caller"""
        name = validate_name(name)
        if parent_id is not None:
            await self.access.require_access(user_id, parent_id, ItemKind.FOLDER, Permission.EDITOR)

        if await self.item_repo.find_sibling_folder(user_id, parent_id, name):
            raise ConflictError("A folder with this name already exists")

        folder = await self.item_repo.create_folder(user_id, name, parent_id)
        await self.activity_repo.record(user_id, ItemKind.FOLDER, folder.id, ActivityAction.CREATE_FOLDER)
        logger.info("Folder %s created by %s", folder.id, user_id)
        return folder

    async def list_contents(
        self,
        user_id: uuid.UUID,
        folder_id: Optional[uuid.UUID] = None,
        include_shared: bool = True
    ) -> FolderContents:
        """List a folder, or the caller's root plus items shared with them"""
        if folder_id is not None:
            await self.access.require_access(user_id, folder_id, ItemKind.FOLDER, Permission.VIEWER)
            folders, files = await self.item_repo.list_children(
                folder_id,
                owner_id=None if include_shared else user_id
            )
        else:
            folders, files = await self.item_repo.list_root(user_id)
            if include_shared:
                shared_folders, shared_files = await self.item_repo.list_shared_with(user_id)
                folders.extend(shared_folders)
                files.extend(shared_files)

        return FolderContents.from_items(folders, files, folder_id=folder_id)

    async def get_item(self, user_id: uuid.UUID, item_id: uuid.UUID, kind: ItemKind) -> Item:
        item = await self.access.require_access(user_id, item_id, kind, Permission.VIEWER)
        if kind == ItemKind.FILE:
            await self.activity_repo.record(user_id, kind, item_id, ActivityAction.VIEW)
        return item

    async def rename_item(self, user_id: uuid.UUID, item_id: uuid.UUID, kind: ItemKind, new_name: str) -> Item:
        """Rename a file or folder"""
        new_name = validate_name(new_name)
        item = await self.access.require_access(user_id, item_id, kind, Permission.EDITOR)

        # Uniqueness is scoped to the folder owner, not whoever renames it
        if kind == ItemKind.FOLDER and await self.item_repo.find_sibling_folder(
            item.owner_id, item.parent_id, new_name, exclude_id=item.id
        ):
            raise ConflictError("A folder with this name already exists")

        renamed = await self.item_repo.rename(item, new_name)
        await self.activity_repo.record(user_id, kind, item_id, ActivityAction.RENAME)
        return renamed

    async def move_item(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        new_parent_id: Optional[uuid.UUID]
    ) -> Item:
        """Move a file or folder under another folder, or to the root"""
        item = await self.access.require_access(user_id, item_id, kind, Permission.EDITOR)
        if new_parent_id is not None:
            await self.access.require_access(user_id, new_parent_id, ItemKind.FOLDER, Permission.EDITOR)
            if kind == ItemKind.FOLDER:
                await self._check_not_descendant(item.id, new_parent_id)

        if await self._has_name_conflict(item, new_parent_id):
            raise ConflictError(f"A {kind.value} with this name already exists in the destination")

        moved = await self.item_repo.move(item, new_parent_id)
        await self.activity_repo.record(user_id, kind, item_id, ActivityAction.MOVE)
        logger.info("%s %s moved to %s by %s", kind.value.capitalize(), item_id, new_parent_id, user_id)
        return moved

    async def delete_item(self, user_id: uuid.UUID, item_id: uuid.UUID, kind: ItemKind) -> None:
        """Soft delete a file, or a folder with everything below it"""
        item = await self.access.require_access(user_id, item_id, kind, Permission.EDITOR)

        match kind:
            case ItemKind.FILE:
                await self.item_repo.soft_delete_file(item)
                logger.info("File %s deleted by %s", item_id, user_id)
            case ItemKind.FOLDER:
                folders, files = await self.item_repo.soft_delete_folder_tree(item.id)
                logger.info(
                    "Folder %s deleted by %s (%d folders, %d files)",
                    item_id, user_id, folders, files
                )

        await self.activity_repo.record(user_id, kind, item_id, ActivityAction.DELETE)

    async def get_download_url(self, user_id: uuid.UUID, file_id: uuid.UUID, expires: Optional[int] = None) -> Tuple[str, int]:
        """Presigned download URL for a ready file"""
        file = await self._get_ready_file(user_id, file_id)
        expires = expires or settings.PRESIGNED_URL_EXPIRE_SECONDS
        url = await self.storage.presign_download(file.storage_bucket, file.storage_key, expires)
        await self.activity_repo.record(user_id, ItemKind.FILE, file_id, ActivityAction.DOWNLOAD)
        return url, expires

    async def read_file(self, user_id: uuid.UUID, file_id: uuid.UUID) -> Tuple[File, bytes]:
        """Load the content of a ready file"""
        file = await self._get_ready_file(user_id, file_id)
        data = await self.storage.get_object(file.storage_bucket, file.storage_key)
        await self.activity_repo.record(user_id, ItemKind.FILE, file_id, ActivityAction.DOWNLOAD)
        return file, data

    async def read_thumbnail(self, user_id: uuid.UUID, file_id: uuid.UUID) -> bytes:
        """Load the generated thumbnail of a file"""
        file = await self.access.require_access(user_id, file_id, ItemKind.FILE, Permission.VIEWER)
        if not file.thumbnail_url:
            raise NotFoundError("Thumbnail not found")
        return await self.storage.get_object(file.storage_bucket, thumbnail_key(file.storage_key))

    async def search(
        self,
        user_id: uuid.UUID,
        query: str,
        kind: Optional[ItemKind] = None,
        limit: int = 50
    ) -> FolderContents:
        """Search items the caller owns or that are shared with them by name"""
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required")

        folders, files = await self.item_repo.search(user_id, query, kind, limit)
        return FolderContents.from_items(folders, files)

    async def _get_ready_file(self, user_id: uuid.UUID, file_id: uuid.UUID) -> File:
        file = await self.access.require_access(user_id, file_id, ItemKind.FILE, Permission.VIEWER)
        if file.status != FileStatus.READY.value:
            raise InvalidStatusError(f"File is not ready (status: {file.status})")
        return file

    async def _check_not_descendant(self, folder_id: uuid.UUID, destination_id: uuid.UUID) -> None:
        """Walk up from the destination; reaching the moved folder means a cycle"""
        visited = set()
        current_id = destination_id
        while current_id is not None:
            if current_id == folder_id:
                raise InvalidMoveError()
            if current_id in visited or len(visited) >= settings.MAX_TREE_DEPTH:
                raise DataIntegrityError(f"Folder tree is corrupted above {destination_id}")
            visited.add(current_id)

            folder = await self.item_repo.get_folder(current_id)
            current_id = folder.parent_id if folder else None

    async def _has_name_conflict(self, item: Item, parent_id: Optional[uuid.UUID]) -> bool:
        if isinstance(item, Folder):
            sibling = await self.item_repo.find_sibling_folder(item.owner_id, parent_id, item.name, exclude_id=item.id)
            return sibling is not None

        if parent_id is None:
            _, files = await self.item_repo.list_root(item.owner_id)
        else:
            _, files = await self.item_repo.list_children(parent_id)
        return any(f.name == item.name and f.id != item.id for f in files)
