from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_, exists
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import uuid

from cloudvault.models import File, Folder, Item, Share
from cloudvault.models.base import utcnow
from cloudvault.schemas.enums import FileStatus, ItemKind
from cloudvault.utils.exceptions import ConflictError


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class ItemRepository:
    """Persistence for the file/folder tree"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, kind: ItemKind, item_id: uuid.UUID) -> Optional[Item]:
        """Get a file or folder by ID, including soft-deleted rows"""
        match kind:
            case ItemKind.FILE:
                return await self.get_file(item_id)
            case ItemKind.FOLDER:
                return await self.get_folder(item_id)
        raise ValueError(f"Unknown item kind: {kind}")

    async def get_file(self, file_id: uuid.UUID) -> Optional[File]:
        query = select(File).filter(File.id == file_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_folder(self, folder_id: uuid.UUID) -> Optional[Folder]:
        query = select(Folder).filter(Folder.id == folder_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create_folder(self, owner_id: uuid.UUID, name: str, parent_id: Optional[uuid.UUID]) -> Folder:
        """Create a new folder record"""
        folder = Folder(name=name, owner_id=owner_id, parent_id=parent_id)
        self.db.add(folder)
        await self._commit_unique(name)
        await self.db.refresh(folder)
        return folder

    async def create_file(
        self,
        file_id: uuid.UUID,
        owner_id: uuid.UUID,
        parent_id: Optional[uuid.UUID],
        name: str,
        mime_type: str,
        size: int,
        storage_key: str,
        storage_bucket: str,
        status: FileStatus
    ) -> File:
        """Create a new file record"""
        db_file = File(
            id=file_id,
            name=name,
            owner_id=owner_id,
            parent_id=parent_id,
            mime_type=mime_type,
            size=size,
            storage_key=storage_key,
            storage_bucket=storage_bucket,
            status=status.value
        )
        self.db.add(db_file)
        await self._commit()
        await self.db.refresh(db_file)
        return db_file

    async def find_sibling_folder(
        self,
        owner_id: uuid.UUID,
        parent_id: Optional[uuid.UUID],
        name: str,
        exclude_id: Optional[uuid.UUID] = None
    ) -> Optional[Folder]:
        """Find a live folder with the same name under the same owner and parent"""
        conditions = [
            Folder.owner_id == owner_id,
            Folder.name == name,
            Folder.is_deleted == False,  # noqa: E712
            Folder.parent_id == parent_id if parent_id is not None else Folder.parent_id.is_(None),
        ]
        if exclude_id is not None:
            conditions.append(Folder.id != exclude_id)
        query = select(Folder).where(and_(*conditions)).limit(1)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_children(
        self,
        parent_id: uuid.UUID,
        owner_id: Optional[uuid.UUID] = None
    ) -> Tuple[List[Folder], List[File]]:
        """List live children of a folder, optionally only those owned by owner_id"""
        folder_query = select(Folder).where(Folder.parent_id == parent_id, Folder.is_deleted == False)  # noqa: E712
        file_query = select(File).where(File.parent_id == parent_id, File.is_deleted == False)  # noqa: E712
        if owner_id is not None:
            folder_query = folder_query.where(Folder.owner_id == owner_id)
            file_query = file_query.where(File.owner_id == owner_id)
        return await self._fetch_pair(folder_query, file_query)

    async def list_root(self, owner_id: uuid.UUID) -> Tuple[List[Folder], List[File]]:
        """List live root items owned by a user"""
        folder_query = select(Folder).where(
            Folder.owner_id == owner_id,
            Folder.parent_id.is_(None),
            Folder.is_deleted == False  # noqa: E712
        )
        file_query = select(File).where(
            File.owner_id == owner_id,
            File.parent_id.is_(None),
            File.is_deleted == False  # noqa: E712
        )
        return await self._fetch_pair(folder_query, file_query)

    async def list_shared_with(self, user_id: uuid.UUID) -> Tuple[List[Folder], List[File]]:
        """List live items directly shared with a user"""
        folder_query = select(Folder).join(
            Share,
            and_(Share.item_kind == ItemKind.FOLDER.value, Share.item_id == Folder.id)
        ).where(Share.shared_with_id == user_id, Folder.is_deleted == False)  # noqa: E712
        file_query = select(File).join(
            Share,
            and_(Share.item_kind == ItemKind.FILE.value, Share.item_id == File.id)
        ).where(Share.shared_with_id == user_id, File.is_deleted == False)  # noqa: E712
        return await self._fetch_pair(folder_query, file_query)

    async def search(
        self,
        user_id: uuid.UUID,
        query: str,
        kind: Optional[ItemKind] = None,
        limit: int = 50
    ) -> Tuple[List[Folder], List[File]]:
        """Search live items the user owns or that are directly shared with them"""
        pattern = _like_pattern(query)
        folders: List[Folder] = []
        files: List[File] = []

        if kind in (None, ItemKind.FOLDER):
            shared = exists().where(
                Share.item_kind == ItemKind.FOLDER.value,
                Share.item_id == Folder.id,
                Share.shared_with_id == user_id
            )
            stmt = (
                select(Folder)
                .where(
                    Folder.is_deleted == False,  # noqa: E712
                    Folder.name.ilike(pattern, escape="\\"),
                    or_(Folder.owner_id == user_id, shared)
                )
                .order_by(Folder.name)
                .limit(limit)
            )
            folders = list((await self.db.execute(stmt)).scalars().all())

        if kind in (None, ItemKind.FILE):
            shared = exists().where(
                Share.item_kind == ItemKind.FILE.value,
                Share.item_id == File.id,
                Share.shared_with_id == user_id
            )
            stmt = (
                select(File)
                .where(
                    File.is_deleted == False,  # noqa: E712
                    File.name.ilike(pattern, escape="\\"),
                    or_(File.owner_id == user_id, shared)
                )
                .order_by(File.name)
                .limit(limit)
            )
            files = list((await self.db.execute(stmt)).scalars().all())

        return folders, files

    async def rename(self, item: Item, name: str) -> Item:
        item.name = name
        await self._commit_unique(name)
        await self.db.refresh(item)
        return item

    async def move(self, item: Item, parent_id: Optional[uuid.UUID]) -> Item:
        item.parent_id = parent_id
        await self._commit_unique(item.name)
        await self.db.refresh(item)
        return item

    async def collect_descendant_folder_ids(self, folder_id: uuid.UUID) -> List[uuid.UUID]:
        """Breadth-first walk returning folder_id and every live descendant folder"""
        collected = [folder_id]
        seen = {folder_id}
        frontier = [folder_id]
        while frontier:
            query = select(Folder.id).where(
                Folder.parent_id.in_(frontier),
                Folder.is_deleted == False  # noqa: E712
            )
            result = await self.db.execute(query)
            frontier = [child_id for child_id in result.scalars().all() if child_id not in seen]
            seen.update(frontier)
            collected.extend(frontier)
        return collected

    async def soft_delete_file(self, file: File) -> File:
        now = utcnow()
        file.is_deleted = True
        file.deleted_at = now
        await self._commit()
        return file

    async def soft_delete_folder_tree(self, folder_id: uuid.UUID) -> Tuple[int, int]:
        """Soft delete a folder with all descendant folders and files in one transaction"""
        folder_ids = await self.collect_descendant_folder_ids(folder_id)
        now = utcnow()
        folders_result = await self.db.execute(
            update(Folder)
            .where(Folder.id.in_(folder_ids), Folder.is_deleted == False)  # noqa: E712
            .values(is_deleted=True, deleted_at=now, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        files_result = await self.db.execute(
            update(File)
            .where(File.parent_id.in_(folder_ids), File.is_deleted == False)  # noqa: E712
            .values(is_deleted=True, deleted_at=now, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        await self._commit()
        return folders_result.rowcount, files_result.rowcount

    async def transition_status(self, file_id: uuid.UUID, from_status: FileStatus, to_status: FileStatus) -> bool:
        """Compare-and-set on the file status; False when the file was not in from_status"""
        result = await self.db.execute(
            update(File)
            .where(File.id == file_id, File.status == from_status.value)
            .values(status=to_status.value, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        await self._commit()
        return result.rowcount == 1

    async def set_upload_id(self, file: File, upload_id: Optional[str]) -> File:
        file.upload_id = upload_id
        await self._commit()
        return file

    async def set_thumbnail_url(self, file_id: uuid.UUID, thumbnail_url: str) -> bool:
        result = await self.db.execute(
            update(File)
            .where(File.id == file_id)
            .values(thumbnail_url=thumbnail_url, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        await self._commit()
        return result.rowcount == 1

    async def _fetch_pair(self, folder_query, file_query) -> Tuple[List[Folder], List[File]]:
        folders = (await self.db.execute(folder_query.order_by(Folder.name))).scalars().all()
        files = (await self.db.execute(file_query.order_by(File.created_at.desc()))).scalars().all()
        return list(folders), list(files)

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def _commit_unique(self, name: str) -> None:
        """Commit, reporting a lost race on the sibling-name index as a conflict"""
        try:
            await self._commit()
        except IntegrityError as e:
            raise ConflictError(f"A folder named '{name}' already exists here") from e
