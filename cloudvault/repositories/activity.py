from typing import List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import uuid

from cloudvault.models import Activity, File, Folder, Star
from cloudvault.schemas.enums import ActivityAction, ItemKind


class StarRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: uuid.UUID, kind: ItemKind, item_id: uuid.UUID) -> Optional[Star]:
        query = select(Star).filter(
            Star.user_id == user_id,
            Star.item_kind == kind.value,
            Star.item_id == item_id
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def add(self, user_id: uuid.UUID, kind: ItemKind, item_id: uuid.UUID) -> Star:
        """Star an item; starring twice keeps the first star"""
        star = Star(user_id=user_id, item_kind=kind.value, item_id=item_id)
        self.db.add(star)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return await self.get(user_id, kind, item_id)
        await self.db.refresh(star)
        return star

    async def delete(self, star: Star) -> None:
        await self.db.delete(star)
        await self.db.commit()

    async def list_starred(self, user_id: uuid.UUID) -> Tuple[List[Folder], List[File]]:
        """Live starred folders and files, most recently starred first"""
        folder_query = (
            select(Folder)
            .join(Star, (Star.item_kind == ItemKind.FOLDER.value) & (Star.item_id == Folder.id))
            .where(Star.user_id == user_id, Folder.is_deleted == False)  # noqa: E712
            .order_by(Star.created_at.desc())
        )
        file_query = (
            select(File)
            .join(Star, (Star.item_kind == ItemKind.FILE.value) & (Star.item_id == File.id))
            .where(Star.user_id == user_id, File.is_deleted == False)  # noqa: E712
            .order_by(Star.created_at.desc())
        )
        folders = (await self.db.execute(folder_query)).scalars().all()
        files = (await self.db.execute(file_query)).scalars().all()
        return list(folders), list(files)


class ActivityRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, user_id: uuid.UUID, kind: ItemKind, item_id: uuid.UUID, action: ActivityAction) -> Activity:
        activity = Activity(user_id=user_id, item_kind=kind.value, item_id=item_id, action=action.value)
        self.db.add(activity)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return activity

    async def recent_files(
        self,
        user_id: uuid.UUID,
        actions: Sequence[ActivityAction],
        limit: int
    ) -> List[File]:
        """Live files the user acted on, latest activity first, each file once"""
        latest = (
            select(Activity.item_id, func.max(Activity.created_at).label("last_at"))
            .where(
                Activity.user_id == user_id,
                Activity.item_kind == ItemKind.FILE.value,
                Activity.action.in_([a.value for a in actions])
            )
            .group_by(Activity.item_id)
            .subquery()
        )
        query = (
            select(File)
            .join(latest, latest.c.item_id == File.id)
            .where(File.is_deleted == False)  # noqa: E712
            .order_by(latest.c.last_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
