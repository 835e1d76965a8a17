from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
import uuid

from cloudvault.models.user import User
from cloudvault.schemas.user import UserCreate
from cloudvault.core.security import get_password_hash


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_data: UserCreate) -> Optional[User]:
        """Create a new user"""
        try:
            db_user = User(
                email=user_data.email.lower(),
                name=user_data.name,
                hashed_password=get_password_hash(user_data.password),
                is_active=True
            )
            self.db.add(db_user)
            await self.db.commit()
            await self.db.refresh(db_user)
            return db_user
        except IntegrityError:
            await self.db.rollback()
            return None

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get user by ID"""
        query = select(User).filter(User.id == user_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email"""
        query = select(User).filter(User.email == email.lower())
        result = await self.db.execute(query)
        return result.scalar_one_or_none()
