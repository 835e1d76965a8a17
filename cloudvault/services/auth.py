from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from cloudvault.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_refresh_token,
)
from cloudvault.repositories.user import UserRepository
from cloudvault.schemas.auth import Token
from cloudvault.schemas.user import UserCreate
from cloudvault.models.user import User
from cloudvault.utils.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: AsyncSession):
        self.user_repo = UserRepository(db)

    async def register(self, user_data: UserCreate) -> Optional[User]:
        """Register a new user"""
        # Check if user already exists
        existing_user = await self.user_repo.get_by_email(user_data.email)
        if existing_user:
            return None

        user = await self.user_repo.create(user_data)
        if user:
            logger.info("Registered user %s", user.id)
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password"""
        user = await self.user_repo.get_by_email(email)
        if not user or not user.hashed_password:
            return None

        if not verify_password(password, user.hashed_password):
            return None

        if not user.is_active:
            return None

        return user

    async def create_tokens(self, user: User) -> Token:
        """Create an access and refresh token pair for user"""
        return Token(
            access_token=create_access_token(user.id, user.email),
            refresh_token=create_refresh_token(user.id, user.email),
            token_type="bearer"
        )

    async def refresh(self, refresh_token: str) -> Token:
        """Exchange a refresh token for a new token pair"""
        identity = verify_refresh_token(refresh_token)
        user = await self.user_repo.get_by_id(identity.user_id)
        if not user or not user.is_active:
            raise AuthenticationError("User no longer exists")
        return await self.create_tokens(user)
