from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from cloudvault.core.database import get_db
from cloudvault.core.queue import JobQueue, get_job_queue
from cloudvault.core.security import verify_credential
from cloudvault.core.storage import StorageBackend, get_storage
from cloudvault.models.user import User
from cloudvault.repositories.user import UserRepository
from cloudvault.services.items import ItemService
from cloudvault.services.library import LibraryService
from cloudvault.services.shares import ShareManager
from cloudvault.services.uploads import UploadCoordinator
from cloudvault.utils.exceptions import AuthenticationError

# auto_error off so a missing header renders through the app's error handler
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the bearer token to a user"""
    identity = verify_credential(credentials.credentials if credentials else None)

    user = await UserRepository(db).get_by_id(identity.user_id)
    if not user:
        raise AuthenticationError("User not found")
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise AuthenticationError("Inactive user")
    return current_user


def get_item_service(
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage)
) -> ItemService:
    return ItemService(db, storage)


def get_library_service(db: AsyncSession = Depends(get_db)) -> LibraryService:
    return LibraryService(db)


def get_upload_coordinator(
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    job_queue: JobQueue = Depends(get_job_queue)
) -> UploadCoordinator:
    return UploadCoordinator(db, storage, job_queue)


def get_share_manager(
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage)
) -> ShareManager:
    return ShareManager(db, storage)
