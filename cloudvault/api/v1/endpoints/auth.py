from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cloudvault.core.database import get_db
from cloudvault.schemas.auth import Token, LoginRequest, RefreshRequest
from cloudvault.schemas.user import UserCreate, User
from cloudvault.services.auth import AuthService
from cloudvault.utils.exceptions import AuthenticationError, ConflictError

router = APIRouter()


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a new user"""
    auth_service = AuthService(db)
    user = await auth_service.register(user_data)

    if not user:
        raise ConflictError("User with this email already exists")

    return user


@router.post("/login", response_model=Token)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password"""
    auth_service = AuthService(db)

    # Authenticate user
    user = await auth_service.authenticate(login_data.email, login_data.password)
    if not user:
        raise AuthenticationError("Incorrect email or password")

    return await auth_service.create_tokens(user)


@router.post("/refresh", response_model=Token)
async def refresh(
    refresh_data: RefreshRequest,
    db: AsyncSession = Depends(get_db)
):
    """Exchange a refresh token for a new token pair"""
    return await AuthService(db).refresh(refresh_data.refresh_token)
