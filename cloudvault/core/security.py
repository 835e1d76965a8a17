from datetime import datetime, timedelta, timezone
from typing import Optional
import secrets
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext

from cloudvault.core.config import settings
from cloudvault.schemas.auth import Identity
from cloudvault.utils.exceptions import AuthenticationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def generate_link_token(nbytes: Optional[int] = None) -> str:
    """Unguessable URL-safe token for public links"""
    return secrets.token_urlsafe(nbytes or settings.LINK_TOKEN_BYTES)


def create_access_token(user_id: uuid.UUID, email: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": str(user_id), "email": email, "type": "access", "exp": int(expire.timestamp())}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user_id: uuid.UUID, email: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    )
    to_encode = {"sub": str(user_id), "email": email, "type": "refresh", "exp": int(expire.timestamp())}
    return jwt.encode(to_encode, settings.JWT_REFRESH_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, secret_key: Optional[str] = None) -> Optional[dict]:
    try:
        return jwt.decode(token, secret_key or settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def _identity_from(payload: Optional[dict], token_type: str) -> Identity:
    if not payload or payload.get("type") != token_type:
        raise AuthenticationError("Could not validate credentials")

    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        raise AuthenticationError("Could not validate credentials")

    return Identity(user_id=user_id, email=payload.get("email", ""))


def verify_credential(credential: Optional[str]) -> Identity:
    """Resolve a bearer credential to the identity it was issued for"""
    if not credential:
        raise AuthenticationError("Not authenticated")

    return _identity_from(decode_token(credential), "access")


def verify_refresh_token(token: Optional[str]) -> Identity:
    """Resolve a refresh token; access tokens are rejected"""
    if not token:
        raise AuthenticationError("Refresh token required")
    return _identity_from(decode_token(token, settings.JWT_REFRESH_SECRET_KEY), "refresh")
