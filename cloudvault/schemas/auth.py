from pydantic import BaseModel, EmailStr
from dataclasses import dataclass
import uuid


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


@dataclass(frozen=True)
class Identity:
    """Authenticated principal extracted from a bearer credential"""

    user_id: uuid.UUID
    email: str
