from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "CloudVault"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    API_V1_PREFIX: str = "/api/v1"

    # Database
    DB_USER: str = "cloudvault"
    DB_PASSWORD: str = "cloudvault"
    DB_NAME: str = "cloudvault"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Redis (health checks and the Celery broker)
    REDIS_PASSWORD: Optional[str] = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/0"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"

    # Storage backend: local, minio or supabase
    STORAGE_BACKEND: str = "local"
    STORAGE_BUCKET: str = "files"
    LOCAL_STORAGE_ROOT: str = "storage"

    # MinIO / S3
    MINIO_ROOT_USER: str = "minioadmin"
    MINIO_ROOT_PASSWORD: str = "minioadmin"
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_SECURE: bool = False

    # Supabase
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # JWT
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    JWT_REFRESH_SECRET_KEY: str = "change-me-too-in-production"
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # CORS
    BACKEND_CORS_ORIGINS: Union[List[str], str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, str) and v.startswith("["):
            return json.loads(v)
        return v

    # Uploads
    MAX_FILE_SIZE: int = 5 * 1024 * 1024 * 1024
    MAX_DIRECT_UPLOAD_SIZE_MB: int = 100
    MAX_PART_COUNT: int = 10000
    PRESIGNED_URL_EXPIRE_SECONDS: int = 3600

    @property
    def MAX_DIRECT_UPLOAD_SIZE_BYTES(self) -> int:
        return self.MAX_DIRECT_UPLOAD_SIZE_MB * 1024 * 1024

    # Folder tree
    MAX_TREE_DEPTH: int = 1000

    # Link shares
    LINK_TOKEN_BYTES: int = 32
    LINK_TOKEN_ATTEMPTS: int = 3

    # Recent files
    RECENT_FILES_LIMIT: int = 20

    # Thumbnails
    THUMBNAIL_SIZE: int = 256
    THUMBNAIL_QUALITY: int = 80
    THUMBNAIL_MAX_RETRIES: int = 3


settings = Settings()
