from typing import List, Optional
from pydantic import BaseModel, Field
import uuid


class UploadInit(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    folder_id: Optional[uuid.UUID] = None
    mime_type: str = "application/octet-stream"
    size: int = Field(..., ge=0)
    part_count: int = Field(1, ge=1)


class UploadPart(BaseModel):
    part_number: int
    upload_url: str


class UploadInitResponse(BaseModel):
    file_id: uuid.UUID
    storage_key: str
    upload_id: Optional[str] = None
    parts: List[UploadPart]


class CompletedPart(BaseModel):
    part_number: int = Field(..., ge=1)
    etag: str


class UploadComplete(BaseModel):
    parts: Optional[List[CompletedPart]] = None
