from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class FileResponse(BaseModel):
    id: uuid.UUID
    filename: str
    size: int
    mime_type: str | None
    file_hash: str
    hash_algorithm: str
    download_count: int
    expires_at: datetime | None
    created_at: datetime
    owner_user_id: uuid.UUID | None = None
    owner_code_id: uuid.UUID | None = None

    class Config:
        from_attributes = True


class FileListResponse(BaseModel):
    files: list[FileResponse]


class FileExpiryRequest(BaseModel):
    expires_at: datetime | None = None
