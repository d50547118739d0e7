from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, field_validator


class CreateShareRequest(BaseModel):
    file_id: uuid.UUID
    is_public: bool = True
    password: str | None = None
    expires_at: datetime | None = None
    max_downloads: int | None = None

    @field_validator("max_downloads")
    @classmethod
    def _positive_or_unlimited(cls, value: int | None) -> int | None:
        return value if value is not None and value > 0 else None


class UpdateShareRequest(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    is_public: bool | None = None
    password: str | None = None
    expires_at: datetime | None = None
    max_downloads: int | None = None
    is_active: bool | None = None

    @field_validator("max_downloads")
    @classmethod
    def _positive_or_unlimited(cls, value: int | None) -> int | None:
        return value if value is not None and value > 0 else None


class ShareResponse(BaseModel):
    id: uuid.UUID
    file_id: uuid.UUID
    filename: str | None = None
    url: str
    is_public: bool
    has_password: bool
    expires_at: datetime | None
    max_downloads: int | None
    download_count: int
    is_active: bool
    state: str
    created_at: datetime


class ShareListResponse(BaseModel):
    shares: list[ShareResponse]


class SharedFileInfo(BaseModel):
    filename: str
    size: int
    mime_type: str | None
    file_hash: str
    hash_algorithm: str
    expires_at: datetime | None
    max_downloads: int | None
    download_count: int
