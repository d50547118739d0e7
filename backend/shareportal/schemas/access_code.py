from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class AccessCodeCreateRequest(BaseModel):
    max_uses: int = Field(default=1, ge=1)
    upload_quota: int | None = Field(default=None, ge=0)
    expiry_date: datetime | None = None


class AccessCodeResponse(BaseModel):
    id: uuid.UUID
    code: str
    max_uses: int
    current_uses: int
    upload_quota: int
    used_quota: int
    expiry_date: datetime | None
    is_active: bool
    created_by: uuid.UUID | None
    created_at: datetime

    class Config:
        from_attributes = True


class AccessCodeListResponse(BaseModel):
    access_codes: list[AccessCodeResponse]
