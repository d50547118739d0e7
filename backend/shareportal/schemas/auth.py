from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from shareportal.core.principal import PrincipalKind, Role


class LoginRequest(BaseModel):
    username: str
    password: str


class AccessCodeLoginRequest(BaseModel):
    code: str


class PrincipalResponse(BaseModel):
    kind: PrincipalKind
    role: Role
    role_name: str
    id: uuid.UUID | None = None
    label: str
    permissions: list[str] = []


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    principal: PrincipalResponse


class CsrfTokenResponse(BaseModel):
    csrf_token: str


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=1)


class MessageResponse(BaseModel):
    message: str
