from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from shareportal.core.principal import ACCOUNT_ROLES, Role
from shareportal.models.user import coerce_role


def _check_account_role(value: Role | None) -> Role | None:
    if value is not None and value not in ACCOUNT_ROLES:
        raise ValueError(f"{value.value} cannot be assigned to an account")
    return value


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=8)
    email: EmailStr | None = None
    role: Role | None = None
    # Older clients send a boolean flag instead of a role.
    is_admin: bool | None = None
    upload_quota: int | None = Field(default=None, ge=0)
    is_temporary: bool = False
    expiry_date: datetime | None = None

    @field_validator("role")
    @classmethod
    def _account_role(cls, value: Role | None) -> Role | None:
        return _check_account_role(value)

    @model_validator(mode="after")
    def _resolve_role(self) -> "UserCreateRequest":
        self.role = coerce_role(self.role, self.is_admin)
        if self.is_temporary and self.expiry_date is None:
            raise ValueError("Temporary accounts need an expiry date")
        return self


class UserUpdateRequest(BaseModel):
    email: EmailStr | None = None
    role: Role | None = None
    is_admin: bool | None = None
    is_active: bool | None = None
    upload_quota: int | None = Field(default=None, ge=0)
    expiry_date: datetime | None = None
    password: str | None = Field(default=None, min_length=8)

    @field_validator("role")
    @classmethod
    def _account_role(cls, value: Role | None) -> Role | None:
        return _check_account_role(value)

    def resolved_role(self) -> Role | None:
        if self.role is None and self.is_admin is None:
            return None
        return coerce_role(self.role, self.is_admin)


class UserResponse(BaseModel):
    id: uuid.UUID
    username: str
    email: str | None
    role: Role
    is_admin: bool
    is_active: bool
    is_temporary: bool
    expiry_date: datetime | None
    upload_quota: int
    used_quota: int
    last_login: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    users: list[UserResponse]
