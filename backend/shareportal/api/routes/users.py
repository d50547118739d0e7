from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status

from shareportal.api import deps
from shareportal.core.principal import Principal
from shareportal.schemas.user import (
    UserCreateRequest,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from shareportal.services import users as user_service
from shareportal.services.rbac import Permission

router = APIRouter(prefix="/admin/users", tags=["admin:users"])


@router.get("/", response_model=UserListResponse)
async def list_users(
    db: deps.DatabaseSessionDep,
    _: Principal = Depends(deps.require_permission(Permission.USERS_VIEW)),
) -> UserListResponse:
    users = await user_service.list_users(db)
    return UserListResponse(users=[UserResponse.model_validate(user) for user in users])


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateRequest,
    db: deps.DatabaseSessionDep,
    _: Principal = Depends(deps.require_permission(Permission.USERS_CREATE)),
    __: deps.SessionContext = Depends(deps.require_csrf),
) -> UserResponse:
    user = await user_service.create_user(
        db,
        payload.username.strip(),
        payload.password,
        email=payload.email,
        role=payload.role,
        upload_quota=payload.upload_quota,
        is_temporary=payload.is_temporary,
        expiry_date=payload.expiry_date,
    )
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: uuid.UUID,
    payload: UserUpdateRequest,
    db: deps.DatabaseSessionDep,
    current_admin: Principal = Depends(deps.require_permission(Permission.USERS_EDIT)),
    __: deps.SessionContext = Depends(deps.require_csrf),
) -> UserResponse:
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == current_admin.id and payload.is_active is False:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot deactivate yourself")

    update_kwargs: dict[str, object] = {}
    if "email" in payload.model_fields_set:
        update_kwargs["email"] = payload.email
    if "expiry_date" in payload.model_fields_set:
        update_kwargs["expiry_date"] = payload.expiry_date
    role = payload.resolved_role()
    if role is not None:
        update_kwargs["role"] = role
    if payload.is_active is not None:
        update_kwargs["is_active"] = payload.is_active
    if payload.upload_quota is not None:
        update_kwargs["upload_quota"] = payload.upload_quota
    if payload.password:
        update_kwargs["password"] = payload.password

    updated = await user_service.update_user(db, user, **update_kwargs)
    return UserResponse.model_validate(updated)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    current_admin: Principal = Depends(deps.require_permission(Permission.USERS_DELETE)),
    __: deps.SessionContext = Depends(deps.require_csrf),
) -> Response:
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == current_admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete yourself")
    await user_service.delete_user(db, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
