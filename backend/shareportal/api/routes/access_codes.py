from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status

from shareportal.api import deps
from shareportal.core.principal import Principal, PrincipalKind
from shareportal.schemas.access_code import (
    AccessCodeCreateRequest,
    AccessCodeListResponse,
    AccessCodeResponse,
)
from shareportal.services import access_codes as access_code_service
from shareportal.services.rbac import Permission

router = APIRouter(prefix="/admin/access-codes", tags=["admin:access-codes"])


@router.get("/", response_model=AccessCodeListResponse)
async def list_access_codes(
    db: deps.DatabaseSessionDep,
    _: Principal = Depends(deps.require_permission(Permission.USERS_VIEW)),
) -> AccessCodeListResponse:
    codes = await access_code_service.list_access_codes(db)
    return AccessCodeListResponse(access_codes=[AccessCodeResponse.model_validate(code) for code in codes])


@router.post("/", response_model=AccessCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_access_code(
    payload: AccessCodeCreateRequest,
    db: deps.DatabaseSessionDep,
    current_admin: Principal = Depends(deps.require_permission(Permission.USERS_CREATE)),
    __: deps.SessionContext = Depends(deps.require_csrf),
) -> AccessCodeResponse:
    access_code = await access_code_service.create_access_code(
        db,
        max_uses=payload.max_uses,
        upload_quota=payload.upload_quota,
        expiry_date=payload.expiry_date,
        created_by=current_admin.id if current_admin.kind is PrincipalKind.USER else None,
    )
    return AccessCodeResponse.model_validate(access_code)


@router.delete("/{code_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_access_code(
    code_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    _: Principal = Depends(deps.require_permission(Permission.USERS_DELETE)),
    __: deps.SessionContext = Depends(deps.require_csrf),
) -> Response:
    access_code = await access_code_service.get_access_code_by_id(db, code_id)
    if access_code is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Access code not found")
    await access_code_service.delete_access_code(db, access_code)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
