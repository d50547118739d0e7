from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.api import deps
from shareportal.core.errors import HTTP_STATUS
from shareportal.core.principal import Principal, PrincipalKind
from shareportal.schemas.auth import (
    AccessCodeLoginRequest,
    CsrfTokenResponse,
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    PrincipalResponse,
    TokenResponse,
)
from shareportal.services import rbac
from shareportal.services import sessions as session_service
from shareportal.services import users as user_service
from shareportal.services.authenticator import AuthResult, Credential, authenticate
from shareportal.utils.security import create_access_token, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])


def principal_to_schema(principal: Principal) -> PrincipalResponse:
    return PrincipalResponse(
        kind=principal.kind,
        role=principal.role,
        role_name=rbac.ROLE_DISPLAY_NAMES[principal.role],
        id=principal.id,
        label=principal.label,
        permissions=sorted(permission.value for permission in rbac.role_permissions(principal.role)),
    )


async def _issue_token(db: AsyncSession, result: AuthResult, request: Request) -> TokenResponse:
    if not result.ok:
        raise HTTPException(status_code=HTTP_STATUS[result.error], detail=result.public_message)
    record = await session_service.open_session(db, result.principal, deps.client_address(request))
    expires_at = session_service.session_expires_at(record)
    return TokenResponse(
        access_token=create_access_token(record.id, record.login_time, expires_at),
        expires_at=expires_at,
        principal=principal_to_schema(result.principal),
    )


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, request: Request, db: deps.DatabaseSessionDep) -> TokenResponse:
    credential = Credential.password(payload.username.strip(), payload.password)
    result = await authenticate(db, credential, deps.client_address(request))
    return await _issue_token(db, result, request)


@router.post("/code", response_model=TokenResponse)
async def login_with_code(
    payload: AccessCodeLoginRequest,
    request: Request,
    db: deps.DatabaseSessionDep,
) -> TokenResponse:
    credential = Credential.access_code(payload.code.strip())
    result = await authenticate(db, credential, deps.client_address(request))
    return await _issue_token(db, result, request)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> MessageResponse:
    await session_service.logout(db, context.record.id)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=PrincipalResponse)
async def read_current_principal(principal: Principal = Depends(deps.get_current_principal)) -> PrincipalResponse:
    return principal_to_schema(principal)


@router.get("/csrf", response_model=CsrfTokenResponse)
async def issue_csrf_token(
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.get_session_context),
) -> CsrfTokenResponse:
    token = await session_service.generate_csrf_token(db, context.record)
    return CsrfTokenResponse(csrf_token=token)


@router.post("/password", response_model=MessageResponse)
async def change_password(
    payload: PasswordChangeRequest,
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> MessageResponse:
    if context.principal.kind is not PrincipalKind.USER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access code sessions have no password")
    current_user = await user_service.get_user_by_id(db, context.principal.id)
    if current_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if len(payload.new_password) < 8:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password must be at least 8 characters")
    if not verify_password(payload.current_password, current_user.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    if verify_password(payload.new_password, current_user.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New password must be different")

    await user_service.update_user(db, current_user, password=payload.new_password)
    return MessageResponse(message="Password updated successfully")
