from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.core.config import settings
from shareportal.core.errors import ErrorKind, PortalError
from shareportal.core.principal import Principal
from shareportal.db.session import get_db_session
from shareportal.models.session import SessionRecord
from shareportal.services import rbac
from shareportal.services import sessions as session_service
from shareportal.services.rbac import Permission
from shareportal.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)

CSRF_HEADER = "X-CSRF-Token"


DatabaseSessionDep = Annotated[AsyncSession, Depends(get_db_session)]


@dataclass(frozen=True)
class SessionContext:
    record: SessionRecord
    principal: Principal


def client_address(request: Request) -> str:
    if settings.trust_forwarded_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def get_session_context(
    db: DatabaseSessionDep,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> SessionContext:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
        session_id = uuid.UUID(payload["sid"])
    except (PyJWTError, KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    record = await session_service.get_session(db, session_id)
    check = await session_service.check_session(db, record)
    if not check.valid:
        detail = "Session expired" if check.expired else "Invalid session"
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

    principal = await session_service.load_principal(db, record)
    if principal is None:
        await session_service.logout(db, record.id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account inactive")
    return SessionContext(record=record, principal=principal)


async def get_current_principal(context: SessionContext = Depends(get_session_context)) -> Principal:
    return context.principal


async def require_csrf(
    request: Request,
    db: DatabaseSessionDep,
    context: SessionContext = Depends(get_session_context),
) -> SessionContext:
    candidate = request.headers.get(CSRF_HEADER)
    if not await session_service.verify_csrf_token(db, context.record, candidate):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token")
    return context


def require_permission(permission: Permission) -> Callable[..., Awaitable[Principal]]:
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not rbac.has_permission(principal, permission):
            raise PortalError(ErrorKind.PERMISSION_DENIED)
        return principal

    return _check
