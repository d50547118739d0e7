from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request, Response, status

from shareportal.api import deps
from shareportal.core.config import settings
from shareportal.core.principal import Principal
from shareportal.models.share import ShareLink
from shareportal.schemas.share import CreateShareRequest, ShareListResponse, ShareResponse, UpdateShareRequest
from shareportal.services import shares as share_service

router = APIRouter(prefix="/shares", tags=["shares"])


def build_share_url(request: Request, token: str) -> str:
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}/s/{token}"
    if settings.trust_forwarded_headers:
        scheme = request.headers.get("x-forwarded-proto", request.url.scheme)
        host = request.headers.get("x-forwarded-host") or request.headers.get("host", request.url.netloc)
        return f"{scheme}://{host}/s/{token}"
    return f"{str(request.base_url).rstrip('/')}/s/{token}"


def share_to_schema(request: Request, share: ShareLink) -> ShareResponse:
    return ShareResponse(
        id=share.id,
        file_id=share.file_id,
        filename=share.file.filename if share.file is not None else None,
        url=build_share_url(request, share.token),
        is_public=share.is_public,
        has_password=share.has_password,
        expires_at=share.expires_at,
        max_downloads=share.max_downloads,
        download_count=share.download_count,
        is_active=share.is_active,
        state=share_service.share_state(share).value,
        created_at=share.created_at,
    )


@router.get("/", response_model=ShareListResponse)
async def list_shares(
    request: Request,
    db: deps.DatabaseSessionDep,
    principal: Principal = Depends(deps.get_current_principal),
) -> ShareListResponse:
    shares = await share_service.list_shares(db, principal)
    return ShareListResponse(shares=[share_to_schema(request, share) for share in shares])


@router.get("/public", response_model=ShareListResponse)
async def list_public_shares(request: Request, db: deps.DatabaseSessionDep) -> ShareListResponse:
    shares = await share_service.list_public_shares(db)
    return ShareListResponse(shares=[share_to_schema(request, share) for share in shares])


@router.post("/", response_model=ShareResponse, status_code=status.HTTP_201_CREATED)
async def create_share(
    payload: CreateShareRequest,
    request: Request,
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> ShareResponse:
    share = await share_service.create_share(db, context.principal, payload)
    share = await share_service.get_share(db, share.id)
    return share_to_schema(request, share)


@router.patch("/{share_id}", response_model=ShareResponse)
async def update_share(
    share_id: uuid.UUID,
    payload: UpdateShareRequest,
    request: Request,
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> ShareResponse:
    await share_service.update_share(db, context.principal, share_id, payload)
    share = await share_service.get_share(db, share_id)
    return share_to_schema(request, share)


@router.delete("/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_share(
    share_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> Response:
    await share_service.delete_share(db, context.principal, share_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
