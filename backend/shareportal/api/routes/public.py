from __future__ import annotations

from fastapi import APIRouter, Header
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.api import deps
from shareportal.api.routes.files import attachment_response
from shareportal.core.errors import ErrorKind, PortalError
from shareportal.core.principal import ANONYMOUS
from shareportal.models.share import ShareLink
from shareportal.schemas.share import SharedFileInfo
from shareportal.services import rbac
from shareportal.services import shares as share_service
from shareportal.services.rbac import Permission
from shareportal.services.storage import storage_service

router = APIRouter(tags=["download"])


async def _validated_share(db: AsyncSession, token: str, password: str | None) -> ShareLink:
    if not rbac.has_permission(ANONYMOUS, Permission.FILES_DOWNLOAD_SHARED):
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    validation = await share_service.validate_share(db, token, password)
    if not validation.ok:
        raise PortalError(validation.error)
    return validation.share


@router.get("/s/{token}", response_model=SharedFileInfo)
async def shared_file_info(
    token: str,
    db: deps.DatabaseSessionDep,
    x_share_password: str | None = Header(default=None),
) -> SharedFileInfo:
    share = await _validated_share(db, token, x_share_password)
    stored_file = share.file
    return SharedFileInfo(
        filename=stored_file.filename,
        size=stored_file.size,
        mime_type=stored_file.mime_type,
        file_hash=stored_file.file_hash,
        hash_algorithm=stored_file.hash_algorithm,
        expires_at=share.expires_at,
        max_downloads=share.max_downloads,
        download_count=share.download_count,
    )


@router.get("/s/{token}/download")
async def download_shared_file(
    token: str,
    db: deps.DatabaseSessionDep,
    x_share_password: str | None = Header(default=None),
) -> FileResponse:
    share = await _validated_share(db, token, x_share_password)
    stored_file = share.file
    path = storage_service.path_for(stored_file.stored_name)
    if not path.is_file():
        raise PortalError(ErrorKind.NOT_FOUND, "File missing.")
    # The limit may have been used up by a concurrent download since validation.
    if not await share_service.record_download(db, share.id):
        raise PortalError(ErrorKind.DOWNLOAD_LIMIT_REACHED)
    return attachment_response(stored_file, path)
