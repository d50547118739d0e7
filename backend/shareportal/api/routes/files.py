from __future__ import annotations

import uuid
from pathlib import Path
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import FileResponse

from shareportal.api import deps
from shareportal.api.routes.shares import share_to_schema
from shareportal.core.principal import Principal
from shareportal.models.file import StoredFile
from shareportal.schemas.file import FileExpiryRequest, FileListResponse
from shareportal.schemas.file import FileResponse as FileSchema
from shareportal.schemas.share import ShareListResponse
from shareportal.services import files as file_service
from shareportal.services import shares as share_service

router = APIRouter(prefix="/files", tags=["files"])


def attachment_response(stored_file: StoredFile, path: Path) -> FileResponse:
    ascii_filename = stored_file.filename.encode("ascii", "ignore").decode("ascii") or "download"
    content_disposition = f"attachment; filename=\"{ascii_filename}\""
    if ascii_filename != stored_file.filename:
        content_disposition += f"; filename*=UTF-8''{quote(stored_file.filename)}"
    return FileResponse(
        path=path,
        media_type=stored_file.mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition},
    )


@router.get("/", response_model=FileListResponse)
async def list_files(
    db: deps.DatabaseSessionDep,
    principal: Principal = Depends(deps.get_current_principal),
) -> FileListResponse:
    files = await file_service.list_files(db, principal)
    return FileListResponse(files=[FileSchema.model_validate(stored_file) for stored_file in files])


@router.post("/", response_model=FileSchema, status_code=status.HTTP_201_CREATED)
async def upload_file(
    request: Request,
    db: deps.DatabaseSessionDep,
    filename: str = Query(..., min_length=1),
    hash_algorithm: str | None = Query(default=None),
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> FileSchema:
    raw_data = await request.body()
    mime_type = request.headers.get("content-type") or None
    stored_file = await file_service.upload_file(
        db,
        context.principal,
        filename,
        raw_data,
        mime_type=mime_type,
        hash_algorithm=hash_algorithm,
    )
    return FileSchema.model_validate(stored_file)


@router.get("/{file_id}", response_model=FileSchema)
async def get_file_metadata(
    file_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    principal: Principal = Depends(deps.get_current_principal),
) -> FileSchema:
    stored_file = await file_service.get_file(db, principal, file_id)
    return FileSchema.model_validate(stored_file)


@router.get("/{file_id}/content")
async def download_file(
    file_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    principal: Principal = Depends(deps.get_current_principal),
) -> FileResponse:
    stored_file, path = await file_service.open_download(db, principal, file_id)
    return attachment_response(stored_file, path)


@router.patch("/{file_id}", response_model=FileSchema)
async def update_file_expiry(
    file_id: uuid.UUID,
    payload: FileExpiryRequest,
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> FileSchema:
    stored_file = await file_service.update_file_expiry(db, context.principal, file_id, payload.expires_at)
    return FileSchema.model_validate(stored_file)


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    context: deps.SessionContext = Depends(deps.require_csrf),
) -> Response:
    await file_service.delete_file(db, context.principal, file_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{file_id}/shares", response_model=ShareListResponse)
async def list_file_shares(
    file_id: uuid.UUID,
    request: Request,
    db: deps.DatabaseSessionDep,
    principal: Principal = Depends(deps.get_current_principal),
) -> ShareListResponse:
    shares = await share_service.list_file_shares(db, principal, file_id)
    return ShareListResponse(shares=[share_to_schema(request, share) for share in shares])
