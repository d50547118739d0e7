from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.core.config import settings
from shareportal.core.errors import ErrorKind, PortalError
from shareportal.core.principal import Principal
from shareportal.models.access_code import AccessCode
from shareportal.models.file import StoredFile
from shareportal.models.user import UserAccount
from shareportal.services import quota, rbac
from shareportal.services.rbac import Permission
from shareportal.services.storage import safe_extension, storage_service
from shareportal.utils.security import generate_stored_name

logger = logging.getLogger(__name__)


def resolve_hash_algorithm(algorithm: str | None) -> str:
    chosen = (algorithm or settings.default_hash_algorithm).lower()
    if chosen not in settings.hash_algorithms:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported hash algorithm")
    return chosen


async def upload_file(
    db: AsyncSession,
    principal: Principal,
    filename: str,
    data: bytes,
    *,
    mime_type: str | None = None,
    hash_algorithm: str | None = None,
    expires_at: datetime | None = None,
) -> StoredFile:
    if not rbac.has_permission(principal, Permission.FILES_UPLOAD):
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    filename = Path(filename or "").name
    if not filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    size = len(data)
    if size > settings.max_file_size:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")
    algorithm = resolve_hash_algorithm(hash_algorithm)

    account = await quota.load_account(db, principal)
    if account is None:
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    if not quota.can_accept(account, size):
        raise PortalError(ErrorKind.QUOTA_EXCEEDED)

    storage_service.ensure_base_dirs()
    stored_name = generate_stored_name(safe_extension(filename))
    try:
        path = await storage_service.write(stored_name, data)
        digest = await storage_service.compute_digest(path, algorithm)
        async with quota.held(db, principal, size):
            stored_file = StoredFile(
                filename=filename,
                stored_name=stored_name,
                size=size,
                mime_type=mime_type,
                file_hash=digest,
                hash_algorithm=algorithm,
                expires_at=expires_at,
                **principal.owner_columns(),
            )
            db.add(stored_file)
            await db.commit()
    except BaseException:
        await storage_service.remove(stored_name)
        raise

    await db.refresh(stored_file)
    logger.info("Stored %s (%s bytes) for %s", stored_file.id, size, principal.label)
    return stored_file


def _owned_files(principal: Principal):  # noqa: ANN202
    columns = principal.owner_columns()
    if columns["owner_user_id"] is not None:
        return StoredFile.owner_user_id == columns["owner_user_id"]
    if columns["owner_code_id"] is not None:
        return StoredFile.owner_code_id == columns["owner_code_id"]
    return StoredFile.id.is_(None)


async def list_files(db: AsyncSession, principal: Principal) -> list[StoredFile]:
    stmt = select(StoredFile).order_by(StoredFile.created_at.desc())
    if not rbac.has_permission(principal, Permission.FILES_VIEW_ALL):
        stmt = stmt.where(_owned_files(principal))
    result = await db.execute(stmt)
    return list(result.scalars())


async def get_file(db: AsyncSession, principal: Principal, file_id: uuid.UUID) -> StoredFile:
    stored_file = await db.get(StoredFile, file_id)
    if stored_file is None:
        raise PortalError(ErrorKind.NOT_FOUND, "File not found.")
    if not rbac.can_view(principal, stored_file):
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    return stored_file


async def increment_download_count(db: AsyncSession, file_id: uuid.UUID) -> None:
    await db.execute(
        update(StoredFile)
        .where(StoredFile.id == file_id)
        .values(download_count=StoredFile.download_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def open_download(db: AsyncSession, principal: Principal, file_id: uuid.UUID) -> tuple[StoredFile, Path]:
    """Authorise an owner download and count it."""
    stored_file = await get_file(db, principal, file_id)
    path = storage_service.path_for(stored_file.stored_name)
    if not path.is_file():
        raise PortalError(ErrorKind.NOT_FOUND, "File missing.")
    await increment_download_count(db, stored_file.id)
    return stored_file, path


async def update_file_expiry(
    db: AsyncSession,
    principal: Principal,
    file_id: uuid.UUID,
    expires_at: datetime | None,
) -> StoredFile:
    stored_file = await db.get(StoredFile, file_id)
    if stored_file is None:
        raise PortalError(ErrorKind.NOT_FOUND, "File not found.")
    # Setting an auto-delete date is a deferred delete.
    if not rbac.can_delete(principal, stored_file):
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    if expires_at is not None and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    stored_file.expires_at = expires_at
    await db.commit()
    await db.refresh(stored_file)
    return stored_file


async def purge_file(db: AsyncSession, stored_file: StoredFile) -> None:
    """Remove a file record, hand its bytes back to the owner's quota and delete it from disk."""
    file_id = stored_file.id
    stored_name = stored_file.stored_name
    size = stored_file.size
    owner_user_id = stored_file.owner_user_id
    owner_code_id = stored_file.owner_code_id

    await db.delete(stored_file)
    await db.commit()

    if owner_user_id is not None:
        await quota.release_for(db, UserAccount, owner_user_id, size)
    elif owner_code_id is not None:
        await quota.release_for(db, AccessCode, owner_code_id, size)
    await storage_service.remove(stored_name)
    logger.info("Removed file %s (%s bytes)", file_id, size)


async def delete_file(db: AsyncSession, principal: Principal, file_id: uuid.UUID) -> None:
    stored_file = await db.get(StoredFile, file_id)
    if stored_file is None:
        raise PortalError(ErrorKind.NOT_FOUND, "File not found.")
    if not rbac.can_delete(principal, stored_file):
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    await purge_file(db, stored_file)
