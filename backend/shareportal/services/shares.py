"""Share links: creation, validation, download accounting and management.

A share is a capability pointing at one file by id. It never owns the file
and never touches quota. Validation checks run in a fixed order so a link
that is both deactivated and expired always reports "deactivated".
"""
from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shareportal.core.errors import ErrorKind, PortalError
from shareportal.core.principal import Principal
from shareportal.db.base import utcnow
from shareportal.models.file import StoredFile
from shareportal.models.share import ShareLink
from shareportal.schemas.share import CreateShareRequest, UpdateShareRequest
from shareportal.services import rbac
from shareportal.services.rbac import Permission
from shareportal.utils.security import generate_share_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

_TOKEN_ATTEMPTS = 3


class ShareState(str, enum.Enum):
    ACTIVE = "active"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"


@dataclass(frozen=True)
class ShareValidation:
    share: ShareLink | None = None
    error: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.share is not None

    @property
    def requires_password(self) -> bool:
        return self.error is ErrorKind.PASSWORD_REQUIRED


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def share_state(share: ShareLink, now: datetime | None = None) -> ShareState:
    now = now or utcnow()
    if not share.is_active:
        return ShareState.DEACTIVATED
    if share.expires_at is not None and share.expires_at < now:
        return ShareState.EXPIRED
    if share.max_downloads is not None and share.download_count >= share.max_downloads:
        return ShareState.LIMIT_REACHED
    return ShareState.ACTIVE


async def _unique_token(db: AsyncSession) -> str:
    for _ in range(_TOKEN_ATTEMPTS):
        candidate = generate_share_token()
        existing = await db.execute(select(ShareLink.id).where(ShareLink.token == candidate))
        if existing.scalar_one_or_none() is None:
            return candidate
    raise PortalError(ErrorKind.STORAGE_FAILURE, "Failed to create share link.")


async def create_share(db: AsyncSession, principal: Principal, payload: CreateShareRequest) -> ShareLink:
    stored_file = await db.get(StoredFile, payload.file_id)
    if stored_file is None:
        raise PortalError(ErrorKind.NOT_FOUND, "File not found.")
    if not rbac.can_share(principal, stored_file):
        raise PortalError(ErrorKind.PERMISSION_DENIED)

    share = ShareLink(
        file_id=stored_file.id,
        token=await _unique_token(db),
        is_public=payload.is_public,
        password_hash=get_password_hash(payload.password) if payload.password else None,
        expires_at=_as_utc(payload.expires_at),
        max_downloads=payload.max_downloads,
        download_count=0,
        is_active=True,
        **principal.owner_columns(),
    )
    db.add(share)
    await db.commit()
    await db.refresh(share)
    logger.info("Share %s created for file %s by %s", share.id, stored_file.id, principal.label)
    return share


def _select_with_file():  # noqa: ANN202
    return (
        select(ShareLink)
        .options(selectinload(ShareLink.file))
        .execution_options(populate_existing=True)
    )


async def get_share(db: AsyncSession, share_id: uuid.UUID) -> ShareLink | None:
    result = await db.execute(
        _select_with_file().where(ShareLink.id == share_id)
    )
    return result.scalar_one_or_none()


async def get_share_by_token(db: AsyncSession, token: str) -> ShareLink | None:
    result = await db.execute(
        _select_with_file().where(ShareLink.token == token)
    )
    return result.scalar_one_or_none()


async def validate_share(
    db: AsyncSession,
    token: str,
    password: str | None = None,
    *,
    now: datetime | None = None,
) -> ShareValidation:
    now = now or utcnow()
    share = await get_share_by_token(db, token) if token else None
    if share is None or share.file is None:
        return ShareValidation(error=ErrorKind.NOT_FOUND)
    if not share.is_active:
        return ShareValidation(share=share, error=ErrorKind.DEACTIVATED)
    if share.expires_at is not None and share.expires_at < now:
        return ShareValidation(share=share, error=ErrorKind.ALREADY_EXPIRED)
    if share.max_downloads is not None and share.download_count >= share.max_downloads:
        return ShareValidation(share=share, error=ErrorKind.DOWNLOAD_LIMIT_REACHED)
    if share.password_hash is not None:
        if not password:
            return ShareValidation(share=share, error=ErrorKind.PASSWORD_REQUIRED)
        if not verify_password(password, share.password_hash):
            return ShareValidation(share=share, error=ErrorKind.INVALID_PASSWORD)
    return ShareValidation(share=share)


async def record_download(db: AsyncSession, share_id: uuid.UUID) -> bool:
    """Count one download; ``False`` when the link is inactive or its limit was hit."""
    result = await db.execute(
        update(ShareLink)
        .where(
            ShareLink.id == share_id,
            ShareLink.is_active.is_(True),
            or_(ShareLink.max_downloads.is_(None), ShareLink.download_count < ShareLink.max_downloads),
        )
        .values(download_count=ShareLink.download_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.commit()
        return False
    file_id = select(ShareLink.file_id).where(ShareLink.id == share_id).scalar_subquery()
    await db.execute(
        update(StoredFile)
        .where(StoredFile.id == file_id)
        .values(download_count=StoredFile.download_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return True


async def _get_managed_share(db: AsyncSession, principal: Principal, share_id: uuid.UUID) -> ShareLink:
    share = await get_share(db, share_id)
    if share is None:
        raise PortalError(ErrorKind.NOT_FOUND, "Share not found.")
    if not rbac.can_share(principal, share):
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    return share


async def update_share(
    db: AsyncSession,
    principal: Principal,
    share_id: uuid.UUID,
    payload: UpdateShareRequest,
) -> ShareLink:
    share = await _get_managed_share(db, principal, share_id)
    fields = payload.model_fields_set

    if "is_public" in fields and payload.is_public is not None:
        share.is_public = payload.is_public
    if "password" in fields:
        share.password_hash = get_password_hash(payload.password) if payload.password else None
    if "expires_at" in fields:
        share.expires_at = _as_utc(payload.expires_at)
    if "max_downloads" in fields:
        limit = payload.max_downloads
        if limit is not None and limit < share.download_count:
            limit = share.download_count
        share.max_downloads = limit
    if "is_active" in fields and payload.is_active is not None:
        share.is_active = payload.is_active

    await db.commit()
    await db.refresh(share)
    return share


async def delete_share(db: AsyncSession, principal: Principal, share_id: uuid.UUID) -> None:
    share = await _get_managed_share(db, principal, share_id)
    await db.delete(share)
    await db.commit()
    logger.info("Share %s deleted by %s", share_id, principal.label)


def _owned_by(principal: Principal):  # noqa: ANN202
    columns = principal.owner_columns()
    if columns["owner_user_id"] is not None:
        return ShareLink.owner_user_id == columns["owner_user_id"]
    if columns["owner_code_id"] is not None:
        return ShareLink.owner_code_id == columns["owner_code_id"]
    return ShareLink.id.is_(None)


async def list_shares(db: AsyncSession, principal: Principal) -> list[ShareLink]:
    stmt = _select_with_file().order_by(ShareLink.created_at.desc())
    if not rbac.has_permission(principal, Permission.FILES_SHARE_ALL):
        stmt = stmt.where(_owned_by(principal))
    result = await db.execute(stmt)
    return list(result.scalars())


async def list_file_shares(db: AsyncSession, principal: Principal, file_id: uuid.UUID) -> list[ShareLink]:
    stored_file = await db.get(StoredFile, file_id)
    if stored_file is None:
        raise PortalError(ErrorKind.NOT_FOUND, "File not found.")
    if not rbac.can_view(principal, stored_file):
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    result = await db.execute(
        _select_with_file()
        .where(ShareLink.file_id == file_id)
        .order_by(ShareLink.created_at.desc())
    )
    return list(result.scalars())


async def list_public_shares(db: AsyncSession, *, now: datetime | None = None) -> list[ShareLink]:
    now = now or utcnow()
    stmt = (
        _select_with_file()
        .where(
            and_(
                ShareLink.is_public.is_(True),
                ShareLink.is_active.is_(True),
                ShareLink.password_hash.is_(None),
                or_(ShareLink.expires_at.is_(None), ShareLink.expires_at > now),
                or_(ShareLink.max_downloads.is_(None), ShareLink.download_count < ShareLink.max_downloads),
            )
        )
        .order_by(ShareLink.created_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars())
