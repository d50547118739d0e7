"""Periodic cleanup run by the Celery beat schedule."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.db.base import utcnow
from shareportal.models.access_code import AccessCode
from shareportal.models.file import StoredFile
from shareportal.models.user import UserAccount
from shareportal.services import files as file_service
from shareportal.services import sessions as session_service
from shareportal.services import users as user_service
from shareportal.services.rate_limiter import RateLimiter, rate_limiter

logger = logging.getLogger(__name__)


async def prune_login_attempts(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    limiter: RateLimiter = rate_limiter,
) -> int:
    return await limiter.prune(db, now=now or utcnow())


async def deactivate_expired_access_codes(db: AsyncSession, *, now: datetime | None = None) -> int:
    now = now or utcnow()
    result = await db.execute(
        update(AccessCode)
        .where(
            AccessCode.is_active.is_(True),
            AccessCode.expiry_date.is_not(None),
            AccessCode.expiry_date < now,
        )
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def delete_expired_temporary_users(db: AsyncSession, *, now: datetime | None = None) -> int:
    now = now or utcnow()
    result = await db.execute(
        select(UserAccount).where(
            UserAccount.is_temporary.is_(True),
            UserAccount.expiry_date.is_not(None),
            UserAccount.expiry_date < now,
        )
    )
    expired = list(result.scalars())
    for user in expired:
        await user_service.delete_user(db, user)
    return len(expired)


async def purge_expired_files(db: AsyncSession, *, now: datetime | None = None) -> int:
    now = now or utcnow()
    result = await db.execute(
        select(StoredFile).where(StoredFile.expires_at.is_not(None), StoredFile.expires_at < now)
    )
    expired = list(result.scalars())
    for stored_file in expired:
        await file_service.purge_file(db, stored_file)
    return len(expired)


async def run_maintenance(db: AsyncSession, *, now: datetime | None = None) -> dict[str, int]:
    now = now or utcnow()
    # Files first so expiring accounts get their quota back before removal.
    summary = {
        "files": await purge_expired_files(db, now=now),
        "login_attempts": await prune_login_attempts(db, now=now),
        "access_codes": await deactivate_expired_access_codes(db, now=now),
        "temporary_users": await delete_expired_temporary_users(db, now=now),
        "sessions": await session_service.delete_expired_sessions(db, now=now),
    }
    logger.info("Maintenance finished: %s", summary)
    return summary
