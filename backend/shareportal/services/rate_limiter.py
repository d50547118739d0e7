from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.core.config import settings
from shareportal.db.base import utcnow
from shareportal.models.login_attempt import LoginAttempt

logger = logging.getLogger(__name__)


def user_identifier(username: str, client_address: str) -> str:
    return f"{username}_{client_address}"


def code_identifier(client_address: str) -> str:
    # One bucket per client address for every access code it tries.
    return f"code_{client_address}"


class RateLimiter:
    def __init__(
        self,
        *,
        max_attempts: int = 5,
        lockout_seconds: int = 900,
        retention_hours: int = 24,
    ) -> None:
        self.max_attempts = max_attempts
        self.lockout_window = timedelta(seconds=lockout_seconds)
        self.retention = timedelta(hours=retention_hours)

    @classmethod
    def from_settings(cls) -> "RateLimiter":
        return cls(
            max_attempts=settings.max_login_attempts,
            lockout_seconds=settings.lockout_seconds,
            retention_hours=settings.attempt_retention_hours,
        )

    async def prune(self, db: AsyncSession, *, now: datetime | None = None) -> int:
        now = now or utcnow()
        result = await db.execute(
            delete(LoginAttempt)
            .where(LoginAttempt.attempt_time < now - self.retention)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount or 0

    async def failed_attempts(self, db: AsyncSession, identifier: str, *, now: datetime | None = None) -> int:
        now = now or utcnow()
        stmt = select(func.count(LoginAttempt.id)).where(
            LoginAttempt.identifier == identifier,
            LoginAttempt.was_successful.is_(False),
            LoginAttempt.attempt_time > now - self.lockout_window,
        )
        return (await db.execute(stmt)).scalar_one()

    async def is_locked(self, db: AsyncSession, identifier: str, *, now: datetime | None = None) -> bool:
        now = now or utcnow()
        try:
            await self.prune(db, now=now)
        except SQLAlchemyError:
            await db.rollback()
            logger.warning("Pruning login attempts failed; continuing with rate check", exc_info=True)

        attempts = await self.failed_attempts(db, identifier, now=now)
        if attempts >= self.max_attempts:
            logger.warning("Identifier %s locked out after %s failed attempts", identifier, attempts)
            return True
        return False

    async def record_attempt(
        self,
        db: AsyncSession,
        identifier: str,
        succeeded: bool,
        *,
        now: datetime | None = None,
    ) -> None:
        db.add(LoginAttempt(identifier=identifier, attempt_time=now or utcnow(), was_successful=succeeded))
        if succeeded:
            await db.execute(
                delete(LoginAttempt).where(
                    LoginAttempt.identifier == identifier,
                    LoginAttempt.was_successful.is_(False),
                )
                .execution_options(synchronize_session=False)
            )
        await db.commit()


rate_limiter = RateLimiter.from_settings()
