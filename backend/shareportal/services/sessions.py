from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from shareportal.core.config import settings
from shareportal.core.principal import Principal, PrincipalKind
from shareportal.db.base import utcnow
from shareportal.models.access_code import AccessCode
from shareportal.models.session import SessionRecord
from shareportal.models.user import UserAccount
from shareportal.utils.security import constant_time_equals, generate_csrf_token as mint_csrf_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCheck:
    valid: bool
    expired: bool = False


def session_timeout() -> timedelta:
    return timedelta(seconds=settings.session_timeout_seconds)


def session_expires_at(record: SessionRecord) -> datetime:
    return record.login_time + session_timeout()


async def open_session(
    db: AsyncSession,
    principal: Principal,
    client_address: str,
    *,
    now: datetime | None = None,
) -> SessionRecord:
    if principal.kind is PrincipalKind.USER:
        record = SessionRecord(user_id=principal.id)
    elif principal.kind is PrincipalKind.ACCESS_CODE:
        record = SessionRecord(access_code_id=principal.id)
    else:
        raise ValueError("Cannot open a session for an anonymous principal")
    record.login_time = now or utcnow()
    record.client_address = client_address
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def get_session(db: AsyncSession, session_id: uuid.UUID) -> SessionRecord | None:
    # The identity map may still hold rows that were logged out.
    result = await db.execute(select(SessionRecord).where(SessionRecord.id == session_id))
    return result.scalar_one_or_none()


async def check_session(
    db: AsyncSession,
    record: SessionRecord | None,
    *,
    now: datetime | None = None,
) -> SessionCheck:
    """Report whether ``record`` is still valid, ending it once it has timed out."""
    if record is None or (record.user_id is None and record.access_code_id is None):
        return SessionCheck(valid=False)
    now = now or utcnow()
    if now - record.login_time <= session_timeout():
        return SessionCheck(valid=True)

    await logout(db, record.id)
    logger.info("Session %s expired after %s seconds", record.id, settings.session_timeout_seconds)
    return SessionCheck(valid=False, expired=True)


async def is_authenticated(db: AsyncSession, record: SessionRecord | None, *, now: datetime | None = None) -> bool:
    return (await check_session(db, record, now=now)).valid


async def load_principal(db: AsyncSession, record: SessionRecord) -> Principal | None:
    if record.user_id is not None:
        user = await db.get(UserAccount, record.user_id)
        if user is None or not user.is_active:
            return None
        return Principal.from_user(user)
    if record.access_code_id is not None:
        access_code = await db.get(AccessCode, record.access_code_id)
        if access_code is None or not access_code.is_active:
            return None
        return Principal.from_access_code(access_code)
    return None


async def generate_csrf_token(db: AsyncSession, record: SessionRecord) -> str:
    if record.csrf_token:
        return record.csrf_token

    candidate = mint_csrf_token()
    result = await db.execute(
        update(SessionRecord)
        .where(SessionRecord.id == record.id, SessionRecord.csrf_token.is_(None))
        .values(csrf_token=candidate)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount == 1:
        set_committed_value(record, "csrf_token", candidate)
        return candidate
    # Another request stored a token first; use that one.
    await db.refresh(record)
    return record.csrf_token or await generate_csrf_token(db, record)


async def verify_csrf_token(db: AsyncSession, record: SessionRecord, candidate: str | None) -> bool:
    stored = record.csrf_token
    if not constant_time_equals(stored, candidate):
        return False

    # Single use: only the request that clears the stored value wins.
    result = await db.execute(
        update(SessionRecord)
        .where(SessionRecord.id == record.id, SessionRecord.csrf_token == stored)
        .values(csrf_token=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    set_committed_value(record, "csrf_token", None)
    return result.rowcount == 1


async def logout(db: AsyncSession, session_id: uuid.UUID | None) -> None:
    if session_id is None:
        return
    await db.execute(
        delete(SessionRecord).where(SessionRecord.id == session_id).execution_options(synchronize_session=False)
    )
    await db.commit()


async def delete_expired_sessions(db: AsyncSession, *, now: datetime | None = None) -> int:
    now = now or utcnow()
    result = await db.execute(
        delete(SessionRecord)
        .where(SessionRecord.login_time < now - session_timeout())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0
