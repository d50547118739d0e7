from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select

from shareportal.core.principal import Principal
from shareportal.db.base import utcnow
from shareportal.models.access_code import AccessCode
from shareportal.models.file import StoredFile
from shareportal.models.user import UserAccount
from shareportal.services import access_codes as access_code_service
from shareportal.services import files as file_service
from shareportal.services import maintenance
from shareportal.services import sessions as session_service
from shareportal.services import users as user_service
from shareportal.services.rate_limiter import rate_limiter
from shareportal.services.storage import storage_service

from conftest import USER_PASSWORD


async def test_expired_access_codes_are_deactivated(db):
    expired = await access_code_service.create_access_code(db, expiry_date=utcnow() - timedelta(hours=1))
    valid = await access_code_service.create_access_code(db, expiry_date=utcnow() + timedelta(hours=1))

    assert await maintenance.deactivate_expired_access_codes(db) == 1

    result = await db.execute(select(AccessCode).execution_options(populate_existing=True))
    rows = {code.id: code.is_active for code in result.scalars()}
    assert rows == {expired.id: False, valid.id: True}


async def test_expired_temporary_users_are_deleted_with_their_files(db):
    temp = await user_service.create_user(
        db, "temp", USER_PASSWORD, is_temporary=True, expiry_date=utcnow() - timedelta(minutes=5)
    )
    stored = await file_service.upload_file(db, Principal.from_user(temp), "a.txt", b"abc")
    stored_name = stored.stored_name

    assert await maintenance.delete_expired_temporary_users(db) == 1

    assert await user_service.get_user_by_username(db, "temp") is None
    assert not storage_service.exists(stored_name)


async def test_permanent_users_survive(db, regular_user):
    assert await maintenance.delete_expired_temporary_users(db) == 0
    assert await user_service.get_user_by_username(db, "alice") is not None


async def test_expired_files_are_purged_and_quota_released(db, regular_user):
    principal = Principal.from_user(regular_user)
    doomed = await file_service.upload_file(db, principal, "old.txt", b"x" * 10)
    kept = await file_service.upload_file(db, principal, "new.txt", b"y" * 20)
    await file_service.update_file_expiry(db, principal, doomed.id, utcnow() - timedelta(seconds=1))

    assert await maintenance.purge_expired_files(db) == 1

    remaining = [row.id for row in (await db.execute(select(StoredFile))).scalars()]
    assert remaining == [kept.id]
    user = await db.get(UserAccount, regular_user.id, populate_existing=True)
    assert user.used_quota == 20


async def test_run_maintenance_reports_every_sweep(db):
    await rate_limiter.record_attempt(db, "old", False, now=utcnow() - timedelta(days=2))

    summary = await maintenance.run_maintenance(db)

    assert summary == {"files": 0, "login_attempts": 1, "access_codes": 0, "temporary_users": 0, "sessions": 0}


async def test_expired_sessions_are_swept(db, regular_user):
    principal = Principal.from_user(regular_user)
    stale = await session_service.open_session(db, principal, "127.0.0.1", now=utcnow() - timedelta(hours=2))
    fresh = await session_service.open_session(db, principal, "127.0.0.1")

    assert await maintenance.run_maintenance(db) == {
        "files": 0,
        "login_attempts": 0,
        "access_codes": 0,
        "temporary_users": 0,
        "sessions": 1,
    }

    assert await session_service.get_session(db, stale.id) is None
    assert await session_service.get_session(db, fresh.id) is not None
