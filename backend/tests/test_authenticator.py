from __future__ import annotations

import asyncio
from datetime import timedelta

from shareportal.core.errors import GENERIC_CODE_MESSAGE, GENERIC_LOGIN_MESSAGE, ErrorKind
from shareportal.core.principal import PrincipalKind, Role
from shareportal.db.base import utcnow
from shareportal.services import access_codes as access_code_service
from shareportal.services import users as user_service
from shareportal.services.authenticator import AuthStage, Credential, authenticate
from shareportal.services.rate_limiter import RateLimiter

from conftest import USER_PASSWORD

CLIENT = "203.0.113.7"


async def test_password_login_succeeds(db, regular_user):
    result = await authenticate(db, Credential.password("alice", USER_PASSWORD), CLIENT)

    assert result.ok
    assert result.stage is AuthStage.SESSION_ESTABLISHED
    assert result.principal.kind is PrincipalKind.USER
    assert result.principal.id == regular_user.id
    await db.refresh(regular_user)
    assert regular_user.last_login is not None


async def test_wrong_password_and_unknown_user_look_identical(db, regular_user):
    wrong = await authenticate(db, Credential.password("alice", "nope"), CLIENT)
    unknown = await authenticate(db, Credential.password("mallory", "nope"), CLIENT)

    assert wrong.error is ErrorKind.INVALID_CREDENTIALS
    assert unknown.error is ErrorKind.INVALID_CREDENTIALS
    assert wrong.public_message == unknown.public_message == GENERIC_LOGIN_MESSAGE


async def test_lockout_rejects_even_correct_password(db, regular_user):
    limiter = RateLimiter(max_attempts=3, lockout_seconds=60)
    for _ in range(3):
        await authenticate(db, Credential.password("alice", "bad"), CLIENT, limiter=limiter)

    result = await authenticate(db, Credential.password("alice", USER_PASSWORD), CLIENT, limiter=limiter)

    assert result.error is ErrorKind.RATE_LIMITED
    assert result.stage is AuthStage.RATE_CHECK
    assert result.public_message == GENERIC_LOGIN_MESSAGE


async def test_lockout_is_per_client(db, regular_user):
    limiter = RateLimiter(max_attempts=2, lockout_seconds=60)
    for _ in range(2):
        await authenticate(db, Credential.password("alice", "bad"), CLIENT, limiter=limiter)

    result = await authenticate(db, Credential.password("alice", USER_PASSWORD), "198.51.100.1", limiter=limiter)
    assert result.ok


async def test_expired_temporary_account_is_rejected(db):
    await user_service.create_user(
        db,
        "temp",
        USER_PASSWORD,
        is_temporary=True,
        expiry_date=utcnow() - timedelta(minutes=1),
    )
    result = await authenticate(db, Credential.password("temp", USER_PASSWORD), CLIENT)

    assert result.error is ErrorKind.ACCOUNT_EXPIRED
    assert result.public_message == GENERIC_LOGIN_MESSAGE


async def test_inactive_account_cannot_log_in(db, regular_user):
    await user_service.update_user(db, regular_user, is_active=False)
    result = await authenticate(db, Credential.password("alice", USER_PASSWORD), CLIENT)
    assert result.error is ErrorKind.INVALID_CREDENTIALS


async def test_access_code_login_consumes_a_use(db):
    code = await access_code_service.create_access_code(db, max_uses=2)

    result = await authenticate(db, Credential.access_code(code.code), CLIENT)

    assert result.ok
    assert result.principal.kind is PrincipalKind.ACCESS_CODE
    assert result.principal.role is Role.USER
    await db.refresh(code)
    assert code.current_uses == 1


async def test_access_code_exhausted(db):
    code = await access_code_service.create_access_code(db, max_uses=1)
    assert (await authenticate(db, Credential.access_code(code.code), CLIENT)).ok

    result = await authenticate(db, Credential.access_code(code.code), CLIENT)

    assert result.error is ErrorKind.CODE_EXHAUSTED
    assert result.public_message == GENERIC_CODE_MESSAGE


async def test_expired_access_code(db):
    code = await access_code_service.create_access_code(db, expiry_date=utcnow() - timedelta(seconds=1))
    result = await authenticate(db, Credential.access_code(code.code), CLIENT)
    assert result.error is ErrorKind.ACCOUNT_EXPIRED


async def test_unknown_access_code(db):
    result = await authenticate(db, Credential.access_code("0" * 32), CLIENT)
    assert result.error is ErrorKind.INVALID_CREDENTIALS
    assert result.public_message == GENERIC_CODE_MESSAGE


async def test_uses_are_never_overspent_under_concurrency(db, session_factory):
    code = await access_code_service.create_access_code(db, max_uses=3)

    async def redeem() -> bool:
        async with session_factory() as session:
            return await access_code_service.redeem_access_code(session, code.id)

    outcomes = await asyncio.gather(*(redeem() for _ in range(6)))

    assert outcomes.count(True) == 3
    await db.refresh(code)
    assert code.current_uses == 3
