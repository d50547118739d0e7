"""Credential verification for passwords and access codes.

Each login runs through the stages of :class:`AuthStage`. The rate limiter is
consulted before any credential comparison, and every rejection after that
point is recorded as a failed attempt. Callers get an :class:`AuthResult`;
its public message never reveals which check failed.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.core.errors import GENERIC_CODE_MESSAGE, GENERIC_LOGIN_MESSAGE, ErrorKind
from shareportal.core.principal import Principal
from shareportal.db.base import utcnow
from shareportal.services import access_codes as access_code_service
from shareportal.services import users as user_service
from shareportal.services.rate_limiter import RateLimiter, code_identifier, rate_limiter, user_identifier
from shareportal.utils.security import burn_password_check, verify_password

logger = logging.getLogger(__name__)


class CredentialKind(str, enum.Enum):
    PASSWORD = "password"
    ACCESS_CODE = "access_code"


class AuthStage(str, enum.Enum):
    START = "start"
    RATE_CHECK = "rate_check"
    CREDENTIAL_CHECK = "credential_check"
    EXPIRY_CHECK = "expiry_check"
    SESSION_ESTABLISHED = "session_established"


@dataclass(frozen=True)
class Credential:
    kind: CredentialKind
    secret: str
    username: str | None = None

    @classmethod
    def password(cls, username: str, password: str) -> "Credential":
        return cls(kind=CredentialKind.PASSWORD, secret=password, username=username)

    @classmethod
    def access_code(cls, code: str) -> "Credential":
        return cls(kind=CredentialKind.ACCESS_CODE, secret=code)


@dataclass(frozen=True)
class AuthResult:
    principal: Principal | None = None
    error: ErrorKind | None = None
    stage: AuthStage = AuthStage.START
    reason: str | None = None
    kind: CredentialKind = CredentialKind.PASSWORD

    @property
    def ok(self) -> bool:
        return self.principal is not None and self.error is None

    @property
    def public_message(self) -> str | None:
        if self.ok:
            return None
        return GENERIC_CODE_MESSAGE if self.kind is CredentialKind.ACCESS_CODE else GENERIC_LOGIN_MESSAGE


def _rejected(kind: CredentialKind, error: ErrorKind, stage: AuthStage, reason: str) -> AuthResult:
    return AuthResult(error=error, stage=stage, reason=reason, kind=kind)


async def authenticate(
    db: AsyncSession,
    credential: Credential,
    client_address: str,
    *,
    limiter: RateLimiter = rate_limiter,
    now: datetime | None = None,
) -> AuthResult:
    now = now or utcnow()
    if credential.kind is CredentialKind.ACCESS_CODE:
        result = await _authenticate_code(db, credential.secret, client_address, limiter, now)
    else:
        result = await _authenticate_password(db, credential, client_address, limiter, now)

    if result.ok:
        logger.info("Login succeeded for %s from %s", result.principal.label, client_address)
    else:
        logger.info(
            "Login rejected (%s at %s: %s) from %s",
            result.error.value,
            result.stage.value,
            result.reason,
            client_address,
        )
    return result


async def _authenticate_password(
    db: AsyncSession,
    credential: Credential,
    client_address: str,
    limiter: RateLimiter,
    now: datetime,
) -> AuthResult:
    kind = CredentialKind.PASSWORD
    username = credential.username or ""
    identifier = user_identifier(username, client_address)

    if await limiter.is_locked(db, identifier, now=now):
        return _rejected(kind, ErrorKind.RATE_LIMITED, AuthStage.RATE_CHECK, "too many failed attempts")

    user = await user_service.get_active_user_by_username(db, username) if username else None
    if user is None:
        burn_password_check()
        await limiter.record_attempt(db, identifier, False, now=now)
        return _rejected(kind, ErrorKind.INVALID_CREDENTIALS, AuthStage.CREDENTIAL_CHECK, "unknown account")

    if not credential.secret or not verify_password(credential.secret, user.password_hash):
        await limiter.record_attempt(db, identifier, False, now=now)
        return _rejected(kind, ErrorKind.INVALID_CREDENTIALS, AuthStage.CREDENTIAL_CHECK, "password mismatch")

    if user.is_expired(now):
        await limiter.record_attempt(db, identifier, False, now=now)
        return _rejected(kind, ErrorKind.ACCOUNT_EXPIRED, AuthStage.EXPIRY_CHECK, "temporary account expired")

    await user_service.mark_logged_in(db, user, now)
    await limiter.record_attempt(db, identifier, True, now=now)
    return AuthResult(principal=Principal.from_user(user), stage=AuthStage.SESSION_ESTABLISHED, kind=kind)


async def _authenticate_code(
    db: AsyncSession,
    code: str,
    client_address: str,
    limiter: RateLimiter,
    now: datetime,
) -> AuthResult:
    kind = CredentialKind.ACCESS_CODE
    identifier = code_identifier(client_address)

    if await limiter.is_locked(db, identifier, now=now):
        return _rejected(kind, ErrorKind.RATE_LIMITED, AuthStage.RATE_CHECK, "too many failed attempts")

    access_code = await access_code_service.get_active_code(db, code) if code else None
    if access_code is None:
        await limiter.record_attempt(db, identifier, False, now=now)
        return _rejected(kind, ErrorKind.INVALID_CREDENTIALS, AuthStage.CREDENTIAL_CHECK, "unknown code")

    if access_code.is_expired(now):
        await limiter.record_attempt(db, identifier, False, now=now)
        return _rejected(kind, ErrorKind.ACCOUNT_EXPIRED, AuthStage.EXPIRY_CHECK, "access code expired")

    if access_code.is_exhausted or not await access_code_service.redeem_access_code(db, access_code.id, now=now):
        await limiter.record_attempt(db, identifier, False, now=now)
        return _rejected(kind, ErrorKind.CODE_EXHAUSTED, AuthStage.EXPIRY_CHECK, "maximum uses reached")

    await limiter.record_attempt(db, identifier, True, now=now)
    return AuthResult(
        principal=Principal.from_access_code(access_code),
        stage=AuthStage.SESSION_ESTABLISHED,
        kind=kind,
    )
