from __future__ import annotations

import hmac
import secrets
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from shareportal.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def burn_password_check() -> None:
    """Spend the time of a real verify when there is no hash to check against."""
    pwd_context.dummy_verify()


def constant_time_equals(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return hmac.compare_digest(left.encode(), right.encode())


def generate_share_token() -> str:
    return secrets.token_hex(32)


def generate_access_code() -> str:
    return secrets.token_hex(16)


def generate_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def generate_stored_name(extension: str) -> str:
    stamp = int(datetime.now(timezone.utc).timestamp())
    name = f"{secrets.token_hex(16)}_{stamp}"
    return f"{name}.{extension}" if extension else name


def create_access_token(session_id: uuid.UUID, login_time: datetime, expires_at: datetime) -> str:
    payload: Dict[str, Any] = {
        "sid": str(session_id),
        "iat": int(login_time.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    # The sessions row decides expiry, so a stale token still resolves to its sid.
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"verify_exp": False},
    )
