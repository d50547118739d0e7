"""Per-principal byte quota accounting.

Charge and release are single conditional UPDATE statements, so concurrent
uploads by the same principal cannot overshoot the quota or lose updates.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol, Union

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.core.errors import ErrorKind, PortalError
from shareportal.core.principal import Principal, PrincipalKind
from shareportal.models.access_code import AccessCode
from shareportal.models.user import UserAccount

logger = logging.getLogger(__name__)

QuotaAccount = Union[UserAccount, AccessCode]

_ACCOUNT_MODELS: dict[PrincipalKind, type[QuotaAccount]] = {
    PrincipalKind.USER: UserAccount,
    PrincipalKind.ACCESS_CODE: AccessCode,
}


class QuotaHolder(Protocol):
    upload_quota: int
    used_quota: int


def can_accept(account: QuotaHolder, incoming_bytes: int) -> bool:
    return account.used_quota + incoming_bytes <= account.upload_quota


def _account_model(principal: Principal) -> type[QuotaAccount]:
    model = _ACCOUNT_MODELS.get(principal.kind)
    if model is None or principal.id is None:
        raise PortalError(ErrorKind.PERMISSION_DENIED)
    return model


async def load_account(db: AsyncSession, principal: Principal) -> QuotaAccount | None:
    model = _account_model(principal)
    return await db.get(model, principal.id)


async def charge(db: AsyncSession, principal: Principal, nbytes: int) -> None:
    model = _account_model(principal)
    result = await db.execute(
        update(model)
        .where(model.id == principal.id, model.used_quota + nbytes <= model.upload_quota)
        .values(used_quota=model.used_quota + nbytes)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount != 1:
        logger.info("Quota exceeded for %s charging %s bytes", principal.label, nbytes)
        raise PortalError(ErrorKind.QUOTA_EXCEEDED)


async def release(db: AsyncSession, principal: Principal, nbytes: int) -> None:
    model = _account_model(principal)
    await release_for(db, model, principal.id, nbytes)


async def release_for(db: AsyncSession, model: type[QuotaAccount], account_id: uuid.UUID, nbytes: int) -> None:
    # Clamped at zero so earlier drift cannot push the ledger negative.
    await db.execute(
        update(model)
        .where(model.id == account_id)
        .values(used_quota=case((model.used_quota > nbytes, model.used_quota - nbytes), else_=0))
        .execution_options(synchronize_session=False)
    )
    await db.commit()


@asynccontextmanager
async def held(db: AsyncSession, principal: Principal, nbytes: int) -> AsyncIterator[None]:
    """Charge ``nbytes`` for the duration of the block, releasing it if the block fails."""
    await charge(db, principal, nbytes)
    try:
        yield
    except BaseException:
        await db.rollback()
        await release(db, principal, nbytes)
        logger.warning("Released %s bytes for %s after a failed upload", nbytes, principal.label)
        raise
