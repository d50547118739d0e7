from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.core.config import settings
from shareportal.db.base import utcnow
from shareportal.models.access_code import AccessCode
from shareportal.models.file import StoredFile
from shareportal.services.storage import storage_service
from shareportal.utils.security import generate_access_code

logger = logging.getLogger(__name__)


async def create_access_code(
    db: AsyncSession,
    *,
    max_uses: int = 1,
    upload_quota: int | None = None,
    expiry_date: datetime | None = None,
    created_by: uuid.UUID | None = None,
) -> AccessCode:
    access_code = AccessCode(
        code=generate_access_code(),
        max_uses=max_uses,
        upload_quota=upload_quota if upload_quota is not None else settings.default_upload_quota,
        expiry_date=expiry_date,
        created_by=created_by,
    )
    db.add(access_code)
    await db.commit()
    await db.refresh(access_code)
    logger.info("Created access code %s with %s uses", access_code.id, max_uses)
    return access_code


async def get_active_code(db: AsyncSession, code: str) -> AccessCode | None:
    result = await db.execute(
        select(AccessCode).where(AccessCode.code == code, AccessCode.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def get_access_code_by_id(db: AsyncSession, code_id: uuid.UUID) -> AccessCode | None:
    return await db.get(AccessCode, code_id)


async def list_access_codes(db: AsyncSession) -> list[AccessCode]:
    result = await db.execute(select(AccessCode).order_by(AccessCode.created_at.desc()))
    return list(result.scalars())


async def redeem_access_code(db: AsyncSession, code_id: uuid.UUID, *, now: datetime | None = None) -> bool:
    """Consume one use of a code; ``False`` when no use is left.

    The increment and the limit check are one conditional UPDATE, so two
    requests racing for the last use cannot both succeed.
    """
    now = now or utcnow()
    result = await db.execute(
        update(AccessCode)
        .where(
            AccessCode.id == code_id,
            AccessCode.is_active.is_(True),
            AccessCode.current_uses < AccessCode.max_uses,
            or_(AccessCode.expiry_date.is_(None), AccessCode.expiry_date >= now),
        )
        .values(current_uses=AccessCode.current_uses + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def delete_access_code(db: AsyncSession, access_code: AccessCode) -> None:
    result = await db.execute(select(StoredFile.stored_name).where(StoredFile.owner_code_id == access_code.id))
    for (stored_name,) in result:
        await storage_service.remove(stored_name)
    await db.delete(access_code)
    await db.commit()
    logger.info("Deleted access code %s", access_code.id)
