from __future__ import annotations

import logging
import uuid
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shareportal.core.config import settings
from shareportal.core.principal import Role
from shareportal.models.file import StoredFile
from shareportal.models.user import UserAccount, coerce_role
from shareportal.services.storage import storage_service
from shareportal.utils.security import get_password_hash

logger = logging.getLogger(__name__)


async def create_user(
    db: AsyncSession,
    username: str,
    password: str,
    *,
    email: str | None = None,
    role: Role | str | None = Role.USER,
    upload_quota: int | None = None,
    is_temporary: bool = False,
    expiry_date: datetime | None = None,
) -> UserAccount:
    if not username or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and password are required")
    user = UserAccount(
        username=username,
        email=email.lower() if email else None,
        password_hash=get_password_hash(password),
        role=coerce_role(role),
        upload_quota=upload_quota if upload_quota is not None else settings.default_upload_quota,
        is_temporary=is_temporary,
        expiry_date=expiry_date if is_temporary else None,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists") from exc
    await db.refresh(user)
    logger.info("Created %s account %s", user.role.value, user.username)
    return user


async def ensure_admin_user(
    db: AsyncSession,
    *,
    username: str,
    password_hash: str,
) -> None:
    user = await get_user_by_username(db, username)
    if user is None:
        db.add(
            UserAccount(
                username=username,
                password_hash=password_hash,
                role=Role.ADMIN,
                is_active=True,
            )
        )
        await db.commit()
    elif user.role is not Role.ADMIN or not user.is_active:
        user.role = Role.ADMIN
        user.is_active = True
        if password_hash:
            user.password_hash = password_hash
        await db.commit()


async def get_user_by_username(db: AsyncSession, username: str) -> UserAccount | None:
    result = await db.execute(select(UserAccount).where(UserAccount.username == username))
    return result.scalar_one_or_none()


async def get_active_user_by_username(db: AsyncSession, username: str) -> UserAccount | None:
    result = await db.execute(
        select(UserAccount).where(UserAccount.username == username, UserAccount.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> UserAccount | None:
    return await db.get(UserAccount, user_id)


async def list_users(db: AsyncSession) -> list[UserAccount]:
    result = await db.execute(select(UserAccount).order_by(UserAccount.created_at.desc()))
    return list(result.scalars())


_SENTINEL = object()


async def update_user(
    db: AsyncSession,
    user: UserAccount,
    *,
    email: str | None | object = _SENTINEL,
    role: Role | str | None = None,
    is_active: bool | None = None,
    upload_quota: int | None = None,
    expiry_date: datetime | None | object = _SENTINEL,
    password: str | None = None,
) -> UserAccount:
    if email is not _SENTINEL:
        user.email = email.lower() if isinstance(email, str) else None
    if role is not None:
        user.role = coerce_role(role)
    if is_active is not None:
        user.is_active = is_active
    if upload_quota is not None:
        user.upload_quota = upload_quota
    if expiry_date is not _SENTINEL:
        user.expiry_date = expiry_date  # type: ignore[assignment]
    if password:
        user.password_hash = get_password_hash(password)
    await db.commit()
    await db.refresh(user)
    return user


async def mark_logged_in(db: AsyncSession, user: UserAccount, now: datetime) -> None:
    await db.execute(
        update(UserAccount)
        .where(UserAccount.id == user.id)
        .values(last_login=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def delete_user(db: AsyncSession, user: UserAccount) -> None:
    result = await db.execute(select(StoredFile.stored_name).where(StoredFile.owner_user_id == user.id))
    for (stored_name,) in result:
        await storage_service.remove(stored_name)
    await db.delete(user)
    await db.commit()
    logger.info("Deleted account %s", user.username)
