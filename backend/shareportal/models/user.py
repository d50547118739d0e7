from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Enum, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shareportal.core.config import settings
from shareportal.core.principal import ACCOUNT_ROLES, Role
from shareportal.db.base import Base, UTCDateTime, utcnow

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from shareportal.models.file import StoredFile


def coerce_role(role: Role | str | None = None, is_admin: bool | None = None) -> Role:
    """Resolve a stored or submitted role, accepting the legacy ``is_admin`` flag.

    ``role`` wins when both are given. Anything that is not an account role
    raises ``ValueError``.
    """
    if role is not None:
        resolved = Role(role)
        if resolved not in ACCOUNT_ROLES:
            raise ValueError(f"{resolved.value} is not an account role")
        return resolved
    if is_admin is not None:
        return Role.ADMIN if is_admin else Role.USER
    return Role.USER


class UserAccount(Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint("used_quota >= 0", name="ck_users_used_quota_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, name="user_role"), default=Role.USER, nullable=False)
    upload_quota: Mapped[int] = mapped_column(
        BigInteger, default=lambda: settings.default_upload_quota, nullable=False
    )
    used_quota: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    is_temporary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    files: Mapped[list["StoredFile"]] = relationship(
        back_populates="owner_user", cascade="all, delete", passive_deletes=True
    )

    @property
    def is_admin(self) -> bool:
        # Read-only view for clients that still expect the old flag.
        return self.role is Role.ADMIN

    def is_expired(self, now: datetime) -> bool:
        return bool(self.is_temporary and self.expiry_date is not None and self.expiry_date < now)


from shareportal.models.file import StoredFile  # noqa: E402,F811  # circular import guard
