from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shareportal.core.config import settings
from shareportal.db.base import Base, UTCDateTime, utcnow

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from shareportal.models.file import StoredFile


class AccessCode(Base):
    __tablename__ = "access_codes"
    __table_args__ = (
        CheckConstraint("max_uses >= 1", name="ck_access_codes_max_uses_positive"),
        CheckConstraint("current_uses <= max_uses", name="ck_access_codes_uses_within_max"),
        CheckConstraint("used_quota >= 0", name="ck_access_codes_used_quota_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    max_uses: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    current_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    upload_quota: Mapped[int] = mapped_column(
        BigInteger, default=lambda: settings.default_upload_quota, nullable=False
    )
    used_quota: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    files: Mapped[list["StoredFile"]] = relationship(
        back_populates="owner_code", cascade="all, delete", passive_deletes=True
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date is not None and self.expiry_date < now

    @property
    def is_exhausted(self) -> bool:
        return self.current_uses >= self.max_uses


from shareportal.models.file import StoredFile  # noqa: E402,F811  # circular import guard
