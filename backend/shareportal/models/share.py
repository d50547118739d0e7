from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shareportal.db.base import Base, UTCDateTime, utcnow

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from shareportal.models.file import StoredFile


class ShareLink(Base):
    __tablename__ = "shared_files"
    __table_args__ = (
        CheckConstraint("max_downloads IS NULL OR max_downloads >= 1", name="ck_shares_max_downloads_positive"),
        CheckConstraint(
            "max_downloads IS NULL OR download_count <= max_downloads",
            name="ck_shares_downloads_within_max",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    file_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    owner_code_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("access_codes.id", ondelete="CASCADE"), nullable=True
    )
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    max_downloads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    file: Mapped["StoredFile"] = relationship(back_populates="shares")

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None


from shareportal.models.file import StoredFile  # noqa: E402,F811  # circular import guard
