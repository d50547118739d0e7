from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shareportal.db.base import Base, UTCDateTime, utcnow

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from shareportal.models.access_code import AccessCode
    from shareportal.models.share import ShareLink
    from shareportal.models.user import UserAccount


class StoredFile(Base):
    __tablename__ = "files"
    __table_args__ = (
        CheckConstraint("size >= 0", name="ck_files_size_non_negative"),
        CheckConstraint(
            "NOT (owner_user_id IS NOT NULL AND owner_code_id IS NOT NULL)",
            name="ck_files_single_owner",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    filename: Mapped[str] = mapped_column(String(512), nullable=False)
    stored_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(255))
    file_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    hash_algorithm: Mapped[str] = mapped_column(String(16), nullable=False)
    owner_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    owner_code_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("access_codes.id", ondelete="CASCADE"), nullable=True
    )
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    owner_user: Mapped["UserAccount | None"] = relationship(back_populates="files")
    owner_code: Mapped["AccessCode | None"] = relationship(back_populates="files")
    shares: Mapped[list["ShareLink"]] = relationship(
        back_populates="file", cascade="all, delete-orphan", passive_deletes=True
    )


from shareportal.models.access_code import AccessCode  # noqa: E402,F811  # circular import guard
from shareportal.models.share import ShareLink  # noqa: E402,F811
from shareportal.models.user import UserAccount  # noqa: E402,F811
