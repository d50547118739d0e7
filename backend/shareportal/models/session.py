from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shareportal.db.base import Base, UTCDateTime, utcnow


class SessionRecord(Base):
    """Server-side login session; the bearer token only names the row."""

    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL AND access_code_id IS NOT NULL) OR (user_id IS NOT NULL AND access_code_id IS NULL)",
            name="ck_sessions_single_principal",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    access_code_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("access_codes.id", ondelete="CASCADE"), nullable=True
    )
    login_time: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    csrf_token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    client_address: Mapped[str] = mapped_column(String(64), default="", nullable=False)
