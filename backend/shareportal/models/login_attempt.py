from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from shareportal.db.base import Base, UTCDateTime, utcnow


class LoginAttempt(Base):
    __tablename__ = "login_attempts"
    __table_args__ = (Index("ix_login_attempts_identifier_time", "identifier", "attempt_time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    attempt_time: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)
    was_successful: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
