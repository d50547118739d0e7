from __future__ import annotations

from functools import cached_property, lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    project_name: str = "Secure Share Portal"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO")

    database_url: str = Field(
        default="postgresql+asyncpg://share_portal:share_portal@db:5432/share_portal",
        description="SQLAlchemy async database URL",
    )
    redis_url: str = Field(default="redis://redis:6379/0", description="Redis URL for the maintenance queue")

    storage_root: Path = Field(
        default=Path(__file__).resolve().parents[3] / "data",
        description="Root directory holding uploaded file contents",
    )
    files_dir_name: str = Field(default="files")
    max_file_size: int = Field(default=10 * 1024 * 1024 * 1024, ge=1)

    hash_algorithms: List[str] = Field(default_factory=lambda: ["sha256", "sha512", "sha1"])
    default_hash_algorithm: str = Field(default="sha256")

    default_upload_quota: int = Field(default=1024 * 1024 * 1024, ge=0)

    session_timeout_seconds: int = Field(default=3600, ge=60)
    max_login_attempts: int = Field(default=5, ge=1)
    lockout_seconds: int = Field(default=900, ge=1)
    attempt_retention_hours: int = Field(default=24, ge=1)

    jwt_secret: str = Field(default="change-me-please", min_length=10)
    jwt_algorithm: str = Field(default="HS256")
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    public_base_url: str | None = Field(default=None, description="Base URL used in share links")
    trust_forwarded_headers: bool = Field(default=False)

    admin_username: str = Field(default="admin")
    admin_password: str | None = Field(default=None)
    admin_password_hash: str = Field(
        default="$2b$12$dl8Ne6PFc.CD1gVYLRNvJeXp9jR8GStlMsJGcZ4opecQcsao4s46y",
        description="bcrypt hash used for the bootstrap admin when no password is set",
    )

    celery_broker_url: str | None = None
    celery_result_backend: str | None = None
    maintenance_interval_minutes: int = Field(default=15, ge=1)

    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("storage_root", mode="before")
    @classmethod
    def _build_storage_root(cls, value: Path | str) -> Path:
        return Path(value)

    @field_validator("default_hash_algorithm")
    @classmethod
    def _normalise_algorithm(cls, value: str) -> str:
        return value.lower()

    @property
    def files_dir(self) -> Path:
        return self.storage_root / self.files_dir_name

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    @cached_property
    def effective_admin_password_hash(self) -> str:
        if self.admin_password:
            from shareportal.utils.security import get_password_hash

            return get_password_hash(self.admin_password)
        return self.admin_password_hash


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
