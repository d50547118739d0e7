from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from pathlib import Path

from shareportal.core.config import settings
from shareportal.core.errors import ErrorKind, PortalError

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"[^a-zA-Z0-9]")


def safe_extension(filename: str) -> str:
    suffix = Path(filename).suffix.lstrip(".")
    return _EXTENSION_RE.sub("", suffix)[:10]


class StorageService:
    def __init__(self, root: Path | None = None) -> None:
        self._root = root or settings.storage_root
        self._files_dir = self._root / settings.files_dir_name

    @property
    def files_dir(self) -> Path:
        return self._files_dir

    def ensure_base_dirs(self) -> None:
        for directory in (self._root, self._files_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, stored_name: str) -> Path:
        if not stored_name or ".." in stored_name or "/" in stored_name or "\\" in stored_name:
            raise PortalError(ErrorKind.STORAGE_FAILURE, "Invalid filename.")
        return self._files_dir / stored_name

    def exists(self, stored_name: str) -> bool:
        path = self.path_for(stored_name)
        return path.is_file()

    async def write(self, stored_name: str, data: bytes) -> Path:
        path = self.path_for(stored_name)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as handle:
                handle.write(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise PortalError(ErrorKind.STORAGE_FAILURE, "Failed to save uploaded file.") from exc
        return path

    async def remove(self, stored_name: str) -> None:
        path = self.path_for(stored_name)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError:
            logger.warning("Could not remove stored file %s", path, exc_info=True)

    @staticmethod
    async def compute_digest(path: Path, algorithm: str = "sha256") -> str:
        def _compute() -> str:
            hash_ = hashlib.new(algorithm)
            with open(path, "rb") as handle:
                for chunk in iter(lambda: handle.read(1024 * 1024), b""):
                    hash_.update(chunk)
            return hash_.hexdigest()

        return await asyncio.to_thread(_compute)


storage_service = StorageService()
