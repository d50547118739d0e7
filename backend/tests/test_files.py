from __future__ import annotations

import asyncio
import hashlib
from datetime import timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from shareportal.core.errors import ErrorKind, PortalError
from shareportal.core.principal import ANONYMOUS, Principal
from shareportal.db.base import utcnow
from shareportal.models.file import StoredFile
from shareportal.models.user import UserAccount
from shareportal.services import access_codes as access_code_service
from shareportal.services import files as file_service
from shareportal.services.storage import safe_extension, storage_service


async def test_upload_records_file_and_charges_quota(db, regular_user):
    principal = Principal.from_user(regular_user)

    stored = await file_service.upload_file(db, principal, "report.pdf", b"x" * 100, mime_type="application/pdf")

    assert stored.size == 100
    assert stored.owner_user_id == regular_user.id
    assert stored.owner_code_id is None
    assert stored.file_hash == hashlib.sha256(b"x" * 100).hexdigest()
    assert stored.stored_name.endswith(".pdf")
    assert storage_service.exists(stored.stored_name)
    await db.refresh(regular_user)
    assert regular_user.used_quota == 100


async def test_upload_with_selected_hash(db, regular_user):
    stored = await file_service.upload_file(
        db, Principal.from_user(regular_user), "a.txt", b"abc", hash_algorithm="SHA512"
    )
    assert stored.hash_algorithm == "sha512"
    assert stored.file_hash == hashlib.sha512(b"abc").hexdigest()


async def test_unknown_hash_algorithm_is_rejected(db, regular_user):
    with pytest.raises(HTTPException):
        await file_service.upload_file(db, Principal.from_user(regular_user), "a.txt", b"abc", hash_algorithm="md4")


async def test_upload_over_quota_leaves_nothing_behind(db, regular_user):
    principal = Principal.from_user(regular_user)
    before = set(storage_service.files_dir.iterdir())

    with pytest.raises(PortalError) as excinfo:
        await file_service.upload_file(db, principal, "big.bin", b"x" * 2048)

    assert excinfo.value.kind is ErrorKind.QUOTA_EXCEEDED
    assert set(storage_service.files_dir.iterdir()) == before
    assert await file_service.list_files(db, principal) == []


async def test_anonymous_cannot_upload(db):
    with pytest.raises(PortalError) as excinfo:
        await file_service.upload_file(db, ANONYMOUS, "a.txt", b"abc")
    assert excinfo.value.kind is ErrorKind.PERMISSION_DENIED


async def test_access_code_uploads_are_owned_by_the_code(db):
    code = await access_code_service.create_access_code(db, upload_quota=100)
    principal = Principal.from_access_code(code)

    stored = await file_service.upload_file(db, principal, "note.txt", b"hello")

    assert stored.owner_code_id == code.id
    assert stored.owner_user_id is None
    assert [f.id for f in await file_service.list_files(db, principal)] == [stored.id]


async def test_other_users_cannot_see_or_delete(db, regular_user, other_user):
    stored = await file_service.upload_file(db, Principal.from_user(regular_user), "a.txt", b"abc")
    bob = Principal.from_user(other_user)

    assert await file_service.list_files(db, bob) == []
    with pytest.raises(PortalError) as excinfo:
        await file_service.get_file(db, bob, stored.id)
    assert excinfo.value.kind is ErrorKind.PERMISSION_DENIED
    with pytest.raises(PortalError):
        await file_service.delete_file(db, bob, stored.id)


async def test_admin_delete_returns_quota_to_owner(db, regular_user, admin_user):
    stored = await file_service.upload_file(db, Principal.from_user(regular_user), "a.txt", b"x" * 64)
    stored_name = stored.stored_name

    await file_service.delete_file(db, Principal.from_user(admin_user), stored.id)

    await db.refresh(regular_user)
    assert regular_user.used_quota == 0
    assert not storage_service.exists(stored_name)


async def test_owner_download_counts(db, regular_user):
    principal = Principal.from_user(regular_user)
    stored = await file_service.upload_file(db, principal, "a.txt", b"abc")

    _, path = await file_service.open_download(db, principal, stored.id)

    assert path.read_bytes() == b"abc"
    await db.refresh(stored)
    assert stored.download_count == 1


async def test_expiry_update_needs_delete_permission(db, regular_user, other_user):
    stored = await file_service.upload_file(db, Principal.from_user(regular_user), "a.txt", b"abc")
    when = utcnow() + timedelta(days=1)

    with pytest.raises(PortalError):
        await file_service.update_file_expiry(db, Principal.from_user(other_user), stored.id, when)

    updated = await file_service.update_file_expiry(db, Principal.from_user(regular_user), stored.id, when)
    assert updated.expires_at == when


def test_safe_extension_strips_unsafe_characters():
    assert safe_extension("archive.tar.gz") == "gz"
    assert safe_extension("evil.p/h..p") == "p"
    assert safe_extension("noext") == ""
    assert safe_extension("x.abcdefghijklmnop") == "abcdefghij"


def test_path_traversal_is_rejected():
    with pytest.raises(PortalError):
        storage_service.path_for("../etc/passwd")


def fail_metadata_commit(db, monkeypatch, error: BaseException) -> None:
    real_commit = db.commit

    async def commit() -> None:
        if any(isinstance(obj, StoredFile) for obj in db.new):
            raise error
        await real_commit()

    monkeypatch.setattr(db, "commit", commit)


@pytest.mark.parametrize(
    "error",
    [SQLAlchemyError("insert failed"), asyncio.CancelledError()],
    ids=["commit-error", "cancelled"],
)
async def test_late_upload_failure_releases_quota_and_bytes(db, regular_user, monkeypatch, error):
    principal = Principal.from_user(regular_user)
    before = set(storage_service.files_dir.iterdir())
    fail_metadata_commit(db, monkeypatch, error)

    with pytest.raises(type(error)):
        await file_service.upload_file(db, principal, "late.txt", b"x" * 300)

    user = await db.get(UserAccount, principal.id, populate_existing=True)
    assert user.used_quota == 0
    assert set(storage_service.files_dir.iterdir()) == before
    assert await file_service.list_files(db, principal) == []
