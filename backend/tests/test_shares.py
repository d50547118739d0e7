from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from shareportal.core.errors import ErrorKind, PortalError
from shareportal.core.principal import Principal
from shareportal.db.base import utcnow
from shareportal.schemas.share import CreateShareRequest, UpdateShareRequest
from shareportal.services import files as file_service
from shareportal.services import shares as share_service
from shareportal.services.shares import ShareState


@pytest.fixture
async def alice(regular_user):
    return Principal.from_user(regular_user)


@pytest.fixture
async def stored_file(db, alice):
    return await file_service.upload_file(db, alice, "photo.jpg", b"jpegdata")


async def test_create_share_for_own_file(db, alice, stored_file):
    share = await share_service.create_share(db, alice, CreateShareRequest(file_id=stored_file.id))

    assert len(share.token) == 64
    assert share.owner_user_id == alice.id
    assert share.download_count == 0
    assert (await share_service.validate_share(db, share.token)).ok


async def test_cannot_share_foreign_file(db, stored_file, other_user):
    with pytest.raises(PortalError) as excinfo:
        await share_service.create_share(
            db, Principal.from_user(other_user), CreateShareRequest(file_id=stored_file.id)
        )
    assert excinfo.value.kind is ErrorKind.PERMISSION_DENIED


async def test_admin_can_share_any_file(db, stored_file, admin_user):
    admin = Principal.from_user(admin_user)
    share = await share_service.create_share(db, admin, CreateShareRequest(file_id=stored_file.id))
    assert share.owner_user_id == admin_user.id


async def test_unknown_token(db):
    result = await share_service.validate_share(db, "f" * 64)
    assert result.error is ErrorKind.NOT_FOUND


async def test_password_protected_share(db, alice, stored_file):
    share = await share_service.create_share(
        db, alice, CreateShareRequest(file_id=stored_file.id, password="s3cret")
    )

    missing = await share_service.validate_share(db, share.token)
    wrong = await share_service.validate_share(db, share.token, "nope")
    right = await share_service.validate_share(db, share.token, "s3cret")

    assert missing.requires_password
    assert wrong.error is ErrorKind.INVALID_PASSWORD
    assert right.ok


async def test_expired_share(db, alice, stored_file):
    share = await share_service.create_share(
        db,
        alice,
        CreateShareRequest(file_id=stored_file.id, expires_at=utcnow() - timedelta(minutes=1)),
    )
    result = await share_service.validate_share(db, share.token)
    assert result.error is ErrorKind.ALREADY_EXPIRED
    assert share_service.share_state(share) is ShareState.EXPIRED


async def test_deactivation_is_reported_before_expiry(db, alice, stored_file):
    share = await share_service.create_share(
        db,
        alice,
        CreateShareRequest(file_id=stored_file.id, expires_at=utcnow() - timedelta(minutes=1), password="pw"),
    )
    await share_service.update_share(db, alice, share.id, UpdateShareRequest(is_active=False))

    result = await share_service.validate_share(db, share.token, "wrong")
    assert result.error is ErrorKind.DEACTIVATED


async def test_download_limit(db, alice, stored_file):
    share = await share_service.create_share(
        db, alice, CreateShareRequest(file_id=stored_file.id, max_downloads=2)
    )

    assert await share_service.record_download(db, share.id)
    assert await share_service.record_download(db, share.id)
    assert not await share_service.record_download(db, share.id)

    result = await share_service.validate_share(db, share.token)
    assert result.error is ErrorKind.DOWNLOAD_LIMIT_REACHED
    await db.refresh(stored_file)
    assert stored_file.download_count == 2


async def test_non_positive_limit_means_unlimited():
    assert CreateShareRequest(file_id="00000000-0000-0000-0000-000000000001", max_downloads=0).max_downloads is None


async def test_concurrent_downloads_respect_limit(db, session_factory, alice, stored_file):
    share = await share_service.create_share(
        db, alice, CreateShareRequest(file_id=stored_file.id, max_downloads=3)
    )

    async def download() -> bool:
        async with session_factory() as session:
            return await share_service.record_download(session, share.id)

    outcomes = await asyncio.gather(*(download() for _ in range(8)))

    assert outcomes.count(True) == 3
    refreshed = await share_service.get_share(db, share.id)
    assert refreshed.download_count == 3


async def test_update_clears_password_and_raises_low_limit(db, alice, stored_file):
    share = await share_service.create_share(
        db, alice, CreateShareRequest(file_id=stored_file.id, password="pw", max_downloads=5)
    )
    await share_service.record_download(db, share.id)
    await share_service.record_download(db, share.id)

    updated = await share_service.update_share(
        db, alice, share.id, UpdateShareRequest(password="", max_downloads=1)
    )

    assert not updated.has_password
    assert updated.max_downloads == 2


async def test_update_leaves_unsent_fields_alone(db, alice, stored_file):
    expires = utcnow() + timedelta(days=2)
    share = await share_service.create_share(
        db, alice, CreateShareRequest(file_id=stored_file.id, expires_at=expires, max_downloads=4)
    )

    updated = await share_service.update_share(db, alice, share.id, UpdateShareRequest(is_public=False))

    assert updated.is_public is False
    assert updated.expires_at == expires
    assert updated.max_downloads == 4


async def test_only_owner_or_admin_manage_share(db, alice, stored_file, other_user, admin_user):
    share = await share_service.create_share(db, alice, CreateShareRequest(file_id=stored_file.id))

    with pytest.raises(PortalError):
        await share_service.delete_share(db, Principal.from_user(other_user), share.id)

    await share_service.delete_share(db, Principal.from_user(admin_user), share.id)
    assert await share_service.get_share(db, share.id) is None


async def test_listings(db, alice, stored_file, other_user):
    public = await share_service.create_share(db, alice, CreateShareRequest(file_id=stored_file.id))
    await share_service.create_share(
        db, alice, CreateShareRequest(file_id=stored_file.id, is_public=False)
    )
    await share_service.create_share(
        db, alice, CreateShareRequest(file_id=stored_file.id, password="pw")
    )

    assert len(await share_service.list_shares(db, alice)) == 3
    assert await share_service.list_shares(db, Principal.from_user(other_user)) == []
    assert len(await share_service.list_file_shares(db, alice, stored_file.id)) == 3
    assert [s.id for s in await share_service.list_public_shares(db)] == [public.id]


async def test_deleting_file_removes_its_shares(db, alice, stored_file):
    share = await share_service.create_share(db, alice, CreateShareRequest(file_id=stored_file.id))

    await file_service.delete_file(db, alice, stored_file.id)

    assert (await share_service.validate_share(db, share.token)).error is ErrorKind.NOT_FOUND


async def test_expiry_is_reported_before_password(db, alice, stored_file):
    share = await share_service.create_share(
        db,
        alice,
        CreateShareRequest(file_id=stored_file.id, expires_at=utcnow() - timedelta(seconds=1), password="pw"),
    )
    result = await share_service.validate_share(db, share.token)
    assert result.error is ErrorKind.ALREADY_EXPIRED
