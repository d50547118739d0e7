from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from shareportal.db.base import utcnow
from shareportal.models.login_attempt import LoginAttempt
from shareportal.services.rate_limiter import RateLimiter, code_identifier, user_identifier


def test_identifiers_are_scoped_by_client():
    assert user_identifier("alice", "10.0.0.1") == "alice_10.0.0.1"
    assert code_identifier("10.0.0.1") == "code_10.0.0.1"


async def test_locks_after_max_failures(db):
    limiter = RateLimiter(max_attempts=3, lockout_seconds=60)
    now = utcnow()
    for _ in range(2):
        await limiter.record_attempt(db, "alice_1.1.1.1", False, now=now)
    assert not await limiter.is_locked(db, "alice_1.1.1.1", now=now)

    await limiter.record_attempt(db, "alice_1.1.1.1", False, now=now)
    assert await limiter.is_locked(db, "alice_1.1.1.1", now=now)
    assert not await limiter.is_locked(db, "alice_2.2.2.2", now=now)


async def test_lock_expires_with_window(db):
    limiter = RateLimiter(max_attempts=2, lockout_seconds=60)
    start = utcnow()
    for _ in range(2):
        await limiter.record_attempt(db, "id", False, now=start)
    assert await limiter.is_locked(db, "id", now=start + timedelta(seconds=30))
    assert not await limiter.is_locked(db, "id", now=start + timedelta(seconds=61))


async def test_success_clears_failures(db):
    limiter = RateLimiter(max_attempts=2, lockout_seconds=60)
    now = utcnow()
    await limiter.record_attempt(db, "id", False, now=now)
    await limiter.record_attempt(db, "id", True, now=now)
    assert await limiter.failed_attempts(db, "id", now=now) == 0


async def test_prune_drops_old_rows(db):
    limiter = RateLimiter(retention_hours=24)
    now = utcnow()
    await limiter.record_attempt(db, "old", False, now=now - timedelta(hours=25))
    await limiter.record_attempt(db, "new", False, now=now)

    removed = await limiter.prune(db, now=now)

    assert removed == 1
    remaining = (await db.execute(select(func.count(LoginAttempt.id)))).scalar_one()
    assert remaining == 1


async def test_success_unlocks_immediately(db):
    limiter = RateLimiter(max_attempts=5, lockout_seconds=900)
    now = utcnow()
    for _ in range(5):
        await limiter.record_attempt(db, "id", False, now=now)
    assert await limiter.is_locked(db, "id", now=now)

    await limiter.record_attempt(db, "id", True, now=now)

    assert not await limiter.is_locked(db, "id", now=now)


async def test_failed_prune_does_not_block_the_check(db, monkeypatch):
    limiter = RateLimiter(max_attempts=2, lockout_seconds=60)
    now = utcnow()
    await limiter.record_attempt(db, "id", False, now=now)

    async def broken_prune(session, *, now=None):
        raise OperationalError("DELETE FROM login_attempts", {}, Exception("database is locked"))

    monkeypatch.setattr(limiter, "prune", broken_prune)

    assert not await limiter.is_locked(db, "id", now=now)
    await limiter.record_attempt(db, "id", False, now=now)
    assert await limiter.is_locked(db, "id", now=now)
    assert await limiter.failed_attempts(db, "id", now=now) == 2
