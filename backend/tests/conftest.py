from __future__ import annotations

import os
import tempfile
from pathlib import Path

_SCRATCH = Path(tempfile.mkdtemp(prefix="shareportal-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_SCRATCH / 'default.db'}")
os.environ.setdefault("STORAGE_ROOT", str(_SCRATCH / "storage"))
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("SESSION_TIMEOUT_SECONDS", "3600")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from shareportal.db.base import Base  # noqa: E402
from shareportal.db.session import build_engine, build_session_factory, get_db_session  # noqa: E402
from shareportal.main import app  # noqa: E402
from shareportal.services import users as user_service  # noqa: E402
from shareportal.services.storage import storage_service  # noqa: E402

ADMIN_PASSWORD = "admin-password"
USER_PASSWORD = "user-password"


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'portal.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def storage_dirs():
    storage_service.ensure_base_dirs()
    yield storage_service


@pytest.fixture
async def admin_user(db):
    return await user_service.create_user(db, "root", ADMIN_PASSWORD, role="admin")


@pytest.fixture
async def regular_user(db):
    return await user_service.create_user(db, "alice", USER_PASSWORD, upload_quota=1024)


@pytest.fixture
async def other_user(db):
    return await user_service.create_user(db, "bob", USER_PASSWORD, upload_quota=1024)


@pytest.fixture
async def client(session_factory):
    async def _override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = _override_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    app.dependency_overrides.clear()
