from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shareportal.api.router import api_router
from shareportal.api.routes.public import router as download_router
from shareportal.core.config import settings
from shareportal.core.errors import PortalError
from shareportal.db.base import Base
from shareportal.db.session import async_session_factory, engine
from shareportal.models import access_code, file, login_attempt, session, share, user  # noqa: F401
from shareportal.services.storage import storage_service
from shareportal.services.users import ensure_admin_user

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_application() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.project_name)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.kind.value})

    @app.on_event("startup")
    async def startup_event() -> None:  # noqa: D401
        storage_service.ensure_base_dirs()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_session_factory() as db:
            await ensure_admin_user(
                db,
                username=settings.admin_username,
                password_hash=settings.effective_admin_password_hash,
            )
        logger.info("Storage directories ensured under %s", settings.storage_root)

    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(download_router)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_application()
