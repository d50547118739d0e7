from __future__ import annotations

from fastapi import APIRouter

from shareportal.api.routes import access_codes, auth, files, shares, users

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(files.router)
api_router.include_router(shares.router)
api_router.include_router(users.router)
api_router.include_router(access_codes.router)
