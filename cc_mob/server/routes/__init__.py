"""
API routes for the cc-mob gateway.

This package contains all FastAPI route handlers organized by domain.
"""

from fastapi import APIRouter, Depends

from ..limits import api_rate_limit, limit_body_size
from .auth import router as auth_router, token_router
from .health import router as health_router, pages_router
from .realtime import router as realtime_router
from .requests import router as requests_router

# Everything under /api shares the general rate limit
api_router = APIRouter(dependencies=[Depends(api_rate_limit), Depends(limit_body_size)])
api_router.include_router(health_router, tags=["health"])
api_router.include_router(token_router, tags=["auth"])
api_router.include_router(requests_router, tags=["requests"])

# Create main router that includes all sub-routers
main_router = APIRouter()

main_router.include_router(pages_router, tags=["pages"])
main_router.include_router(auth_router, tags=["auth"], dependencies=[Depends(limit_body_size)])
main_router.include_router(api_router, prefix="/api")
main_router.include_router(realtime_router, tags=["realtime"])
