"""
Health, diagnostics and page endpoints.
"""

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse

from ..auth import require_auth
from ..errors import api_error

router = APIRouter()
pages_router = APIRouter()

STATIC_DIR = Path(__file__).parent.parent.parent / "static"


@router.get("/health")
async def health_check():
    """Liveness probe for hooks and the MCP adapter. Never reveals request contents."""
    return {"ok": True}


@router.get("/diagnostics", dependencies=[Depends(require_auth)])
async def diagnostics(request: Request):
    """
    Real-time channel diagnostics: live connections, counters, recent events.

    Example: curl -H "x-auth-token: $AUTH_TOKEN" http://localhost:3456/api/diagnostics | jq
    """
    diag = request.app.state.fanout.diagnostics()
    diag["requests"] = len(request.app.state.registry)
    return diag


@pages_router.get("/")
async def serve_root():
    """Serve the phone page at root."""
    index = STATIC_DIR / "index.html"
    if not index.exists():
        raise api_error(404, "Page not found")
    return FileResponse(index, media_type="text/html")
