"""
Credential exchange and rotation endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from ...errors import CredentialStoreError
from ...fanout import CLOSE_TOKEN_ROTATED
from ..auth import require_auth, set_session_cookie
from ..errors import api_error

# POST /auth lives outside /api (no session needed yet)
router = APIRouter()
# POST /api/rotate-token
token_router = APIRouter()


class AuthBody(BaseModel):
    token: Optional[str] = None


@router.post("/auth")
async def exchange_token(body: AuthBody, request: Request, response: Response):
    """Exchange the shared token for an HttpOnly session cookie."""
    credentials = request.app.state.credentials
    if not credentials.matches(body.token):
        raise api_error(401, "Invalid token")

    settings = request.app.state.settings
    set_session_cookie(response, request, credentials.current_token(), settings.session_ttl)
    return {"ok": True}


@token_router.post("/rotate-token", dependencies=[Depends(require_auth)])
async def rotate_token(request: Request, response: Response):
    """
    Rotate the shared token.

    The caller gets a fresh cookie for the new token; every open real-time
    connection is closed since it authenticated with the old one.
    """
    credentials = request.app.state.credentials
    try:
        new_token = credentials.rotate()
    except CredentialStoreError as e:
        print(f"[Auth] Rotation failed: {e}")
        raise api_error(500, "Failed to rotate token")

    settings = request.app.state.settings
    set_session_cookie(response, request, new_token, settings.session_ttl)
    await request.app.state.fanout.close_all(CLOSE_TOKEN_ROTATED, "Token rotated")
    return {"ok": True, "message": "Token rotated. Reconnect with new token."}
