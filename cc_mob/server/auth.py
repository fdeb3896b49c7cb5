"""
Authentication for the cc-mob gateway.

A single shared token guards the API. It can be presented, in priority
order, as the `token` query parameter, the `x-auth-token` header, or the
`mob_session` cookie handed out by POST /auth. Only the first credential
present is checked.

The session cookie carries `<expires>.<hmac>` signed with the current
token, so rotating the token invalidates every cookie issued before it.
"""

import hashlib
import hmac
import time
from typing import Optional, Tuple

from fastapi import Request, Response
from starlette.requests import HTTPConnection

from ..credentials import CredentialManager
from .errors import api_error


SESSION_COOKIE = "mob_session"
TOKEN_QUERY_PARAM = "token"
TOKEN_HEADER = "x-auth-token"


# ============================================================
# SESSION ARTIFACT
# ============================================================

def _sign(token: str, expires: int) -> str:
    message = f"{SESSION_COOKIE}:{expires}".encode()
    return hmac.new(token.encode(), message, hashlib.sha256).hexdigest()


def make_session_value(token: str, ttl: int, now: Optional[float] = None) -> str:
    """Session cookie value valid for `ttl` seconds under `token`."""
    expires = int((time.time() if now is None else now) + ttl)
    return f"{expires}.{_sign(token, expires)}"


def session_is_valid(value: str, credentials: CredentialManager, now: Optional[float] = None) -> bool:
    """Check a cookie value against the current token."""
    # Headless clients may put the raw token in the cookie themselves
    if credentials.matches(value):
        return True

    expires_raw, _, signature = value.partition(".")
    # Epoch seconds; longer digit runs would also trip int()'s digit limit
    if not (expires_raw.isascii() and expires_raw.isdigit()) or len(expires_raw) > 15 or not signature:
        return False
    expires = int(expires_raw)
    if expires < (time.time() if now is None else now):
        return False
    expected = _sign(credentials.current_token(), expires)
    # Bytes so a non-ASCII forgery compares unequal instead of raising
    return hmac.compare_digest(signature.encode(), expected.encode())


def set_session_cookie(response: Response, request: Request, token: str, ttl: int) -> None:
    """Attach an HttpOnly, SameSite=Strict session cookie for `token`."""
    secure = request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"
    response.set_cookie(
        key=SESSION_COOKIE,
        value=make_session_value(token, ttl),
        max_age=ttl,
        httponly=True,
        secure=secure,
        samesite="strict",
        path="/",
    )


# ============================================================
# CREDENTIAL CHECK
# ============================================================

def presented_credential(conn: HTTPConnection) -> Tuple[Optional[str], Optional[str]]:
    """Return ("token" | "session" | None, value) for the first credential present."""
    token = conn.query_params.get(TOKEN_QUERY_PARAM)
    if token:
        return "token", token
    token = conn.headers.get(TOKEN_HEADER)
    if token:
        return "token", token
    cookie = conn.cookies.get(SESSION_COOKIE)
    if cookie:
        return "session", cookie
    return None, None


def is_authenticated(conn: HTTPConnection) -> bool:
    """Works for both HTTP requests and websocket upgrades."""
    credentials: CredentialManager = conn.app.state.credentials
    kind, value = presented_credential(conn)
    if kind == "token":
        return credentials.matches(value)
    if kind == "session":
        return session_is_valid(value, credentials)
    return False


def require_auth(request: Request) -> None:
    """FastAPI dependency: 401 unless the request carries the current credential."""
    if not is_authenticated(request):
        raise api_error(401, "Unauthorized")
