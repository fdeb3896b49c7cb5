"""
Request-rate and body-size limits for the gateway.
"""

from fastapi import Request
from starlette.requests import HTTPConnection

from .errors import api_error


RATE_LIMITED_MESSAGE = "Too many requests, please try again later"


def client_source(conn: HTTPConnection) -> str:
    """Source address used to key rate limits.

    Behind a tunnel every request arrives from the tunnel client, so when
    trust_proxy is on the address appended by the closest proxy wins.
    """
    settings = conn.app.state.settings
    if settings.trust_proxy:
        forwarded = conn.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[-1].strip()
    return conn.client.host if conn.client else "unknown"


def _enforce(request: Request, name: str) -> None:
    limiter = request.app.state.limiters[name]
    decision = limiter.hit(client_source(request))
    if not decision.allowed:
        raise api_error(429, RATE_LIMITED_MESSAGE, headers={"Retry-After": str(decision.retry_after)})


def api_rate_limit(request: Request) -> None:
    """General limit applied to every /api route."""
    _enforce(request, "api")


def create_rate_limit(request: Request) -> None:
    """Stricter limit for creating requests."""
    _enforce(request, "create")


async def limit_body_size(request: Request) -> None:
    """Reject bodies over max_body_bytes, declared or chunked."""
    max_bytes = request.app.state.settings.max_body_bytes
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > max_bytes:
        raise api_error(413, "Request body too large")
    # Chunked uploads carry no length; check what was actually received
    if len(await request.body()) > max_bytes:
        raise api_error(413, "Request body too large")
