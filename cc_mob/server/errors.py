"""
Error responses for the gateway.

Every failure leaves the API as `{"error": ..., "message"?: ...}` so the
phone page and the MCP adapter can read one shape.
"""

from typing import Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


def api_error(
    status_code: int,
    error: str,
    message: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> HTTPException:
    """Build an HTTPException whose body is `{"error": error[, "message": message]}`."""
    detail = {"error": error}
    if message:
        detail["message"] = message
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, dict) else {"error": str(exc.detail)}
    return JSONResponse(detail, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "Invalid request body"}, status_code=400)
