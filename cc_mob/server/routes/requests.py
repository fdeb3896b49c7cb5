"""
Request endpoints: create, long-poll wait, respond, list, notify.
"""

import asyncio
import time
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ...errors import RequestNotFound, ValidationError
from ..auth import require_auth
from ..errors import api_error
from ..limits import create_rate_limit

router = APIRouter()


class CreateRequestBody(BaseModel):
    type: Optional[Any] = None
    payload: Optional[Any] = None


class RespondBody(BaseModel):
    decision: Optional[Any] = None


class NotifyBody(BaseModel):
    message: Optional[Any] = None


@router.post("/request", dependencies=[Depends(create_rate_limit), Depends(require_auth)])
async def create_request(body: CreateRequestBody, request: Request):
    """Create a request and push it to every connected phone."""
    if not body.type or body.payload is None:
        raise api_error(400, "type and payload required")

    registry = request.app.state.registry
    try:
        request_id = registry.create(body.type, body.payload)
    except ValidationError as e:
        raise api_error(400, str(e))

    request.app.state.fanout.broadcast("new_request", registry.get(request_id).to_dict())
    return {"id": request_id}


@router.get("/request/{request_id}/wait", dependencies=[Depends(require_auth)])
async def wait_for_response(request_id: str, request: Request, timeout: Optional[float] = None):
    """
    Long-poll until the request is resolved.

    The registry never times out; `timeout` (seconds) lets a caller bound
    its own wait. A timed-out wait leaves the request pending and awaitable.
    """
    registry = request.app.state.registry
    try:
        if timeout is not None and timeout > 0:
            response = await asyncio.wait_for(registry.wait(request_id), timeout=timeout)
        else:
            response = await registry.wait(request_id)
    except RequestNotFound as e:
        raise api_error(404, str(e))
    except asyncio.TimeoutError:
        raise api_error(408, "timeout", message="Request timed out waiting for response")

    return {"status": "resolved", "response": response}


@router.post("/request/{request_id}/respond", dependencies=[Depends(require_auth)])
async def respond_to_request(request_id: str, body: RespondBody, request: Request):
    """Submit the human's decision. The resolved event is broadcast by the registry."""
    if body.decision is None or body.decision == "":
        raise api_error(400, "decision required")

    if not request.app.state.registry.respond(request_id, body.decision):
        raise api_error(404, "Request not found or already resolved")
    return {"ok": True}


@router.get("/requests", dependencies=[Depends(require_auth)])
async def list_requests(request: Request):
    """Pending subset plus the full list (most recent first)."""
    registry = request.app.state.registry
    return {"pending": registry.pending_list(), "all": registry.all_list()}


@router.post("/notify", dependencies=[Depends(require_auth)])
async def notify(body: NotifyBody, request: Request):
    """Fire-and-forget notification to every connected phone."""
    if body.message is None or body.message == "":
        raise api_error(400, "message required")

    request.app.state.fanout.broadcast("notification", {
        "message": body.message,
        "timestamp": int(time.time() * 1000),
    })
    return {"ok": True}
