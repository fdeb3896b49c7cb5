"""
WebSocket endpoint for phone sessions.
"""

from fastapi import APIRouter, WebSocket

router = APIRouter()


@router.websocket("/ws")
async def realtime(websocket: WebSocket):
    """Authenticated via `token` query parameter or the session cookie."""
    await websocket.app.state.fanout.serve(websocket)
