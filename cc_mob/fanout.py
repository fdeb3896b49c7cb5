"""
Real-time fan-out channel for connected phone sessions.

Every open websocket sees the same live state: a snapshot of pending
requests on connect, then `new_request`, `resolved` and `notification`
events as they happen.

Message Protocol:
- Server -> client: {event: "init", data: {pending: [...]}}
- Server -> client: {event: "new_request" | "resolved", data: {...request}}
- Server -> client: {event: "notification", data: {message, timestamp}}
- Server -> client: {event: "pong"} (reply), {event: "ping"} (liveness probe)
- Client -> server: {type: "ping"}; any inbound message counts as keepalive

Delivery is best-effort: closed or failing sockets are dropped, never retried.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from .connection_logger import ConnectionLogger
from .rate_limit import SlidingWindowLimiter


# Close codes sent to clients
CLOSE_UNAUTHORIZED = 4001
CLOSE_TOKEN_ROTATED = 4002
CLOSE_TOO_MANY_CONNECTIONS = 4003
CLOSE_GOING_AWAY = 1001
CLOSE_MESSAGE_TOO_BIG = 1009


def _default_source(websocket: WebSocket) -> str:
    return websocket.client.host if websocket.client else "unknown"


def _is_open(websocket: Any) -> bool:
    return (
        getattr(websocket, "application_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
        and getattr(websocket, "client_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
    )


@dataclass(eq=False)
class LiveConnection:
    """An accepted websocket in the broadcast set."""
    websocket: Any
    source: str
    is_alive: bool = True
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class FanoutChannel:
    """Manages the set of live connections and pushes events to all of them."""

    def __init__(
        self,
        snapshot: Callable[[], List[dict]],
        authenticate: Callable[[WebSocket], bool],
        limiter: SlidingWindowLimiter,
        keepalive_interval: float = 30,
        max_message_bytes: int = 64 * 1024,
        logger: Optional[ConnectionLogger] = None,
        source_of: Callable[[WebSocket], str] = _default_source,
    ):
        self._snapshot = snapshot
        self._authenticate = authenticate
        self._limiter = limiter
        self.keepalive_interval = keepalive_interval
        self.max_message_bytes = max_message_bytes
        self._logger = logger or ConnectionLogger()
        self._source_of = source_of
        self._connections: Set[LiveConnection] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()
        self._keepalive_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def connections(self) -> List[LiveConnection]:
        return list(self._connections)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def serve(self, websocket: WebSocket) -> None:
        """Run one websocket session from upgrade to close."""
        source = self._source_of(websocket)

        decision = self._limiter.hit(source)
        if not decision.allowed:
            await self._reject(websocket, source, CLOSE_TOO_MANY_CONNECTIONS, "Too many connections", "rate_limited")
            return

        if not self._authenticate(websocket):
            await self._reject(websocket, source, CLOSE_UNAUTHORIZED, "Unauthorized", "unauthorized")
            return

        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        conn = LiveConnection(websocket=websocket, source=source)
        self._connections.add(conn)
        self._logger.log("connected", source=source)

        try:
            init = {"event": "init", "data": {"pending": self._snapshot()}}
            await self._send(conn, json.dumps(init))

            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                conn.is_alive = True

                text = message.get("text")
                if text is None and message.get("bytes") is not None:
                    text = message["bytes"].decode("utf-8", errors="replace")
                if text is not None and len(text.encode("utf-8")) > self.max_message_bytes:
                    self._drop(conn, "terminated", reason="message_too_big")
                    await self._close(conn, CLOSE_MESSAGE_TOO_BIG, "Message too big")
                    break
                await self._handle_message(conn, text)
        except WebSocketDisconnect:
            pass
        finally:
            self._drop(conn, "disconnected")

    async def _reject(self, websocket: WebSocket, source: str, code: int, reason: str, reason_code: str) -> None:
        # Accept first so the close code reaches the client instead of a bare HTTP 403
        self._logger.log("rejected", source=source, reason=reason_code, code=code)
        try:
            await websocket.accept()
            await websocket.close(code=code, reason=reason)
        except Exception as e:
            print(f"[Fanout] Failed to reject connection from {source}: {e}")

    async def _handle_message(self, conn: LiveConnection, text: Optional[str]) -> None:
        if not text:
            return
        try:
            msg = json.loads(text)
        except json.JSONDecodeError:
            return
        if isinstance(msg, dict) and msg.get("type") == "ping":
            await self._send(conn, json.dumps({"event": "pong"}))

    def _drop(self, conn: LiveConnection, event: str, reason: Optional[str] = None) -> None:
        if conn in self._connections:
            self._connections.discard(conn)
            self._logger.log(event, source=conn.source, reason=reason)

    async def _close(self, conn: LiveConnection, code: int, reason: str) -> None:
        websocket = conn.websocket
        if getattr(websocket, "application_state", None) == WebSocketState.DISCONNECTED:
            return
        try:
            await websocket.close(code=code, reason=reason)
        except Exception:
            pass  # already gone

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    async def _send(self, conn: LiveConnection, data: str) -> bool:
        async with conn.send_lock:
            if not _is_open(conn.websocket):
                return False
            try:
                await conn.websocket.send_text(data)
                return True
            except Exception as e:
                self._drop(conn, "send_failed", reason=type(e).__name__)
                return False

    def _spawn(self, coro) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (self._loop is None or running is self._loop):
            task = running.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif self._loop is not None and not self._loop.is_closed():
            asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()

    def broadcast(self, event: str, data: Any = None) -> int:
        """Push an event to every open connection. Returns how many sends were scheduled.

        Never awaits; safe to call from the event loop or from another thread.
        """
        envelope = {"event": event}
        if data is not None:
            envelope["data"] = data
        message = json.dumps(envelope)

        targets = [c for c in list(self._connections) if _is_open(c.websocket)]
        for conn in targets:
            self._spawn(self._send(conn, message))
        return len(targets)

    def on_resolved(self, entry: dict) -> None:
        """Registry listener: relay every resolution to all sessions."""
        self.broadcast("resolved", entry)

    # ------------------------------------------------------------------
    # Liveness and rotation
    # ------------------------------------------------------------------

    async def sweep_liveness(self) -> int:
        """Close connections silent since the last sweep, probe the rest.

        Returns the number of connections terminated.
        """
        terminated = 0
        probe = json.dumps({"event": "ping"})
        for conn in list(self._connections):
            if not conn.is_alive:
                self._drop(conn, "terminated", reason="keepalive_timeout")
                await self._close(conn, CLOSE_GOING_AWAY, "Keepalive timeout")
                terminated += 1
                continue
            conn.is_alive = False
            self._spawn(self._send(conn, probe))

        if terminated:
            print(f"[Fanout] Terminated {terminated} stale connection(s)")
        return terminated

    async def close_all(self, code: int = CLOSE_TOKEN_ROTATED, reason: str = "Token rotated") -> int:
        """Force-close every connection and clear the set."""
        conns = list(self._connections)
        self._connections.clear()
        for conn in conns:
            await self._close(conn, code, reason)
        if code == CLOSE_TOKEN_ROTATED:
            self._logger.log("rotated", detail=f"Closed {len(conns)} connection(s)", code=code)
        print(f"[Fanout] Closed {len(conns)} connection(s): {reason}")
        return len(conns)

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await self.sweep_liveness()
            except Exception as e:
                print(f"[Fanout] Keepalive error: {e}")

    def start(self) -> None:
        """Start the keepalive sweep on the running loop."""
        self._loop = asyncio.get_running_loop()
        if self._keepalive_task is None or self._keepalive_task.done():
            self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    async def stop(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            try:
                await self._keepalive_task
            except asyncio.CancelledError:
                pass
            self._keepalive_task = None
        await self.close_all(CLOSE_GOING_AWAY, "Server shutting down")

    def diagnostics(self) -> dict:
        diag = self._logger.get_diagnostics(live_connections=len(self._connections))
        diag["connections"] = [
            {
                "source": c.source,
                "connected_at": c.connected_at.isoformat(),
                "is_alive": c.is_alive,
            }
            for c in self._connections
        ]
        return diag
