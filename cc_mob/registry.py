"""
In-memory request registry.

Holds every outstanding and recently resolved request. Producers long-poll
on `wait`, humans resolve through `respond`, and a background sweep
auto-resolves anything left pending past the expiry window.

Resolution is the single choke point: every transition (human or sweep)
goes through `respond`, which wakes waiters and notifies listeners once.
"""

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import RequestNotFound, ValidationError


REQUEST_KINDS = ("permission", "question", "notification")

PENDING = "pending"
RESOLVED = "resolved"

EXPIRED_PERMISSION_RESPONSE = {"decision": "deny", "reason": "Expired"}
EXPIRED_ANSWER_RESPONSE = {"answer": "No response (expired)"}


def _ms(ts: Optional[float]) -> Optional[int]:
    return None if ts is None else int(ts * 1000)


@dataclass
class Request:
    """A unit of work awaiting a human decision."""
    id: str
    kind: str  # permission, question, notification
    payload: Dict[str, Any]
    created_at: float
    status: str = PENDING
    response: Optional[Any] = None
    resolved_at: Optional[float] = None
    waiters: List[asyncio.Future] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict:
        """Wire representation shared by the API and the real-time channel."""
        return {
            "id": self.id,
            "type": self.kind,
            "payload": self.payload,
            "status": self.status,
            "response": self.response,
            "createdAt": _ms(self.created_at),
            "resolvedAt": _ms(self.resolved_at),
        }


def expired_response(kind: str) -> dict:
    """Default answer recorded when nobody responds in time."""
    if kind == "permission":
        return dict(EXPIRED_PERMISSION_RESPONSE)
    return dict(EXPIRED_ANSWER_RESPONSE)


def _settle(future: asyncio.Future, value: Any) -> None:
    if not future.done():
        future.set_result(value)


class RequestRegistry:
    """Owns the request table. Only the sweep deletes entries."""

    def __init__(
        self,
        expiry: float = 24 * 60 * 60,
        sweep_interval: float = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.expiry = expiry
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._requests: Dict[str, Request] = {}
        self._lock = threading.Lock()
        self._listeners: List[Callable[[dict], None]] = []
        self._sweep_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[dict], None]) -> None:
        """Subscribe to resolution events. Called with the resolved entry's dict."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[dict], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit_resolved(self, entry: dict) -> None:
        for callback in list(self._listeners):
            try:
                callback(entry)
            except Exception as e:
                print(f"[Registry] Resolution listener failed: {e}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self, kind: str, payload: Any) -> str:
        """Store a new pending request and return its id."""
        if kind not in REQUEST_KINDS:
            raise ValidationError("Invalid request type")
        if not isinstance(payload, dict):
            raise ValidationError("payload must be an object")

        request_id = str(uuid.uuid4())
        entry = Request(id=request_id, kind=kind, payload=payload, created_at=self._clock())
        with self._lock:
            self._requests[request_id] = entry
        print(f"[Registry] Created {kind} request {request_id[:8]}")
        return request_id

    def get(self, request_id: str) -> Optional[Request]:
        return self._requests.get(request_id)

    async def wait(self, request_id: str) -> Any:
        """Suspend until the request is resolved and return its response.

        No internal timeout: wrap in asyncio.wait_for to impose one. Cancelling
        a waiter leaves the request pending for everyone else.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            entry = self._requests.get(request_id)
            if entry is None:
                raise RequestNotFound(request_id)
            if entry.status == RESOLVED:
                return entry.response
            future = loop.create_future()
            entry.waiters.append(future)

        try:
            return await future
        finally:
            with self._lock:
                if future in entry.waiters:
                    entry.waiters.remove(future)

    def respond(self, request_id: str, response: Any) -> bool:
        """Resolve a pending request. Returns False if unknown or already resolved.

        Safe to call from any thread; exactly one caller wins per request.
        """
        with self._lock:
            entry = self._requests.get(request_id)
            if entry is None or entry.status == RESOLVED:
                return False
            entry.status = RESOLVED
            entry.response = response
            entry.resolved_at = self._clock()
            waiters = list(entry.waiters)
            snapshot = entry.to_dict()

        for future in waiters:
            future_loop = future.get_loop()
            if future_loop.is_closed():
                continue
            future_loop.call_soon_threadsafe(_settle, future, response)

        self._emit_resolved(snapshot)
        return True

    def pending_list(self) -> List[dict]:
        with self._lock:
            entries = [e for e in self._requests.values() if e.status == PENDING]
        return [e.to_dict() for e in entries]

    def all_list(self) -> List[dict]:
        """Every request in the table, most recent first."""
        with self._lock:
            entries = list(self._requests.values())
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return [e.to_dict() for e in entries]

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[float] = None) -> Tuple[int, int]:
        """Auto-resolve stale pending requests and purge aged resolved ones.

        Returns (expired, purged). Resolved entries are kept until a full
        expiry window has passed since their resolution.
        """
        now = self._clock() if now is None else now

        with self._lock:
            stale = [e for e in self._requests.values()
                     if e.status == PENDING and now - e.created_at > self.expiry]

        expired = 0
        for entry in stale:
            if self.respond(entry.id, expired_response(entry.kind)):
                expired += 1

        purged = 0
        with self._lock:
            for request_id, entry in list(self._requests.items()):
                if entry.status == RESOLVED and entry.resolved_at is not None \
                        and now - entry.resolved_at > self.expiry:
                    del self._requests[request_id]
                    purged += 1

        if expired or purged:
            print(f"[Registry] Sweep: {expired} expired, {purged} purged")
        return expired, purged

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                print(f"[Registry] Sweep error: {e}")

    def start(self) -> None:
        """Start the background sweep on the running loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    def __len__(self) -> int:
        return len(self._requests)
