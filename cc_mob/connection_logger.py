"""
Event log for the real-time channel.

Answers "why did my phone stop updating?" after the fact. Each connect,
disconnect, rejection, stale termination, rotation and failed send is kept
in memory (the most recent 200, served by /api/diagnostics) and appended
to `connection_events.log` in the config directory as one JSON object per
line, e.g.:

    {"ts": "...", "event": "rejected", "source": "10.0.0.5", "reason": "unauthorized", "code": 4001}

The file is rolled over to `connection_events.log.1` once it passes 5MB.
Writing it is best-effort; the in-memory view is always complete.
"""

import json
import threading
from collections import Counter, deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional


LOG_FILE_NAME = "connection_events.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
HISTORY_SIZE = 200
DIAGNOSTIC_EVENTS = 50

# Counter name per event kind
COUNTED_EVENTS = {
    "connected": "total_connects",
    "disconnected": "total_disconnects",
    "rejected": "total_rejected",
    "terminated": "total_terminated",
    "rotated": "total_rotations",
}
FAILURE_EVENTS = ("rejected", "terminated", "send_failed")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionLogger:
    """Records channel lifecycle events; safe to call from any thread."""

    def __init__(self, log_dir: Optional[Path] = None):
        self._history: deque = deque(maxlen=HISTORY_SIZE)
        self._counts: Counter = Counter()
        self._last_seen: Dict[str, Optional[str]] = {"connected": None, "disconnected": None}
        self._started = _now()
        self._guard = threading.Lock()
        self.log_file = self._prepare_file(log_dir)

    @staticmethod
    def _prepare_file(log_dir: Optional[Path]) -> Optional[Path]:
        if log_dir is None:
            return None
        path = Path(log_dir) / LOG_FILE_NAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"[Fanout] Connection log disabled: {e}")
            return None
        return path

    def log(
        self,
        event: str,
        source: Optional[str] = None,
        detail: Optional[str] = None,
        reason: Optional[str] = None,
        code: Optional[int] = None,
    ) -> dict:
        """Record one event and return the stored entry.

        `reason` is a short machine code (unauthorized, keepalive_timeout, ...),
        `code` the websocket close code when one was sent.
        """
        entry = {"ts": _now(), "event": event}
        for key, value in (("source", source), ("detail", detail), ("reason", reason)):
            if value:
                entry[key] = value
        if code is not None:
            entry["code"] = code

        with self._guard:
            self._history.append(entry)
            counter = COUNTED_EVENTS.get(event)
            if counter:
                self._counts[counter] += 1
            if event == "connected":
                self._last_seen["connected"] = entry["ts"]
            elif event in ("disconnected", "terminated"):
                self._last_seen["disconnected"] = entry["ts"]
            self._append_to_file(entry)
        return entry

    def _append_to_file(self, entry: dict) -> None:
        if self.log_file is None:
            return
        try:
            if self.log_file.exists() and self.log_file.stat().st_size > MAX_LOG_BYTES:
                self.log_file.replace(self.log_file.with_name(LOG_FILE_NAME + ".1"))
            with open(self.log_file, "a") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError:
            # Diagnostics only; the channel keeps going without the file
            pass

    def get_recent_events(self, limit: int = DIAGNOSTIC_EVENTS) -> List[dict]:
        with self._guard:
            history = list(self._history)
        return history[-limit:]

    def stats(self) -> dict:
        with self._guard:
            stats = {name: self._counts[name] for name in COUNTED_EVENTS.values()}
            stats["last_connected_at"] = self._last_seen["connected"]
            stats["last_disconnected_at"] = self._last_seen["disconnected"]
        stats["session_start"] = self._started
        return stats

    def get_diagnostics(self, live_connections: Optional[int] = None) -> dict:
        """Snapshot for /api/diagnostics: counters, most recent failure, recent events."""
        recent = self.get_recent_events()
        last_failure = next((e for e in reversed(recent) if e["event"] in FAILURE_EVENTS), None)
        return {
            "live_connections": live_connections,
            "stats": self.stats(),
            "last_failure": last_failure,
            "recent_events": recent,
            "log_file": str(self.log_file) if self.log_file else None,
        }
