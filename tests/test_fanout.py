import asyncio
import json

from fastapi.websockets import WebSocketState

from cc_mob.connection_logger import ConnectionLogger
from cc_mob.fanout import (
    CLOSE_GOING_AWAY,
    CLOSE_TOKEN_ROTATED,
    FanoutChannel,
    LiveConnection,
)
from cc_mob.rate_limit import SlidingWindowLimiter


class FakeWebSocket:
    def __init__(self, fail_send: bool = False) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED
        self.sent = []
        self.closed_with = None
        self.fail_send = fail_send

    async def send_text(self, data: str) -> None:
        if self.fail_send:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED


def _channel(logger=None) -> FanoutChannel:
    return FanoutChannel(
        snapshot=lambda: [],
        authenticate=lambda ws: True,
        limiter=SlidingWindowLimiter(10),
        logger=logger or ConnectionLogger(),
    )


def _attach(channel: FanoutChannel, ws: FakeWebSocket) -> LiveConnection:
    conn = LiveConnection(websocket=ws, source="test")
    channel._connections.add(conn)
    return conn


async def _drain() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_broadcast_reaches_every_open_connection() -> None:
    async def main():
        channel = _channel()
        a, b = FakeWebSocket(), FakeWebSocket()
        closed = FakeWebSocket()
        closed.client_state = WebSocketState.DISCONNECTED
        for ws in (a, b, closed):
            _attach(channel, ws)

        count = channel.broadcast("notification", {"message": "hi", "timestamp": 1})
        await _drain()
        return count, a.sent, b.sent, closed.sent

    count, a_sent, b_sent, closed_sent = asyncio.run(main())
    assert count == 2
    expected = [{"event": "notification", "data": {"message": "hi", "timestamp": 1}}]
    assert a_sent == expected
    assert b_sent == expected
    assert closed_sent == []


def test_failed_send_drops_connection() -> None:
    async def main():
        logger = ConnectionLogger()
        channel = _channel(logger)
        _attach(channel, FakeWebSocket(fail_send=True))
        ok = FakeWebSocket()
        _attach(channel, ok)

        channel.broadcast("resolved", {"id": "x"})
        await _drain()
        return len(channel), ok.sent, logger.get_recent_events()

    remaining, ok_sent, events = asyncio.run(main())
    assert remaining == 1
    assert ok_sent == [{"event": "resolved", "data": {"id": "x"}}]
    assert events[-1]["event"] == "send_failed"


def test_on_resolved_relays_entry() -> None:
    async def main():
        channel = _channel()
        ws = FakeWebSocket()
        _attach(channel, ws)
        channel.on_resolved({"id": "r1", "status": "resolved"})
        await _drain()
        return ws.sent

    assert asyncio.run(main()) == [{"event": "resolved", "data": {"id": "r1", "status": "resolved"}}]


def test_liveness_sweep_terminates_silent_connections() -> None:
    async def main():
        channel = _channel()
        silent, chatty = FakeWebSocket(), FakeWebSocket()
        silent_conn = _attach(channel, silent)
        chatty_conn = _attach(channel, chatty)

        # First sweep marks both unconfirmed and probes them
        assert await channel.sweep_liveness() == 0
        await _drain()
        assert silent.sent == [{"event": "ping"}]
        assert not silent_conn.is_alive

        chatty_conn.is_alive = True  # a message arrived
        terminated = await channel.sweep_liveness()
        return terminated, len(channel), silent.closed_with, chatty.closed_with

    terminated, remaining, silent_closed, chatty_closed = asyncio.run(main())
    assert terminated == 1
    assert remaining == 1
    assert silent_closed[0] == CLOSE_GOING_AWAY
    assert chatty_closed is None


def test_close_all_uses_rotation_code() -> None:
    async def main():
        logger = ConnectionLogger()
        channel = _channel(logger)
        sockets = [FakeWebSocket(), FakeWebSocket()]
        for ws in sockets:
            _attach(channel, ws)

        closed = await channel.close_all()
        return closed, len(channel), [ws.closed_with for ws in sockets], logger.get_diagnostics()

    closed, remaining, codes, diag = asyncio.run(main())
    assert closed == 2
    assert remaining == 0
    assert codes == [(CLOSE_TOKEN_ROTATED, "Token rotated")] * 2
    assert diag["stats"]["total_rotations"] == 1


def test_broadcast_without_connections_is_noop() -> None:
    assert _channel().broadcast("notification", {"message": "x"}) == 0
