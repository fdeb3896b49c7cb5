import asyncio
import threading

import pytest

from cc_mob.errors import RequestNotFound, ValidationError
from cc_mob.registry import (
    EXPIRED_ANSWER_RESPONSE,
    EXPIRED_PERMISSION_RESPONSE,
    RequestRegistry,
)


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_create_then_get_is_pending() -> None:
    reg = RequestRegistry()
    rid = reg.create("permission", {"tool_name": "Bash"})

    entry = reg.get(rid)
    assert entry is not None
    assert entry.status == "pending"
    assert entry.response is None
    assert entry.payload == {"tool_name": "Bash"}
    assert [r["id"] for r in reg.pending_list()] == [rid]


def test_create_rejects_bad_kind_and_payload() -> None:
    reg = RequestRegistry()
    with pytest.raises(ValidationError):
        reg.create("shell", {})
    with pytest.raises(ValidationError):
        reg.create("question", ["not", "an", "object"])
    assert len(reg) == 0


def test_wire_shape_uses_milliseconds() -> None:
    clock = _Clock(1700000000.5)
    reg = RequestRegistry(clock=clock)
    rid = reg.create("question", {"question": "ok?"})
    clock.now += 2
    reg.respond(rid, {"answer": "yes"})

    data = reg.get(rid).to_dict()
    assert set(data) == {"id", "type", "payload", "status", "response", "createdAt", "resolvedAt"}
    assert data["type"] == "question"
    assert data["createdAt"] == 1700000000500
    assert data["resolvedAt"] == 1700000002500


def test_second_respond_loses_and_emits_once() -> None:
    reg = RequestRegistry()
    seen = []
    reg.add_listener(seen.append)
    rid = reg.create("permission", {})

    assert reg.respond(rid, {"decision": "allow"}) is True
    assert reg.respond(rid, {"decision": "deny"}) is False

    assert reg.get(rid).response == {"decision": "allow"}
    assert len(seen) == 1
    assert seen[0]["id"] == rid
    assert seen[0]["status"] == "resolved"


def test_respond_unknown_id_returns_false() -> None:
    assert RequestRegistry().respond("missing", {"decision": "allow"}) is False


def test_failing_listener_does_not_block_resolution() -> None:
    reg = RequestRegistry()
    seen = []

    def broken(_entry):
        raise RuntimeError("boom")

    reg.add_listener(broken)
    reg.add_listener(seen.append)
    rid = reg.create("question", {})

    assert reg.respond(rid, {"answer": "x"}) is True
    assert len(seen) == 1


def test_wait_before_respond_wakes_waiter() -> None:
    async def main():
        reg = RequestRegistry()
        rid = reg.create("question", {"question": "ship it?"})
        task = asyncio.create_task(reg.wait(rid))
        await asyncio.sleep(0)
        assert not task.done()

        assert reg.respond(rid, {"answer": "yes"})
        return await asyncio.wait_for(task, timeout=1)

    assert asyncio.run(main()) == {"answer": "yes"}


def test_wait_after_respond_returns_immediately() -> None:
    async def main():
        reg = RequestRegistry()
        rid = reg.create("permission", {})
        reg.respond(rid, {"decision": "deny"})
        return await asyncio.wait_for(reg.wait(rid), timeout=1)

    assert asyncio.run(main()) == {"decision": "deny"}


def test_wait_unknown_id_raises_not_found() -> None:
    async def main():
        await RequestRegistry().wait("nope")

    with pytest.raises(RequestNotFound) as exc:
        asyncio.run(main())
    assert str(exc.value) == "Request nope not found"


def test_abandoned_wait_leaves_request_pending() -> None:
    async def main():
        reg = RequestRegistry()
        rid = reg.create("question", {})
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(reg.wait(rid), timeout=0.01)

        entry = reg.get(rid)
        assert entry.status == "pending"
        assert entry.waiters == []

        other = asyncio.create_task(reg.wait(rid))
        await asyncio.sleep(0)
        reg.respond(rid, {"answer": "later"})
        return await asyncio.wait_for(other, timeout=1)

    assert asyncio.run(main()) == {"answer": "later"}


def test_many_waiters_all_receive_response() -> None:
    async def main():
        reg = RequestRegistry()
        rid = reg.create("question", {})
        tasks = [asyncio.create_task(reg.wait(rid)) for _ in range(3)]
        await asyncio.sleep(0)
        reg.respond(rid, {"answer": "a"})
        return await asyncio.gather(*tasks)

    assert asyncio.run(main()) == [{"answer": "a"}] * 3


def test_all_list_is_most_recent_first() -> None:
    clock = _Clock()
    reg = RequestRegistry(clock=clock)
    first = reg.create("question", {})
    clock.now += 1
    second = reg.create("permission", {})
    reg.respond(first, {"answer": "x"})

    assert [r["id"] for r in reg.all_list()] == [second, first]
    assert [r["id"] for r in reg.pending_list()] == [second]


def test_sweep_expires_pending_with_kind_defaults() -> None:
    clock = _Clock()
    reg = RequestRegistry(expiry=60, clock=clock)
    perm = reg.create("permission", {})
    question = reg.create("question", {})
    note = reg.create("notification", {})
    resolved = []
    reg.add_listener(resolved.append)

    clock.now += 30
    assert reg.sweep() == (0, 0)

    clock.now += 31
    assert reg.sweep() == (3, 0)
    assert reg.get(perm).response == EXPIRED_PERMISSION_RESPONSE
    assert reg.get(question).response == EXPIRED_ANSWER_RESPONSE
    assert reg.get(note).response == EXPIRED_ANSWER_RESPONSE
    assert len(resolved) == 3


def test_sweep_purges_resolved_a_window_after_resolution() -> None:
    clock = _Clock()
    reg = RequestRegistry(expiry=60, clock=clock)
    rid = reg.create("question", {})

    clock.now += 61
    assert reg.sweep() == (1, 0)
    # Just resolved by the sweep: still visible
    assert reg.get(rid) is not None

    clock.now += 61
    assert reg.sweep() == (0, 1)
    assert reg.get(rid) is None
    assert len(reg) == 0


def test_sweep_wakes_waiters_with_expired_response() -> None:
    async def main():
        clock = _Clock()
        reg = RequestRegistry(expiry=60, clock=clock)
        rid = reg.create("permission", {})
        task = asyncio.create_task(reg.wait(rid))
        await asyncio.sleep(0)

        clock.now += 120
        reg.sweep()
        return await asyncio.wait_for(task, timeout=1)

    assert asyncio.run(main()) == EXPIRED_PERMISSION_RESPONSE


def test_sweep_loop_start_and_stop() -> None:
    async def main():
        clock = _Clock()
        reg = RequestRegistry(expiry=1, sweep_interval=0.01, clock=clock)
        rid = reg.create("question", {})
        clock.now += 5
        reg.start()
        await asyncio.sleep(0.1)
        await reg.stop()
        return reg.get(rid).status

    assert asyncio.run(main()) == "resolved"


def test_concurrent_responders_exactly_one_wins() -> None:
    clock = _Clock()
    reg = RequestRegistry(expiry=60, clock=clock)
    seen = []
    reg.add_listener(seen.append)
    rid = reg.create("permission", {})
    clock.now += 120

    start = threading.Barrier(9)
    results = []

    def human(i):
        start.wait()
        results.append(reg.respond(rid, {"decision": "allow", "by": i}))

    def sweeper():
        start.wait()
        expired, _ = reg.sweep()
        results.append(expired == 1)

    threads = [threading.Thread(target=human, args=(i,)) for i in range(8)]
    threads.append(threading.Thread(target=sweeper))
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert len(results) == 9
    assert results.count(True) == 1
    assert len(seen) == 1
    assert seen[0]["response"] == reg.get(rid).response
