import asyncio
import json
import pytest

from livepatch.preview.observer_registry import Observer, ObserverRegistry, ObserverState
from tests.conftest import FakeTransport, open_observer


class TestObserver:
    @pytest.mark.asyncio
    async def test_send_requires_open_state(self):
        transport = FakeTransport()
        observer = Observer(transport)

        assert observer.state is ObserverState.CONNECTING
        assert await observer.send("hello") is False

        observer.mark_open()
        assert await observer.send("hello") is True
        assert transport.sent == ["hello"]

    @pytest.mark.asyncio
    async def test_closed_is_terminal(self):
        observer = Observer(FakeTransport())
        observer.mark_open()
        observer.mark_closed()
        observer.mark_open()

        assert observer.state is ObserverState.CLOSED
        assert await observer.send("late") is False


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_only_open_observers_receive(self, registry):
        open_transports = [FakeTransport() for _ in range(3)]
        for transport in open_transports:
            open_observer(registry, transport)
        closed = FakeTransport()
        open_observer(registry, closed).mark_closed()
        pending = FakeTransport()
        registry.add(Observer(pending))

        delivered = await registry.broadcast({"type": "file-update", "data": {"filePath": "a.tsx", "content": "x"}})

        assert delivered == 3
        for transport in open_transports:
            assert [json.loads(m)["data"]["content"] for m in transport.sent] == ["x"]
        assert closed.sent == []
        assert pending.sent == []

    @pytest.mark.asyncio
    async def test_failed_send_does_not_stop_fanout(self, registry):
        good = [FakeTransport() for _ in range(2)]
        open_observer(registry, good[0])
        broken = open_observer(registry, FakeTransport(error=OSError("socket reset")))
        open_observer(registry, good[1])

        delivered = await registry.broadcast({"type": "code-update"})

        assert delivered == 2
        assert all(len(transport.sent) == 1 for transport in good)
        assert broken.state is ObserverState.CLOSED

    @pytest.mark.asyncio
    async def test_slow_observer_times_out_without_blocking_others(self):
        registry = ObserverRegistry(send_timeout=0.05)
        fast = FakeTransport()
        open_observer(registry, fast)
        open_observer(registry, FakeTransport(delay=1.0))

        delivered = await asyncio.wait_for(registry.broadcast({"type": "code-update"}), timeout=0.5)

        assert delivered == 1
        assert len(fast.sent) == 1

    @pytest.mark.asyncio
    async def test_observer_removed_during_broadcast(self, registry):
        observers = [open_observer(registry, FakeTransport(delay=0.01)) for _ in range(3)]

        broadcast = asyncio.create_task(registry.broadcast({"type": "code-update"}))
        await asyncio.sleep(0)
        registry.remove(observers[0])
        delivered = await broadcast

        assert delivered in (2, 3)
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_no_observers(self, registry):
        assert await registry.broadcast({"type": "code-update"}) == 0

    def test_remove_marks_closed(self, registry):
        observer = open_observer(registry)
        registry.remove(observer)
        registry.remove(observer)

        assert observer.state is ObserverState.CLOSED
        assert registry.open_observers() == []
