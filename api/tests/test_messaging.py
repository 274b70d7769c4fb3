from __future__ import annotations

import asyncio

import pytest

from app.messaging.bus import MessageBusError
from app.messaging.memory import InMemoryMessageBus
from app.messaging.nats_bus import NatsMessageBus


class FakeNatsConnection:
    def __init__(self, flush_error: Exception | None = None) -> None:
        self.is_closed = False
        self.published: list[tuple[str, bytes]] = []
        self.flush_error = flush_error
        self.drained = False

    async def publish(self, subject: str, payload: bytes) -> None:
        self.published.append((subject, payload))

    async def flush(self, timeout: float) -> None:
        if self.flush_error is not None:
            raise self.flush_error

    async def drain(self) -> None:
        self.drained = True


def _bus_with(conn: FakeNatsConnection) -> NatsMessageBus:
    bus = NatsMessageBus("nats://localhost:4222", name="test", publish_timeout_seconds=0.1)
    bus._conn = conn  # type: ignore[assignment]
    return bus


def test_nats_publish_flushes_to_confirm_delivery() -> None:
    conn = FakeNatsConnection()
    bus = _bus_with(conn)

    asyncio.run(bus.publish("verification.create", b"{}"))

    assert conn.published == [("verification.create", b"{}")]


def test_nats_publish_timeout_becomes_bus_error() -> None:
    bus = _bus_with(FakeNatsConnection(flush_error=asyncio.TimeoutError()))

    with pytest.raises(MessageBusError, match="failed to publish to verification.create"):
        asyncio.run(bus.publish("verification.create", b"{}"))


def test_nats_close_drains_connection_once() -> None:
    conn = FakeNatsConnection()
    bus = _bus_with(conn)

    async def scenario() -> None:
        await bus.close()
        await bus.close()

    asyncio.run(scenario())
    assert conn.drained is True


def test_memory_bus_isolates_failing_subscribers(caplog: pytest.LogCaptureFixture) -> None:
    received: list[bytes] = []

    async def broken(payload: bytes) -> None:
        raise RuntimeError("boom")

    async def recorder(payload: bytes) -> None:
        received.append(payload)

    async def scenario() -> InMemoryMessageBus:
        bus = InMemoryMessageBus()
        await bus.subscribe("verification.data", broken)
        await bus.subscribe("verification.data", recorder)
        await bus.publish("verification.data", b"payload")
        return bus

    bus = asyncio.run(scenario())
    assert received == [b"payload"]
    assert bus.messages("verification.data") == [b"payload"]
    assert "message handler failed topic=verification.data" in caplog.text


def test_memory_bus_rejects_publish_after_close() -> None:
    async def scenario() -> None:
        bus = InMemoryMessageBus()
        await bus.close()
        await bus.publish("verification.create", b"{}")

    with pytest.raises(MessageBusError, match="closed"):
        asyncio.run(scenario())
