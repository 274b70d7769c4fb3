from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

MessageHandler = Callable[[bytes], Awaitable[None]]


class MessageBusError(Exception):
    """Raised when a publish or subscribe call cannot be completed."""


class MessageBus(Protocol):
    async def publish(self, topic: str, payload: bytes) -> None: ...

    async def subscribe(self, topic: str, handler: MessageHandler) -> None: ...

    async def close(self) -> None: ...
