from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from app.messaging.bus import MessageBusError, MessageHandler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PublishedMessage:
    topic: str
    payload: bytes


class InMemoryMessageBus:
    """Synchronous in-process bus: ``publish`` awaits every subscriber before returning."""

    def __init__(self) -> None:
        self.published: list[PublishedMessage] = []
        self._handlers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._closed = False

    async def publish(self, topic: str, payload: bytes) -> None:
        if self._closed:
            raise MessageBusError("message bus is closed")
        self.published.append(PublishedMessage(topic=topic, payload=payload))
        for handler in list(self._handlers.get(topic, ())):
            try:
                await handler(payload)
            except Exception:
                # Subscribers have no way to report back to the publisher.
                logger.exception("message handler failed topic=%s", topic)

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        if self._closed:
            raise MessageBusError("message bus is closed")
        self._handlers[topic].append(handler)

    async def close(self) -> None:
        self._closed = True
        self._handlers.clear()

    def messages(self, topic: str) -> list[bytes]:
        return [message.payload for message in self.published if message.topic == topic]
