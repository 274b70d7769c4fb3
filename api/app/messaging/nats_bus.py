from __future__ import annotations

import asyncio
import logging

import nats
from nats.aio.client import Client
from nats.aio.msg import Msg
from nats.errors import Error as NatsError

from app.messaging.bus import MessageBusError, MessageHandler

logger = logging.getLogger(__name__)


class NatsMessageBus:
    def __init__(
        self,
        url: str,
        *,
        name: str,
        connect_timeout_seconds: float = 5.0,
        publish_timeout_seconds: float = 5.0,
    ) -> None:
        self.url = url
        self.name = name
        self.connect_timeout_seconds = connect_timeout_seconds
        self.publish_timeout_seconds = publish_timeout_seconds
        self._conn: Client | None = None
        self._connect_lock = asyncio.Lock()

    async def publish(self, topic: str, payload: bytes) -> None:
        conn = await self._get_connection()
        try:
            await conn.publish(topic, payload)
            # Flush so a dead connection fails the publish instead of buffering silently.
            await conn.flush(timeout=self.publish_timeout_seconds)
        except (NatsError, asyncio.TimeoutError) as exc:
            logger.error("failed to publish message topic=%s error=%s", topic, exc)
            raise MessageBusError(f"failed to publish to {topic}: {exc}") from exc
        logger.debug("message published topic=%s bytes=%s", topic, len(payload))

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        conn = await self._get_connection()

        async def _dispatch(msg: Msg) -> None:
            try:
                await handler(msg.data)
            except Exception:
                logger.exception("message handler failed topic=%s", msg.subject)

        try:
            await conn.subscribe(topic, cb=_dispatch)
        except NatsError as exc:
            logger.error("failed to subscribe topic=%s error=%s", topic, exc)
            raise MessageBusError(f"failed to subscribe to {topic}: {exc}") from exc
        logger.info("subscribed topic=%s", topic)

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.drain()
        except NatsError as exc:  # pragma: no cover - depends on broker state
            logger.warning("nats drain failed: %s", exc)
            await conn.close()
        logger.info("NATS connection closed")

    async def _get_connection(self) -> Client:
        if self._conn is not None and not self._conn.is_closed:
            return self._conn

        async with self._connect_lock:
            if self._conn is not None and not self._conn.is_closed:
                return self._conn
            try:
                self._conn = await nats.connect(
                    servers=[self.url],
                    name=self.name,
                    connect_timeout=self.connect_timeout_seconds,
                    allow_reconnect=True,
                )
            except (NatsError, OSError, asyncio.TimeoutError) as exc:  # pragma: no cover - depends on environment
                raise MessageBusError(f"failed to connect to NATS at {self.url}") from exc
            logger.info("connected to NATS url=%s", self.url)
            return self._conn
