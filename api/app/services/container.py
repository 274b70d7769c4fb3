from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from starlette.requests import Request

from app.core.config import Settings
from app.messaging.bus import MessageBus
from app.messaging.consumer import VerificationEventConsumer
from app.messaging.memory import InMemoryMessageBus
from app.messaging.nats_bus import NatsMessageBus
from app.services.cache import ContentCache
from app.services.data_index import VerificationDataIndex
from app.services.lifecycle import LifecycleCoordinator
from app.services.migrations import apply_migrations
from app.services.queries import VerificationQueries
from app.services.repository import PostgresRepository
from app.services.store import InMemoryStore, VerificationStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    store: VerificationStore
    bus: MessageBus
    cache: ContentCache
    data_index: VerificationDataIndex
    coordinator: LifecycleCoordinator
    queries: VerificationQueries
    consumer: VerificationEventConsumer

    async def start(self, settings: Settings) -> None:
        if isinstance(self.store, PostgresRepository) and settings.run_migrations_on_startup:
            await apply_migrations(self.store, settings.migrations_dir)
        await self.consumer.start()

    async def close(self) -> None:
        try:
            await self.bus.close()
        finally:
            await self.store.close()


def build_store(settings: Settings) -> VerificationStore:
    if settings.storage_backend == "memory":
        logger.warning("using in-memory verification store; data is lost on restart")
        return InMemoryStore()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )


def build_bus(settings: Settings) -> MessageBus:
    if settings.message_bus == "memory":
        logger.warning("using in-memory message bus; no external worker will receive requests")
        return InMemoryMessageBus()
    return NatsMessageBus(
        settings.nats_url,
        name=settings.app_name,
        connect_timeout_seconds=settings.nats_connect_timeout_seconds,
        publish_timeout_seconds=settings.bus_publish_timeout_seconds,
    )


def build_services(
    settings: Settings,
    *,
    store: VerificationStore | None = None,
    bus: MessageBus | None = None,
) -> ServiceContainer:
    store = store if store is not None else build_store(settings)
    bus = bus if bus is not None else build_bus(settings)
    cache = ContentCache(store)
    data_index = VerificationDataIndex(store, cache)
    coordinator = LifecycleCoordinator(
        store,
        data_index,
        bus,
        create_topic=settings.verification_create_topic,
    )
    return ServiceContainer(
        store=store,
        bus=bus,
        cache=cache,
        data_index=data_index,
        coordinator=coordinator,
        queries=VerificationQueries(store, data_index),
        consumer=VerificationEventConsumer(
            bus,
            coordinator,
            completed_topic=settings.verification_completed_topic,
            data_topic=settings.verification_data_topic,
        ),
    )


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="services are not initialised")
    return services


def get_coordinator(services: ServiceContainer = Depends(get_services)) -> LifecycleCoordinator:
    return services.coordinator


def get_queries(services: ServiceContainer = Depends(get_services)) -> VerificationQueries:
    return services.queries
