from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from typing import TypeVar

import pytest

from app.core.config import Settings
from app.services.container import ServiceContainer, build_services
from app.services.repository import PostgresRepository

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("SG_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require SG_DATABASE_URL or DATABASE_URL")
    return url


def _run(database_url: str, scenario: Callable[[ServiceContainer], Awaitable[T]]) -> T:
    settings = Settings(
        storage_backend="postgres",
        message_bus="memory",
        database_url=database_url,
        run_migrations_on_startup=True,
        otel_enabled=False,
    )

    async def runner() -> T:
        services = build_services(settings)
        try:
            await services.start(settings)
            await services.store.execute_script(
                "truncate table verification_data, verification_data_cache, verifications cascade"
            )
            return await scenario(services)
        finally:
            await services.close()

    return asyncio.run(runner())


def test_migrations_are_rerunnable_and_store_is_postgres(database_url: str) -> None:
    async def scenario(services: ServiceContainer) -> list[str]:
        from app.services.migrations import apply_migrations

        assert isinstance(services.store, PostgresRepository)
        return await apply_migrations(services.store)

    applied = _run(database_url, scenario)
    assert applied == ["001_init.sql", "002_add_data_cache.sql", "003_add_verification_data.sql"]


def test_cache_put_is_idempotent_and_byte_exact(database_url: str) -> None:
    payload = '{ "name" : "Ромашка",  "n": 1 }'

    async def scenario(services: ServiceContainer):
        first = await services.cache.put(payload)
        second = await services.cache.put(payload)
        stored = await services.cache.get(first)
        pool = await services.store._get_pool()
        count = await pool.fetchval("select count(*) from verification_data_cache")
        return first, second, stored, count

    first, second, stored, count = _run(database_url, scenario)
    assert first == second
    assert stored == payload
    assert count == 1


def test_data_upsert_keeps_one_row_per_type_and_cascades(database_url: str) -> None:
    async def scenario(services: ServiceContainer):
        record = await services.coordinator.create_verification(
            "1234567890",
            ["BASIC_INFORMATION"],
            "analyst@example.com",
        )
        first = await services.data_index.upsert(record.id, "BASIC_INFORMATION", {"name": "Acme"})
        second = await services.data_index.upsert(record.id, "BASIC_INFORMATION", {"name": "Acme LLC"})
        await asyncio.gather(
            *(services.data_index.upsert(record.id, "ACTIVITIES", {"revision": index}) for index in range(5))
        )
        rows = await services.store.fetch_data_records(record.id)
        result = await services.queries.get_with_typed_view(record.id)

        await services.store.delete_verification(record.id)
        pool = await services.store._get_pool()
        remaining = await pool.fetchval("select count(*) from verification_data")
        cached = await pool.fetchval("select count(*) from verification_data_cache")
        return first, second, rows, result, remaining, cached

    first, second, rows, result, remaining, cached = _run(database_url, scenario)
    assert first.created_at == second.created_at
    assert sorted(row.data_type for row in rows) == ["ACTIVITIES", "BASIC_INFORMATION"]
    assert result.fields["basic_information"] == {"name": "Acme LLC"}
    assert result.fields["activities"]["revision"] in range(5)
    assert remaining == 0
    assert cached == 7


def test_status_updates_and_pagination(database_url: str) -> None:
    async def scenario(services: ServiceContainer):
        from app.messaging.messages import VerificationCompletedMessage

        created = []
        for inn in ("1111111111", "2222222222", "3333333333"):
            created.append(await services.coordinator.create_verification(inn, ["ACTIVITIES"], "a@example.com"))
        await services.coordinator.apply_completion(
            VerificationCompletedMessage(verification_id=created[0].id, status="COMPANY_NOT_FOUND")
        )
        unknown = await services.coordinator.apply_completion(
            VerificationCompletedMessage(verification_id="not-a-uuid", status="COMPLETED")
        )
        page = await services.queries.list_verifications(limit=2, offset=1)
        refreshed = await services.queries.get(created[0].id)
        return created, unknown, page, refreshed

    created, unknown, page, refreshed = _run(database_url, scenario)
    assert unknown is False
    assert refreshed.verification.status == "COMPANY_NOT_FOUND"
    assert refreshed.verification.updated_at >= created[0].updated_at
    assert [record.inn for record in page] == ["2222222222", "1111111111"]
