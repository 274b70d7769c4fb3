from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.services.errors import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
)
from app.services.records import DataRecord, VerificationRecord

_VERIFICATION_COLUMNS = """
  id::text as id,
  inn,
  status,
  author_email,
  requested_data_types,
  created_at,
  updated_at
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def execute_script(self, sql: str) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(sql)

    async def insert_verification(self, record: VerificationRecord) -> VerificationRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into verifications (
                  id,
                  inn,
                  status,
                  author_email,
                  requested_data_types,
                  created_at,
                  updated_at
                )
                values ($1::uuid, $2, $3, $4, $5::text[], $6, $7)
                returning {_VERIFICATION_COLUMNS}
                """,
                record.id,
                record.inn,
                record.status,
                record.author_email,
                list(record.requested_data_types),
                record.created_at,
                record.updated_at,
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError(f"verification already exists: {record.id}") from exc
        return self._verification_row_to_record(row)

    async def delete_verification(self, verification_id: str) -> bool:
        pool = await self._get_pool()
        try:
            deleted = await pool.fetchval(
                "delete from verifications where id = $1::uuid returning id::text",
                verification_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return False
        return deleted is not None

    async def fetch_verification(self, verification_id: str) -> VerificationRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                select {_VERIFICATION_COLUMNS}
                from verifications
                where id = $1::uuid
                """,
                verification_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        if not row:
            return None
        return self._verification_row_to_record(row)

    async def fetch_verifications(self, limit: int | None, offset: int | None) -> list[VerificationRecord]:
        pool = await self._get_pool()
        # "limit null" and "offset null" leave that bound unapplied.
        rows = await pool.fetch(
            f"""
            select {_VERIFICATION_COLUMNS}
            from verifications
            order by created_at desc, id
            limit $1
            offset $2
            """,
            limit,
            offset,
        )
        return [self._verification_row_to_record(row) for row in rows]

    async def update_verification_status(
        self,
        verification_id: str,
        status: str,
    ) -> tuple[str, VerificationRecord] | None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    previous_status = await conn.fetchval(
                        "select status from verifications where id = $1::uuid for update",
                        verification_id,
                    )
                    if previous_status is None:
                        return None
                    row = await conn.fetchrow(
                        f"""
                        update verifications
                        set
                          status = $2,
                          updated_at = now()
                        where id = $1::uuid
                        returning {_VERIFICATION_COLUMNS}
                        """,
                        verification_id,
                        status,
                    )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        return previous_status, self._verification_row_to_record(row)

    async def insert_cache_entry(self, content_hash: str, payload: str) -> bool:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            return await self._insert_cache_entry(conn, content_hash, payload)

    async def fetch_cache_payload(self, content_hash: str) -> str | None:
        pool = await self._get_pool()
        return await pool.fetchval(
            "select payload from verification_data_cache where content_hash = $1",
            content_hash,
        )

    async def upsert_data_record(
        self,
        *,
        verification_id: str,
        data_type: str,
        content_hash: str,
        payload: str,
    ) -> DataRecord:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await self._insert_cache_entry(conn, content_hash, payload)
                    row = await conn.fetchrow(
                        """
                        insert into verification_data (
                          verification_id,
                          data_type,
                          content_hash
                        )
                        values ($1::uuid, $2, $3)
                        on conflict (verification_id, data_type)
                        do update set content_hash = excluded.content_hash
                        returning
                          verification_id::text as verification_id,
                          data_type,
                          content_hash,
                          created_at
                        """,
                        verification_id,
                        data_type,
                        content_hash,
                    )
        except (pg_exc.ForeignKeyViolationError, pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError(f"verification not found: {verification_id}") from exc
        return self._data_row_to_record(row)

    async def fetch_data_records(self, verification_id: str) -> list[DataRecord]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select
                  verification_id::text as verification_id,
                  data_type,
                  content_hash,
                  created_at
                from verification_data
                where verification_id = $1::uuid
                order by created_at asc, data_type asc
                """,
                verification_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return []
        return [self._data_row_to_record(row) for row in rows]

    @staticmethod
    async def _insert_cache_entry(conn: asyncpg.Connection, content_hash: str, payload: str) -> bool:
        inserted = await conn.fetchval(
            """
            insert into verification_data_cache (content_hash, payload)
            values ($1, $2)
            on conflict (content_hash) do nothing
            returning id::text
            """,
            content_hash,
            payload,
        )
        return inserted is not None

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("SG_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @classmethod
    def _verification_row_to_record(cls, row: asyncpg.Record) -> VerificationRecord:
        return VerificationRecord(
            id=row["id"],
            inn=row["inn"],
            status=row["status"],
            author_email=row["author_email"],
            requested_data_types=list(row["requested_data_types"] or []),
            created_at=cls._coerce_datetime(row["created_at"]),
            updated_at=cls._coerce_datetime(row["updated_at"]),
        )

    @classmethod
    def _data_row_to_record(cls, row: asyncpg.Record) -> DataRecord:
        return DataRecord(
            verification_id=row["verification_id"],
            data_type=row["data_type"],
            content_hash=row["content_hash"],
            created_at=cls._coerce_datetime(row["created_at"]),
        )

    @staticmethod
    def _coerce_datetime(value: Any) -> datetime:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value
        return datetime.now(timezone.utc)
