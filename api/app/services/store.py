from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from app.services.errors import RepositoryConflictError, RepositoryNotFoundError
from app.services.records import DataRecord, VerificationRecord


class VerificationStore(Protocol):
    """Row-level persistence used by the cache, the data index and the coordinator."""

    async def close(self) -> None: ...

    async def insert_verification(self, record: VerificationRecord) -> VerificationRecord: ...

    async def delete_verification(self, verification_id: str) -> bool: ...

    async def fetch_verification(self, verification_id: str) -> VerificationRecord | None: ...

    async def fetch_verifications(self, limit: int | None, offset: int | None) -> list[VerificationRecord]: ...

    async def update_verification_status(
        self,
        verification_id: str,
        status: str,
    ) -> tuple[str, VerificationRecord] | None: ...

    async def insert_cache_entry(self, content_hash: str, payload: str) -> bool: ...

    async def fetch_cache_payload(self, content_hash: str) -> str | None: ...

    async def upsert_data_record(
        self,
        *,
        verification_id: str,
        data_type: str,
        content_hash: str,
        payload: str,
    ) -> DataRecord: ...

    async def fetch_data_records(self, verification_id: str) -> list[DataRecord]: ...


class InMemoryStore:
    """Process-local store for local runs and tests; mirrors the Postgres constraints."""

    def __init__(self) -> None:
        self.verifications: dict[str, VerificationRecord] = {}
        self.cache: dict[str, tuple[str, datetime]] = {}
        self.data: dict[tuple[str, str], DataRecord] = {}
        self._order: dict[object, int] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    async def insert_verification(self, record: VerificationRecord) -> VerificationRecord:
        async with self._lock:
            if record.id in self.verifications:
                raise RepositoryConflictError(f"verification already exists: {record.id}")
            stored = replace(record, requested_data_types=list(record.requested_data_types))
            self.verifications[record.id] = stored
            self._order[record.id] = next(self._sequence)
            return replace(stored)

    async def delete_verification(self, verification_id: str) -> bool:
        async with self._lock:
            if self.verifications.pop(verification_id, None) is None:
                return False
            self._order.pop(verification_id, None)
            # Data records are owned by the verification; cache entries are shared and stay.
            for key in [key for key in self.data if key[0] == verification_id]:
                del self.data[key]
                self._order.pop(key, None)
            return True

    async def fetch_verification(self, verification_id: str) -> VerificationRecord | None:
        record = self.verifications.get(verification_id)
        return replace(record) if record is not None else None

    async def fetch_verifications(self, limit: int | None, offset: int | None) -> list[VerificationRecord]:
        rows = sorted(
            self.verifications.values(),
            key=lambda record: (record.created_at, self._order.get(record.id, 0)),
            reverse=True,
        )
        start = offset or 0
        end = start + limit if limit is not None else None
        return [replace(record) for record in rows[start:end]]

    async def update_verification_status(
        self,
        verification_id: str,
        status: str,
    ) -> tuple[str, VerificationRecord] | None:
        async with self._lock:
            record = self.verifications.get(verification_id)
            if record is None:
                return None
            previous_status = record.status
            record.status = status
            record.updated_at = datetime.now(timezone.utc)
            return previous_status, replace(record)

    async def insert_cache_entry(self, content_hash: str, payload: str) -> bool:
        async with self._lock:
            return self._insert_cache_entry(content_hash, payload)

    async def fetch_cache_payload(self, content_hash: str) -> str | None:
        entry = self.cache.get(content_hash)
        return entry[0] if entry is not None else None

    async def upsert_data_record(
        self,
        *,
        verification_id: str,
        data_type: str,
        content_hash: str,
        payload: str,
    ) -> DataRecord:
        async with self._lock:
            if verification_id not in self.verifications:
                raise RepositoryNotFoundError(f"verification not found: {verification_id}")
            self._insert_cache_entry(content_hash, payload)
            key = (verification_id, data_type)
            existing = self.data.get(key)
            if existing is not None:
                existing.content_hash = content_hash
                return replace(existing)
            record = DataRecord(
                verification_id=verification_id,
                data_type=data_type,
                content_hash=content_hash,
                created_at=datetime.now(timezone.utc),
            )
            self.data[key] = record
            self._order[key] = next(self._sequence)
            return replace(record)

    async def fetch_data_records(self, verification_id: str) -> list[DataRecord]:
        rows = [record for key, record in self.data.items() if key[0] == verification_id]
        rows.sort(key=lambda record: (record.created_at, self._order.get((verification_id, record.data_type), 0)))
        return [replace(record) for record in rows]

    def _insert_cache_entry(self, content_hash: str, payload: str) -> bool:
        if content_hash in self.cache:
            return False
        self.cache[content_hash] = (payload, datetime.now(timezone.utc))
        return True
