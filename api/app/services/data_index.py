from __future__ import annotations

import json
import logging
from typing import Any

from app.services.cache import ContentCache
from app.services.errors import RepositoryNotFoundError, RepositoryValidationError
from app.services.records import DATA_TYPES, DataListing, DataRecord, VerificationDataItem
from app.services.store import VerificationStore

logger = logging.getLogger(__name__)


class VerificationDataIndex:
    """One data record per (verification, data type), pointing into the content cache."""

    def __init__(self, store: VerificationStore, cache: ContentCache) -> None:
        self.store = store
        self.cache = cache

    async def upsert(self, verification_id: str, data_type: str, payload: Any) -> DataRecord:
        if data_type not in DATA_TYPES:
            raise RepositoryValidationError(f"unknown data type: {data_type}")
        digest, text = self.cache.prepare(payload)
        # Cache entry and record are written in one transaction by the store.
        record = await self.store.upsert_data_record(
            verification_id=verification_id,
            data_type=data_type,
            content_hash=digest,
            payload=text,
        )
        logger.info(
            "verification data stored verification_id=%s data_type=%s hash=%s",
            verification_id,
            data_type,
            digest,
        )
        return record

    async def list_by_verification(self, verification_id: str) -> DataListing:
        listing = DataListing()
        for record in await self.store.fetch_data_records(verification_id):
            try:
                payload = await self.cache.get(record.content_hash)
            except RepositoryNotFoundError:
                logger.error(
                    "dangling data reference verification_id=%s data_type=%s hash=%s",
                    verification_id,
                    record.data_type,
                    record.content_hash,
                )
                listing.missing.append(record)
                continue
            try:
                data = json.loads(payload)
            except ValueError:
                logger.error(
                    "cached payload is not valid JSON verification_id=%s data_type=%s hash=%s",
                    verification_id,
                    record.data_type,
                    record.content_hash,
                )
                listing.missing.append(record)
                continue
            listing.items.append(
                VerificationDataItem(
                    data_type=record.data_type,
                    payload=payload,
                    content_hash=record.content_hash,
                    created_at=record.created_at,
                    data=data,
                )
            )
        return listing
