from __future__ import annotations

import logging
from typing import Any

from app.core.hashing import content_hash, encode_payload, is_json_text
from app.services.errors import RepositoryNotFoundError, RepositoryValidationError
from app.services.store import VerificationStore

logger = logging.getLogger(__name__)


class ContentCache:
    """Content-addressed payload storage.

    Entries are keyed by the SHA-256 digest of the exact payload text, so a
    payload is stored once no matter how many verifications reference it.
    Entries are never updated or deleted here.
    """

    def __init__(self, store: VerificationStore) -> None:
        self.store = store

    @staticmethod
    def prepare(payload: Any) -> tuple[str, str]:
        """Return ``(hash, text)`` for a payload without touching the store."""
        text = encode_payload(payload)
        if not is_json_text(text):
            raise RepositoryValidationError("payload must be valid JSON")
        return content_hash(text), text

    async def put(self, payload: Any) -> str:
        digest, text = self.prepare(payload)
        created = await self.store.insert_cache_entry(digest, text)
        if created:
            logger.debug("cache entry stored hash=%s bytes=%s", digest, len(text.encode("utf-8")))
        else:
            logger.debug("cache entry already present hash=%s", digest)
        return digest

    async def get(self, digest: str) -> str:
        payload = await self.store.fetch_cache_payload(digest)
        if payload is None:
            logger.error("data not found in cache hash=%s", digest)
            raise RepositoryNotFoundError(f"data not found in cache for hash {digest}")
        logger.debug("data retrieved from cache hash=%s", digest)
        return payload
