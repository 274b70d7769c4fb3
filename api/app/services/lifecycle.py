from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import uuid4

from app.core.hashing import encode_value
from app.messaging.bus import MessageBus, MessageBusError
from app.messaging.messages import (
    CreateVerificationMessage,
    VerificationCompletedMessage,
    VerificationDataMessage,
)
from app.services.data_index import VerificationDataIndex
from app.services.errors import RepositoryNotFoundError, RepositoryValidationError
from app.services.records import DATA_TYPES, INITIAL_STATUS, TERMINAL_STATUSES, VerificationRecord
from app.services.store import VerificationStore

logger = logging.getLogger(__name__)

INN_LENGTHS = {10, 12}


class LifecycleCoordinator:
    """Creates verifications and applies the notifications the external worker sends back.

    Status updates are last-writer-wins: notifications carry no sequence number,
    so a stale notification delivered late overwrites a newer status.
    """

    def __init__(
        self,
        store: VerificationStore,
        data_index: VerificationDataIndex,
        bus: MessageBus,
        *,
        create_topic: str,
    ) -> None:
        self.store = store
        self.data_index = data_index
        self.bus = bus
        self.create_topic = create_topic

    async def create_verification(
        self,
        inn: str,
        requested_data_types: Iterable[str],
        author_email: str,
    ) -> VerificationRecord:
        requested = self._validate_request(inn, requested_data_types)

        now = datetime.now(timezone.utc)
        record = await self.store.insert_verification(
            VerificationRecord(
                id=str(uuid4()),
                inn=inn,
                status=INITIAL_STATUS,
                author_email=author_email,
                requested_data_types=requested,
                created_at=now,
                updated_at=now,
            )
        )

        message = CreateVerificationMessage(
            verification_id=record.id,
            inn=record.inn,
            requested_types=record.requested_data_types,
            author_email=record.author_email,
        )
        try:
            await self.bus.publish(self.create_topic, message.model_dump_json().encode("utf-8"))
        except MessageBusError as exc:
            logger.error("failed to publish verification request verification_id=%s error=%s", record.id, exc)
            await asyncio.shield(self._discard_unpublished(record.id, exc))
            raise MessageBusError(f"failed to publish verification request: {exc}") from exc
        except BaseException as exc:
            # Cancellation or an unexpected bus error: the request never reached the worker.
            logger.error("verification request not published verification_id=%s error=%r", record.id, exc)
            await asyncio.shield(self._discard_unpublished(record.id, exc))
            raise

        logger.info("verification request published verification_id=%s inn=%s", record.id, record.inn)
        return record

    async def apply_completion(self, message: VerificationCompletedMessage) -> bool:
        result = await self.store.update_verification_status(message.verification_id, message.status)
        if result is None:
            logger.warning(
                "completion notification for unknown verification dropped verification_id=%s status=%s",
                message.verification_id,
                message.status,
            )
            return False

        previous_status, record = result
        if previous_status in TERMINAL_STATUSES and previous_status != record.status:
            logger.warning(
                "terminal status overwritten verification_id=%s from=%s to=%s",
                record.id,
                previous_status,
                record.status,
            )
        if message.error:
            logger.warning("verification reported error verification_id=%s error=%s", record.id, message.error)
        logger.info(
            "verification status updated verification_id=%s from=%s to=%s",
            record.id,
            previous_status,
            record.status,
        )
        return True

    async def apply_data(self, message: VerificationDataMessage) -> bool:
        try:
            # Decoded value: a string payload is stored as a JSON string, not as raw text.
            await self.data_index.upsert(message.verification_id, message.data_type, encode_value(message.data))
        except RepositoryNotFoundError:
            logger.warning(
                "data notification for unknown verification dropped verification_id=%s data_type=%s",
                message.verification_id,
                message.data_type,
            )
            return False
        return True

    @staticmethod
    def _validate_request(inn: str, requested_data_types: Iterable[str]) -> list[str]:
        if not inn:
            raise RepositoryValidationError("inn cannot be empty")

        requested: list[str] = []
        for data_type in requested_data_types:
            if data_type not in DATA_TYPES:
                raise RepositoryValidationError(f"unknown data type: {data_type}")
            if data_type not in requested:
                requested.append(data_type)
        if not requested:
            raise RepositoryValidationError("at least one data type must be requested")

        if len(inn) not in INN_LENGTHS:
            raise RepositoryValidationError(f"inn must be 10 or 12 digits, got {len(inn)}")
        return requested

    async def _discard_unpublished(self, verification_id: str, cause: Exception) -> None:
        try:
            await self.store.delete_verification(verification_id)
        except Exception as exc:
            logger.exception("failed to discard unpublished verification verification_id=%s", verification_id)
            raise MessageBusError(
                f"failed to publish verification request ({cause}); verification {verification_id} is orphaned"
            ) from exc
