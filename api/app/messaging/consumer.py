from __future__ import annotations

import logging

from opentelemetry import trace
from pydantic import ValidationError

from app.messaging.bus import MessageBus
from app.messaging.messages import VerificationCompletedMessage, VerificationDataMessage
from app.services.errors import RepositoryError
from app.services.lifecycle import LifecycleCoordinator

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class VerificationEventConsumer:
    """Feeds worker notifications into the coordinator.

    Undecodable messages and store failures are logged and dropped; the
    producer gets no acknowledgement either way.
    """

    def __init__(
        self,
        bus: MessageBus,
        coordinator: LifecycleCoordinator,
        *,
        completed_topic: str,
        data_topic: str,
    ) -> None:
        self.bus = bus
        self.coordinator = coordinator
        self.completed_topic = completed_topic
        self.data_topic = data_topic

    async def start(self) -> None:
        await self.bus.subscribe(self.completed_topic, self.handle_completed)
        await self.bus.subscribe(self.data_topic, self.handle_data)
        logger.info(
            "verification event consumer started completed_topic=%s data_topic=%s",
            self.completed_topic,
            self.data_topic,
        )

    async def handle_completed(self, payload: bytes) -> None:
        with tracer.start_as_current_span("bus.verification_completed") as span:
            try:
                message = VerificationCompletedMessage.model_validate_json(payload)
            except ValidationError as exc:
                logger.error("failed to decode verification completed message: %s", _summarize(exc))
                return

            span.set_attribute("verification.id", message.verification_id)
            span.set_attribute("verification.status", message.status)
            try:
                await self.coordinator.apply_completion(message)
            except RepositoryError as exc:
                logger.error(
                    "failed to apply verification completed message verification_id=%s error=%s",
                    message.verification_id,
                    exc,
                )

    async def handle_data(self, payload: bytes) -> None:
        with tracer.start_as_current_span("bus.verification_data") as span:
            try:
                message = VerificationDataMessage.model_validate_json(payload)
            except ValidationError as exc:
                logger.error("failed to decode verification data message: %s", _summarize(exc))
                return

            span.set_attribute("verification.id", message.verification_id)
            span.set_attribute("verification.data_type", message.data_type)
            try:
                await self.coordinator.apply_data(message)
            except RepositoryError as exc:
                logger.error(
                    "failed to apply verification data message verification_id=%s data_type=%s error=%s",
                    message.verification_id,
                    message.data_type,
                    exc,
                )


def _summarize(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}" for error in exc.errors()
    )
