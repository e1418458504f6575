# pricesync/services/queue_consumer.py

"""Drain single-listing refresh requests from an SQS queue."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from pricesync.config.settings import Settings
from pricesync.errors import ConfigurationError, InfrastructureFailure
from pricesync.models.sync_job import RunSummary, SyncJob, SyncReason
from pricesync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger("pricesync.queue")

# Accepted message keys, newest first
_IDENTIFIER_KEYS: tuple[str, ...] = ("identifier", "asin")


@dataclass(frozen=True)
class QueueMessage:
    """One received message and the handle needed to acknowledge it."""

    message_id: str
    receipt_handle: str
    body: str

    def identifier(self) -> str | None:
        """Return the listing identifier, or None for a malformed body."""
        try:
            payload = json.loads(self.body)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(payload, dict):
            return None
        for key in _IDENTIFIER_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


class SqsQueueClient:
    """Thin boto3 wrapper; every AWS error becomes InfrastructureFailure."""

    def __init__(
        self,
        queue_url: str | None = None,
        settings: Settings | None = None,
        client: Any = None,
    ) -> None:
        self.settings = settings or Settings()
        self.queue_url = queue_url or self.settings.AWS_QUEUE_URL
        if not self.queue_url:
            raise ConfigurationError("AWS_QUEUE_URL is not set")
        self._client = client or boto3.client(
            "sqs", region_name=self.settings.AWS_REGION,
        )

    def receive(self) -> list[QueueMessage]:
        """Long-poll for up to ``QUEUE_MAX_MESSAGES`` messages."""
        try:
            response = self._client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=self.settings.QUEUE_MAX_MESSAGES,
                WaitTimeSeconds=self.settings.QUEUE_WAIT_SECONDS,
            )
        except (BotoCoreError, ClientError) as exc:
            raise InfrastructureFailure(f"queue receive failed: {exc}") from exc
        return [
            QueueMessage(
                message_id=str(raw.get("MessageId", "")),
                receipt_handle=str(raw.get("ReceiptHandle", "")),
                body=str(raw.get("Body", "")),
            )
            for raw in response.get("Messages", [])
        ]

    def delete(self, message: QueueMessage) -> None:
        """Acknowledge a message so it is not redelivered."""
        try:
            self._client.delete_message(
                QueueUrl=self.queue_url,
                ReceiptHandle=message.receipt_handle,
            )
        except (BotoCoreError, ClientError) as exc:
            raise InfrastructureFailure(
                f"queue delete failed for {message.message_id}: {exc}"
            ) from exc


class QueueConsumer:
    """Feeds queued identifiers through the orchestrator, one at a time.

    A message is deleted only after its identifier reached a commit or
    a soft failure.  Malformed messages are deleted and dropped.  An
    :class:`InfrastructureFailure` stops the drain and leaves the
    in-flight message on the queue.
    """

    def __init__(
        self,
        queue: SqsQueueClient,
        orchestrator: SyncOrchestrator,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.queue = queue
        self.orchestrator = orchestrator
        self._sleep = sleep

    async def _handle(self, message: QueueMessage) -> RunSummary:
        identifier = message.identifier()
        if identifier is None:
            logger.warning(
                "Dropping malformed message %s: %r",
                message.message_id,
                message.body[:200],
            )
            await asyncio.to_thread(self.queue.delete, message)
            return RunSummary()

        summary = await self.orchestrator.process(
            SyncJob(identifier, SyncReason.QUEUE)
        )
        await asyncio.to_thread(self.queue.delete, message)
        logger.info(
            "[%s] message %s acknowledged", identifier, message.message_id,
        )
        return summary

    async def drain(self) -> RunSummary:
        """Receive and process until the queue comes back empty."""
        summary = RunSummary()
        received = 0
        async with self.orchestrator.running():
            while not self.orchestrator.cancelled:
                messages = await asyncio.to_thread(self.queue.receive)
                if not messages:
                    logger.info("Queue empty after %d messages", received)
                    break
                received += len(messages)
                for message in messages:
                    if self.orchestrator.cancelled:
                        break
                    summary.merge(await self._handle(message))
                await self._sleep(self.settings.QUEUE_BATCH_DELAY)
        summary.cancelled = self.orchestrator.cancelled
        self.orchestrator.log_summary(summary)
        return summary
