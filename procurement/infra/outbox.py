"""
Transactional outbox: durable queue for async domain events.
"""
from __future__ import annotations

import logging

from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from procurement.events.queue import QueuedEvent
from procurement.infra.models import TimeStampedModel


logger = logging.getLogger(__name__)


class OutboxEvent(TimeStampedModel):
    """Serialized event waiting for the outbox worker."""
    id = models.BigAutoField(primary_key=True)
    event_id = models.CharField(max_length=64, db_index=True)
    event_type = models.CharField(max_length=100)
    queue = models.CharField(max_length=50)
    payload = models.TextField()
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    retry_count = models.IntegerField(default=0)
    last_error = models.TextField(blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=("processed", "created_at")),
            models.Index(fields=("queue", "processed")),
        ]

    def to_message(self) -> QueuedEvent:
        return QueuedEvent(
            event_id=self.event_id,
            event_type=self.event_type,
            queue=self.queue,
            payload=self.payload,
        )


class OutboxRepository:
    """Repository for outbox rows."""

    @transaction.atomic
    def add(self, message: QueuedEvent) -> int:
        """Store a queued event (joins the caller's transaction)."""
        row = OutboxEvent.objects.create(
            event_id=message.event_id,
            event_type=message.event_type,
            queue=message.queue,
            payload=message.payload,
        )
        return row.id

    def get_unprocessed_events(
        self,
        limit: int = 100,
        max_retries: int | None = None,
        queue: str | None = None,
    ) -> list[OutboxEvent]:
        """Pending rows in enqueue order."""
        rows = OutboxEvent.objects.filter(processed=False)
        if max_retries is not None:
            rows = rows.filter(retry_count__lt=max_retries)
        if queue is not None:
            rows = rows.filter(queue=queue)
        return list(rows.order_by("created_at", "id")[:limit])

    def mark_processed(self, row_id: int) -> None:
        OutboxEvent.objects.filter(id=row_id).update(
            processed=True,
            processed_at=timezone.now(),
            last_error="",
        )

    def record_failure(self, row_id: int, error: str) -> None:
        """Increment retry count and keep the latest error."""
        OutboxEvent.objects.filter(id=row_id).update(
            retry_count=F("retry_count") + 1,
            last_error=error,
        )

    def pending_count(self) -> int:
        return OutboxEvent.objects.filter(processed=False).count()


class OutboxEventQueue:
    """Queue backend writing async events to the outbox table."""

    def __init__(self, outbox_repo: OutboxRepository | None = None):
        self.outbox_repo = outbox_repo or OutboxRepository()

    def enqueue(self, message: QueuedEvent) -> None:
        row_id = self.outbox_repo.add(message)
        logger.info(
            "outbox_event_stored",
            extra={
                "event_id": message.event_id,
                "event_name": message.event_type,
                "queue": message.queue,
                "outbox_id": row_id,
            },
        )
