"""
Outbox worker: replays queued async events through the dispatcher.
"""
from __future__ import annotations

import logging

from django.db import transaction

from procurement import conf
from procurement.events.dispatcher import EventDispatcher
from procurement.infra.outbox import OutboxEvent, OutboxRepository


logger = logging.getLogger(__name__)


class OutboxProcessor:
    """Delivers pending outbox rows to synchronous listeners.

    Each row is handled in its own savepoint; a failing row is rolled back,
    its retry counter bumped, and it is picked up again on the next run
    until ``max_retries`` is reached. Delivery is at-least-once.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        outbox_repo: OutboxRepository | None = None,
        max_retries: int | None = None,
    ):
        self.dispatcher = dispatcher
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.max_retries = max_retries if max_retries is not None else conf.get_setting("OUTBOX_MAX_RETRIES")

    def process_outbox_events(self, limit: int | None = None, queue: str | None = None) -> int:
        """Process pending rows in enqueue order; return how many succeeded."""
        if limit is None:
            limit = conf.get_setting("OUTBOX_BATCH_SIZE")
        rows = self.outbox_repo.get_unprocessed_events(
            limit=limit,
            max_retries=self.max_retries,
            queue=queue,
        )
        processed_count = 0

        for row in rows:
            try:
                with transaction.atomic():
                    self._process_event(row)
                    self.outbox_repo.mark_processed(row.id)
            except Exception as e:
                self._handle_failure(row, e)
                continue
            processed_count += 1

        return processed_count

    def _process_event(self, row: OutboxEvent) -> None:
        event = row.to_message().to_event()
        self.dispatcher.dispatch_sync(event)

    def _handle_failure(self, row: OutboxEvent, error: Exception) -> None:
        message = f"{type(error).__name__}: {error}"
        self.outbox_repo.record_failure(row.id, message)
        attempts = row.retry_count + 1
        logger.error(
            "outbox_event_failed",
            extra={
                "event_id": row.event_id,
                "event_name": row.event_type,
                "retry_count": attempts,
                "error": message,
            },
        )
        if attempts >= self.max_retries:
            logger.warning(
                "outbox_event_abandoned",
                extra={
                    "event_id": row.event_id,
                    "event_name": row.event_type,
                    "retry_count": attempts,
                },
            )
