"""
Built-in listeners.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from decimal import Decimal

from procurement.domain.events import (
    DomainEvent,
    InquiryCreated,
    OrderCreated,
    OrderStatusChanged,
)
from procurement.events.listener import Listener


class LoggingListener(Listener):
    """Writes a structured log line for every event it sees."""

    priority = 1

    def handle(self, event: DomainEvent) -> None:
        self._log(
            event,
            "domain_event_received",
            is_async=event.is_async,
            priority=event.priority,
        )


class StatisticsListener(Listener):
    """In-memory counters for created orders and inquiries."""

    priority = 5
    supported_events = frozenset({
        OrderCreated.event_type,
        OrderStatusChanged.event_type,
        InquiryCreated.event_type,
    })

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.counts: Counter[str] = Counter()
        self.revenue: defaultdict[str, Decimal] = defaultdict(Decimal)
        self.cancelled_orders = 0

    def handle(self, event: DomainEvent) -> None:
        self.counts[event.event_type] += 1
        if isinstance(event, OrderCreated):
            self.revenue[event.currency] += event.total_amount
        elif isinstance(event, OrderStatusChanged) and event.is_cancellation():
            self.cancelled_orders += 1

    @property
    def orders_created(self) -> int:
        return self.counts[OrderCreated.event_type]

    @property
    def inquiries_created(self) -> int:
        return self.counts[InquiryCreated.event_type]

    def snapshot(self) -> dict:
        return {
            "orders_created": self.orders_created,
            "inquiries_created": self.inquiries_created,
            "cancelled_orders": self.cancelled_orders,
            "revenue": {currency: str(amount) for currency, amount in self.revenue.items()},
        }

    def reset(self) -> None:
        self.counts.clear()
        self.revenue.clear()
        self.cancelled_orders = 0
