"""
Aggregate root base with a buffer of pending domain events.
"""
from __future__ import annotations

from procurement.domain.events import DomainEvent


class AggregateRoot:
    """Aggregate root base.

    Mutators append events with ``_record_event``; the persistence
    orchestrator drains them once with ``pull_domain_events`` after a
    successful save. Rehydration from storage never records anything.
    """

    def __init__(self, id: str):
        self._id = id
        self._pending_events: list[DomainEvent] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def domain_events(self) -> list[DomainEvent]:
        """Pending events (copy)."""
        return list(self._pending_events)

    def has_pending_events(self) -> bool:
        return bool(self._pending_events)

    def pull_domain_events(self) -> list[DomainEvent]:
        """Return pending events and empty the buffer."""
        events = self._pending_events
        self._pending_events = []
        return events

    def clear_domain_events(self) -> None:
        self._pending_events = []

    def _record_event(self, event: DomainEvent) -> None:
        self._pending_events.append(event)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AggregateRoot):
            return NotImplemented
        return type(self) is type(other) and self._id == other._id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._id))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._id}>"
