"""
Queue collaborator contract for asynchronous events.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from procurement.domain.events import DomainEvent

HIGH_PRIORITY_QUEUE = "events-high"
MEDIUM_PRIORITY_QUEUE = "events-medium"
LOW_PRIORITY_QUEUE = "events-low"


def queue_for_priority(priority: int) -> str:
    """Pick a queue name from the event priority."""
    if priority >= 10:
        return HIGH_PRIORITY_QUEUE
    if priority >= 5:
        return MEDIUM_PRIORITY_QUEUE
    return LOW_PRIORITY_QUEUE


@dataclass(frozen=True)
class QueuedEvent:
    """Serialized event plus routing keys, as handed to a queue."""
    event_id: str
    event_type: str
    queue: str
    payload: str

    @classmethod
    def from_event(cls, event: DomainEvent) -> QueuedEvent:
        return cls(
            event_id=event.event_id,
            event_type=event.event_type,
            queue=queue_for_priority(event.priority),
            payload=event.serialize(),
        )

    def to_event(self) -> DomainEvent:
        return DomainEvent.deserialize(self.payload)


@runtime_checkable
class EventQueue(Protocol):
    """Accepts async events for later execution."""

    def enqueue(self, message: QueuedEvent) -> None:
        ...


class InMemoryEventQueue:
    """Process-local queue; keeps messages until drained."""

    def __init__(self):
        self._messages: list[QueuedEvent] = []

    def enqueue(self, message: QueuedEvent) -> None:
        self._messages.append(message)

    @property
    def messages(self) -> list[QueuedEvent]:
        return list(self._messages)

    def drain(self) -> list[QueuedEvent]:
        messages = self._messages
        self._messages = []
        return messages

    def __len__(self) -> int:
        return len(self._messages)
