"""
Event dispatcher: listener registry, priority-ordered synchronous delivery,
hand-off of async events to a queue, and a bounded dispatch history.
"""
from __future__ import annotations

import itertools
import logging
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from procurement.domain.events import DomainEvent
from procurement.events.listener import Listener, _event_name
from procurement.events.queue import EventQueue, InMemoryEventQueue, QueuedEvent
from procurement.exceptions import DispatchError


logger = logging.getLogger(__name__)

WILDCARD = "*"
DEFAULT_MAX_HISTORY_SIZE = 1000


class DispatchOutcome(str, Enum):
    """How a dispatch call ended."""
    COMPLETED = "completed"
    STOPPED = "stopped"
    QUEUED = "queued"
    FAILED = "failed"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one dispatch call."""
    event_id: str
    event_name: str
    outcome: DispatchOutcome
    invoked: tuple[str, ...] = ()
    listener: str | None = None
    queue: str | None = None
    error: str | None = None

    @property
    def stopped(self) -> bool:
        return self.outcome is DispatchOutcome.STOPPED

    @property
    def queued(self) -> bool:
        return self.outcome is DispatchOutcome.QUEUED

    @property
    def failed(self) -> bool:
        return self.outcome is DispatchOutcome.FAILED


@dataclass(frozen=True)
class ListenerRegistration:
    event_name: str
    listener: Listener
    priority: int
    sequence: int

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.sequence)


@dataclass(frozen=True)
class EventRecord:
    """Summary of a dispatched event kept in the history."""
    event_id: str
    name: str
    timestamp: datetime
    data: Mapping[str, Any]
    metadata: Mapping[str, Any]
    is_async: bool
    priority: int

    @classmethod
    def from_event(cls, event: DomainEvent) -> EventRecord:
        return cls(
            event_id=event.event_id,
            name=event.event_type,
            timestamp=event.occurred_at,
            data=event.data,
            metadata=event.metadata,
            is_async=event.is_async,
            priority=event.priority,
        )


class EventDispatcher:
    """Routes domain events to listeners or to the async queue.

    Listeners registered under an event name always run for that event;
    listeners registered under ``"*"`` run for every event they
    ``should_handle``. Delivery order is descending priority, ties in
    registration order.
    """

    def __init__(
        self,
        queue: EventQueue | None = None,
        max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
        enable_history: bool = True,
    ):
        self.queue = queue if queue is not None else InMemoryEventQueue()
        self._listeners: dict[str, list[ListenerRegistration]] = {}
        self._sequence = itertools.count()
        self._history_enabled = enable_history
        self._history: deque[EventRecord] = deque(maxlen=self._check_size(max_history_size))

    # Registry

    def listen(
        self,
        event_name: str | type[DomainEvent],
        listener: Listener,
        priority: int | None = None,
    ) -> EventDispatcher:
        """Register ``listener`` for ``event_name`` (or ``"*"``)."""
        name = _event_name(event_name)
        registration = ListenerRegistration(
            event_name=name,
            listener=listener,
            priority=listener.priority if priority is None else priority,
            sequence=next(self._sequence),
        )
        registrations = self._listeners.setdefault(name, [])
        registrations.append(registration)
        registrations.sort(key=lambda r: r.sort_key)

        logger.info(
            "event_listener_registered",
            extra={
                "event_name": name,
                "listener": listener.name,
                "priority": registration.priority,
            },
        )
        return self

    def listen_to(
        self,
        event_names: Iterable[str | type[DomainEvent]],
        listener: Listener,
        priority: int | None = None,
    ) -> EventDispatcher:
        for event_name in event_names:
            self.listen(event_name, listener, priority)
        return self

    def has_listeners(self, event_name: str | type[DomainEvent]) -> bool:
        return bool(self._listeners.get(_event_name(event_name)))

    def get_listeners(self, event_name: str | type[DomainEvent]) -> list[Listener]:
        """Listeners registered under ``event_name``, in delivery order."""
        return [r.listener for r in self._listeners.get(_event_name(event_name), [])]

    @property
    def registrations(self) -> dict[str, list[ListenerRegistration]]:
        return {name: list(regs) for name, regs in self._listeners.items()}

    def remove_listener(
        self,
        event_name: str | type[DomainEvent],
        kind: type[Listener] | Listener | str,
    ) -> EventDispatcher:
        """Drop listeners matching ``kind`` (class, instance or name)."""
        name = _event_name(event_name)
        if name not in self._listeners:
            return self
        self._listeners[name] = [
            r for r in self._listeners[name] if not _matches(r.listener, kind)
        ]
        if not self._listeners[name]:
            del self._listeners[name]
        return self

    def clear_listeners(self) -> EventDispatcher:
        self._listeners = {}
        return self

    # History

    @property
    def history(self) -> list[EventRecord]:
        return list(self._history)

    @property
    def max_history_size(self) -> int:
        return self._history.maxlen

    def set_max_history_size(self, size: int) -> EventDispatcher:
        self._history = deque(self._history, maxlen=self._check_size(size))
        return self

    def enable_history(self, enabled: bool = True) -> EventDispatcher:
        self._history_enabled = enabled
        return self

    def clear_history(self) -> EventDispatcher:
        self._history.clear()
        return self

    @staticmethod
    def _check_size(size: int) -> int:
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValueError(f"max_history_size must be a non-negative integer, got {size!r}")
        return size

    def _record(self, event: DomainEvent) -> None:
        if self._history_enabled:
            # deque(maxlen) evicts the oldest entry on overflow.
            self._history.append(EventRecord.from_event(event))

    # Dispatch

    def dispatch(self, event: DomainEvent) -> DispatchResult:
        """Record ``event`` and deliver it (sync) or enqueue it (async)."""
        self._record(event)
        logger.info(
            "event_dispatched",
            extra={
                "event_id": event.event_id,
                "event_name": event.event_type,
                "is_async": event.is_async,
                "priority": event.priority,
            },
        )
        if event.is_async:
            return self._enqueue(event)
        return self.dispatch_sync(event)

    def dispatch_all(self, events: Iterable[DomainEvent]) -> list[DispatchResult]:
        """Dispatch events in order; the first failure propagates."""
        return [self.dispatch(event) for event in events]

    def dispatch_sync(self, event: DomainEvent) -> DispatchResult:
        """Invoke listeners inline, regardless of the async flag.

        Used directly by queue workers replaying async events; does not
        touch the history.
        """
        invoked: list[str] = []
        for registration in self._resolve(event):
            listener = registration.listener
            invoked.append(listener.name)
            # The stop flag only applies to the dispatch that set it.
            listener.stop_propagation = False
            try:
                listener.handle(event)
            except Exception as e:
                result = DispatchResult(
                    event_id=event.event_id,
                    event_name=event.event_type,
                    outcome=DispatchOutcome.FAILED,
                    invoked=tuple(invoked),
                    listener=listener.name,
                    error=str(e),
                )
                logger.error(
                    "event_listener_failed",
                    extra={
                        "event_id": event.event_id,
                        "event_name": event.event_type,
                        "listener": listener.name,
                        "error": f"{type(e).__name__}: {e}",
                    },
                    exc_info=True,
                )
                raise DispatchError(
                    f"Listener {listener.name} failed handling {event.event_type}: {e}",
                    listener=listener.name,
                    event_id=event.event_id,
                    result=result,
                ) from e

            if listener.stop_propagation:
                logger.info(
                    "event_propagation_stopped",
                    extra={
                        "event_id": event.event_id,
                        "event_name": event.event_type,
                        "listener": listener.name,
                    },
                )
                return DispatchResult(
                    event_id=event.event_id,
                    event_name=event.event_type,
                    outcome=DispatchOutcome.STOPPED,
                    invoked=tuple(invoked),
                    listener=listener.name,
                )

        return DispatchResult(
            event_id=event.event_id,
            event_name=event.event_type,
            outcome=DispatchOutcome.COMPLETED,
            invoked=tuple(invoked),
        )

    def _enqueue(self, event: DomainEvent) -> DispatchResult:
        message = QueuedEvent.from_event(event)
        self.queue.enqueue(message)
        logger.info(
            "event_queued",
            extra={
                "event_id": event.event_id,
                "event_name": event.event_type,
                "queue": message.queue,
            },
        )
        return DispatchResult(
            event_id=event.event_id,
            event_name=event.event_type,
            outcome=DispatchOutcome.QUEUED,
            queue=message.queue,
        )

    def _resolve(self, event: DomainEvent) -> list[ListenerRegistration]:
        """Exact-name registrations plus matching wildcard ones, deduplicated."""
        candidates = list(self._listeners.get(event.event_type, []))
        if event.event_type != WILDCARD:
            candidates.extend(
                r for r in self._listeners.get(WILDCARD, []) if r.listener.should_handle(event)
            )
        candidates.sort(key=lambda r: r.sort_key)

        seen: set[int] = set()
        resolved = []
        for registration in candidates:
            if id(registration.listener) in seen:
                continue
            seen.add(id(registration.listener))
            resolved.append(registration)
        return resolved


def _matches(listener: Listener, kind: type[Listener] | Listener | str) -> bool:
    if isinstance(kind, str):
        return listener.name == kind or type(listener).__name__ == kind
    if isinstance(kind, type):
        return isinstance(listener, kind)
    return listener is kind
