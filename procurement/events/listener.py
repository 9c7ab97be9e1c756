"""
Listener contract for the event dispatcher.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from procurement.domain.events import DomainEvent


logger = logging.getLogger(__name__)


class Listener(ABC):
    """Base class for event listeners.

    ``supported_events`` holds event type names; an empty set makes the
    listener global. A listener may call ``set_stop_propagation()`` inside
    ``handle`` to keep the remaining listeners of the current dispatch from
    running.
    """

    priority: int = 0
    supported_events: frozenset[str] = frozenset()

    def __init__(
        self,
        priority: int | None = None,
        supported_events: Iterable[str | type[DomainEvent]] | None = None,
    ):
        if priority is not None:
            self.priority = priority
        if supported_events is not None:
            self.supported_events = frozenset(_event_name(e) for e in supported_events)
        else:
            self.supported_events = frozenset(
                _event_name(e) for e in type(self).supported_events
            )
        self.stop_propagation = False

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def is_global(self) -> bool:
        return not self.supported_events

    def should_handle(self, event: DomainEvent) -> bool:
        return self.is_global or event.event_type in self.supported_events

    def set_stop_propagation(self, stop: bool = True) -> Listener:
        self.stop_propagation = stop
        return self

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        """React to ``event``. Exceptions propagate to the dispatcher."""

    def _log(self, event: DomainEvent, message: str, **context: Any) -> None:
        logger.info(
            message,
            extra={
                "event_id": event.event_id,
                "event_name": event.event_type,
                "listener": self.name,
                **context,
            },
        )

    def __repr__(self) -> str:
        return f"<{self.name} priority={self.priority}>"


class CallbackListener(Listener):
    """Adapts a plain callable to the listener contract."""

    def __init__(
        self,
        callback: Callable[[DomainEvent], Any],
        name: str | None = None,
        priority: int = 0,
        supported_events: Iterable[str | type[DomainEvent]] | None = None,
    ):
        super().__init__(priority=priority, supported_events=supported_events or ())
        self.callback = callback
        self._name = name or getattr(callback, "__qualname__", repr(callback))

    @property
    def name(self) -> str:
        return self._name

    def handle(self, event: DomainEvent) -> None:
        self.callback(event)


def _event_name(event: str | type[DomainEvent]) -> str:
    if isinstance(event, str):
        return event
    return event.event_type
