from procurement.events.dispatcher import (
    WILDCARD,
    DispatchOutcome,
    DispatchResult,
    EventDispatcher,
    EventRecord,
)
from procurement.events.listener import CallbackListener, Listener
from procurement.events.listeners import LoggingListener, StatisticsListener
from procurement.events.queue import (
    EventQueue,
    InMemoryEventQueue,
    QueuedEvent,
    queue_for_priority,
)

__all__ = [
    "WILDCARD",
    "CallbackListener",
    "DispatchOutcome",
    "DispatchResult",
    "EventDispatcher",
    "EventQueue",
    "EventRecord",
    "InMemoryEventQueue",
    "Listener",
    "LoggingListener",
    "QueuedEvent",
    "StatisticsListener",
    "queue_for_priority",
]
