"""
App settings: ``settings.PROCUREMENT_EVENTS`` merged over defaults.
"""
from __future__ import annotations

from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

from procurement.events.dispatcher import EventDispatcher
from procurement.events.queue import EventQueue


DEFAULTS: dict[str, Any] = {
    "ENABLE_HISTORY": True,
    "MAX_HISTORY_SIZE": 1000,
    "QUEUE_BACKEND": "procurement.infra.outbox.OutboxEventQueue",
    # event name (or "*") -> dotted listener class paths
    "LISTENERS": {
        "*": ["procurement.events.listeners.LoggingListener"],
    },
    "OUTBOX_BATCH_SIZE": 100,
    "OUTBOX_MAX_RETRIES": 5,
}


def get_setting(name: str) -> Any:
    overrides = getattr(settings, "PROCUREMENT_EVENTS", {}) or {}
    if name not in DEFAULTS:
        raise KeyError(f"Unknown PROCUREMENT_EVENTS setting: {name}")
    return overrides.get(name, DEFAULTS[name])


def build_queue() -> EventQueue:
    return import_string(get_setting("QUEUE_BACKEND"))()


def build_dispatcher(queue: EventQueue | None = None) -> EventDispatcher:
    """Assemble a dispatcher with the configured queue and listeners."""
    dispatcher = EventDispatcher(
        queue=queue if queue is not None else build_queue(),
        max_history_size=get_setting("MAX_HISTORY_SIZE"),
        enable_history=get_setting("ENABLE_HISTORY"),
    )
    for event_name, paths in get_setting("LISTENERS").items():
        for path in paths:
            dispatcher.listen(event_name, import_string(path)())
    return dispatcher
