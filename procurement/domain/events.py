"""
Domain events.

An event is an immutable record: identity and timestamp are assigned once,
``data`` and ``metadata`` are deep-frozen snapshots taken at construction.
Concrete kinds register themselves by ``event_type`` so a serialized payload
can be turned back into the right class.
"""
from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar
from uuid import uuid4

from procurement.exceptions import SerializationError

if TYPE_CHECKING:
    from procurement.domain.inquiry import Inquiry
    from procurement.domain.order import Order


_EVENT_TYPES: dict[str, type[DomainEvent]] = {}

SERIALIZED_FIELDS = ("type", "id", "timestamp", "data", "metadata", "async", "priority")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(key): _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event."""
    data: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    is_async: bool | None = None
    priority: int | None = None
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)

    event_type: ClassVar[str] = "DomainEvent"
    default_async: ClassVar[bool] = False
    default_priority: ClassVar[int] = 0
    default_metadata: ClassVar[Mapping[str, Any]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.event_type = cls.__dict__.get("event_type", cls.__name__)
        _EVENT_TYPES[cls.event_type] = cls

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _freeze(self.data))
        object.__setattr__(
            self, "metadata", _freeze({**self.default_metadata, **self.metadata})
        )
        if self.is_async is None:
            object.__setattr__(self, "is_async", self.default_async)
        if self.priority is None:
            object.__setattr__(self, "priority", self.default_priority)

    def __hash__(self) -> int:
        # data and metadata are mapping proxies, which do not hash.
        return hash((self.event_type, self.event_id))

    @property
    def name(self) -> str:
        """Event name used for listener lookup (the type discriminator)."""
        return self.event_type

    def get(self, key: str, default: Any = None) -> Any:
        """Read a data field."""
        return self.data.get(key, default)

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    @property
    def requires_notification(self) -> bool:
        return bool(self.metadata.get("requires_notification", False))

    @property
    def requires_follow_up(self) -> bool:
        return bool(self.metadata.get("requires_follow_up", False))

    def to_dict(self) -> dict[str, Any]:
        """Plain representation of all serialized fields."""
        return {
            "type": self.event_type,
            "id": self.event_id,
            "timestamp": self.occurred_at.isoformat(),
            "data": _thaw(self.data),
            "metadata": _thaw(self.metadata),
            "async": self.is_async,
            "priority": self.priority,
        }

    def serialize(self) -> str:
        """Serialize event to JSON text."""
        try:
            return json.dumps(self.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Event {self.event_type} ({self.event_id}) is not serializable: {e}"
            ) from e

    @classmethod
    def deserialize(cls, payload: str | bytes | Mapping[str, Any]) -> DomainEvent:
        """Rebuild an event of the registered concrete type."""
        if isinstance(payload, (str, bytes, bytearray)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise SerializationError(f"Malformed event payload: {e}") from e
        if not isinstance(payload, Mapping):
            raise SerializationError("Event payload must be an object")

        missing = [key for key in SERIALIZED_FIELDS if key not in payload]
        if missing:
            raise SerializationError(f"Event payload is missing fields: {', '.join(missing)}")

        event_type = payload["type"]
        event_cls = _EVENT_TYPES.get(event_type) if isinstance(event_type, str) else None
        if event_cls is None:
            raise SerializationError(f"Unknown event type: {event_type!r}")
        if not issubclass(event_cls, cls):
            raise SerializationError(f"Event type {event_type} is not a {cls.event_type}")

        try:
            occurred_at = datetime.fromisoformat(payload["timestamp"])
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Invalid event timestamp: {payload['timestamp']!r}") from e

        if not isinstance(payload["data"], Mapping) or not isinstance(payload["metadata"], Mapping):
            raise SerializationError("Event data and metadata must be objects")
        if not isinstance(payload["async"], bool):
            raise SerializationError("Event async flag must be a boolean")
        priority = payload["priority"]
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise SerializationError("Event priority must be an integer")

        return event_cls(
            data=payload["data"],
            metadata=payload["metadata"],
            is_async=payload["async"],
            priority=priority,
            event_id=str(payload["id"]),
            occurred_at=occurred_at,
        )


_EVENT_TYPES[DomainEvent.event_type] = DomainEvent


def event_class_for(event_type: str) -> type[DomainEvent] | None:
    """Look up a registered event class by its discriminator."""
    return _EVENT_TYPES.get(event_type)


# Order events

class OrderCreated(DomainEvent):
    """Order placed by a customer."""
    default_async = True
    default_priority = 10
    default_metadata = {
        "source": "order_creation",
        "category": "order_lifecycle",
        "importance": "high",
        "requires_notification": True,
        "requires_follow_up": False,
    }

    @classmethod
    def from_order(cls, order: Order, metadata: Mapping[str, Any] | None = None) -> OrderCreated:
        return cls(
            data={
                "order_id": order.id,
                "customer_id": order.customer_id,
                "customer_email": order.customer_email,
                "items": [item.to_dict() for item in order.items],
                "total_amount": str(order.total_amount),
                "currency": order.currency,
                "item_count": order.item_count,
                "status": order.status.value,
                "created_at": _isoformat(order.created_at),
            },
            metadata=metadata or {},
        )

    @property
    def order_id(self) -> str:
        return self.data["order_id"]

    @property
    def customer_id(self) -> str:
        return self.data["customer_id"]

    @property
    def total_amount(self) -> Decimal:
        return Decimal(self.data["total_amount"])

    @property
    def currency(self) -> str:
        return self.data["currency"]

    @property
    def item_count(self) -> int:
        return self.data["item_count"]

    @property
    def product_ids(self) -> list[str]:
        return list(dict.fromkeys(item["product_id"] for item in self.data["items"]))

    @property
    def total_quantity(self) -> int:
        return sum(item["quantity"] for item in self.data["items"])

    def is_bulk_order(self) -> bool:
        return self.total_amount >= 50000 or self.item_count >= 20

    def is_high_value_order(self) -> bool:
        return self.total_amount >= 100000


# Ordering of the regular order lifecycle; on_hold sits before everything.
_ORDER_PROGRESS = {
    "on_hold": 0,
    "pending": 1,
    "confirmed": 2,
    "processing": 3,
    "shipped": 4,
    "delivered": 5,
    "refunded": 98,
    "cancelled": 99,
}

_ORDER_NOTIFY_STATUSES = frozenset(
    {"confirmed", "shipped", "delivered", "cancelled", "refunded", "on_hold"}
)


class OrderStatusChanged(DomainEvent):
    """Order moved between lifecycle statuses."""
    default_async = True
    default_priority = 8
    default_metadata = {
        "source": "order_status_change",
        "category": "order_lifecycle",
        "importance": "high",
        "requires_notification": False,
        "requires_follow_up": False,
    }

    @classmethod
    def from_order(
        cls,
        order: Order,
        old_status: str,
        new_status: str,
        reason: str | None = None,
        changed_by: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> OrderStatusChanged:
        return cls(
            data={
                "order_id": order.id,
                "customer_id": order.customer_id,
                "old_status": old_status,
                "new_status": new_status,
                "reason": reason,
                "changed_by": changed_by,
                "total_amount": str(order.total_amount),
                "currency": order.currency,
                "item_count": order.item_count,
                "tracking_number": order.tracking_number,
                "changed_at": _isoformat(order.updated_at),
            },
            metadata={
                "requires_notification": new_status in _ORDER_NOTIFY_STATUSES,
                **(metadata or {}),
            },
        )

    @property
    def order_id(self) -> str:
        return self.data["order_id"]

    @property
    def old_status(self) -> str:
        return self.data["old_status"]

    @property
    def new_status(self) -> str:
        return self.data["new_status"]

    @property
    def reason(self) -> str | None:
        return self.data.get("reason")

    @property
    def changed_by(self) -> str | None:
        return self.data.get("changed_by")

    def is_progressing(self) -> bool:
        old = _ORDER_PROGRESS.get(self.old_status, 0)
        new = _ORDER_PROGRESS.get(self.new_status, 0)
        return new > old and self.new_status not in ("cancelled", "refunded")

    def is_cancellation(self) -> bool:
        return self.new_status == "cancelled"

    def is_refund(self) -> bool:
        return self.new_status == "refunded"

    def requires_inventory_update(self) -> bool:
        return self.new_status in ("confirmed", "cancelled")

    def requires_payment_processing(self) -> bool:
        return self.new_status in ("confirmed", "cancelled", "refunded")


# Inquiry events

class InquiryCreated(DomainEvent):
    """Inquiry submitted by a prospective buyer."""
    default_async = True
    default_priority = 10
    default_metadata = {
        "source": "inquiry_creation",
        "category": "inquiry_lifecycle",
        "importance": "high",
        "requires_notification": True,
        "requires_follow_up": True,
    }

    @classmethod
    def from_inquiry(
        cls, inquiry: Inquiry, metadata: Mapping[str, Any] | None = None
    ) -> InquiryCreated:
        return cls(
            data={
                "inquiry_id": inquiry.id,
                "customer_id": inquiry.customer_id,
                "customer_email": inquiry.customer_email,
                "customer_phone": inquiry.customer_phone,
                "company_name": inquiry.company_name,
                "subject": inquiry.subject,
                "message": inquiry.message,
                "product_ids": list(inquiry.product_ids),
                "status": inquiry.status.value,
                "created_at": _isoformat(inquiry.created_at),
            },
            metadata=metadata or {},
        )

    @property
    def inquiry_id(self) -> str:
        return self.data["inquiry_id"]

    @property
    def company_name(self) -> str:
        return self.data["company_name"]

    @property
    def product_ids(self) -> list[str]:
        return list(self.data["product_ids"])


_INQUIRY_PROGRESS = {
    "pending": 1,
    "quoted": 2,
    "accepted": 3,
    "rejected": 4,
    "expired": 5,
    "withdrawn": 6,
}


class InquiryStatusChanged(DomainEvent):
    """Inquiry moved between lifecycle statuses."""
    default_async = True
    default_priority = 8
    default_metadata = {
        "source": "inquiry_status_change",
        "category": "inquiry_lifecycle",
        "importance": "high",
        "requires_notification": False,
        "requires_follow_up": False,
    }

    @classmethod
    def from_inquiry(
        cls,
        inquiry: Inquiry,
        old_status: str,
        new_status: str,
        reason: str | None = None,
        changed_by: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> InquiryStatusChanged:
        quoted_price = inquiry.quoted_price
        return cls(
            data={
                "inquiry_id": inquiry.id,
                "customer_id": inquiry.customer_id,
                "customer_email": inquiry.customer_email,
                "company_name": inquiry.company_name,
                "old_status": old_status,
                "new_status": new_status,
                "reason": reason,
                "changed_by": changed_by,
                "quoted_price": str(quoted_price) if quoted_price is not None else None,
                "quoted_currency": inquiry.quoted_currency,
                "expires_at": _isoformat(inquiry.expires_at),
                "notes": inquiry.notes,
                "changed_at": _isoformat(inquiry.updated_at),
            },
            metadata={
                "requires_notification": new_status in ("quoted", "accepted", "rejected"),
                "requires_follow_up": new_status == "pending",
                **(metadata or {}),
            },
        )

    @property
    def inquiry_id(self) -> str:
        return self.data["inquiry_id"]

    @property
    def old_status(self) -> str:
        return self.data["old_status"]

    @property
    def new_status(self) -> str:
        return self.data["new_status"]

    @property
    def reason(self) -> str | None:
        return self.data.get("reason")

    @property
    def quoted_price(self) -> Decimal | None:
        value = self.data.get("quoted_price")
        return Decimal(value) if value is not None else None

    def is_status_progress(self) -> bool:
        return _INQUIRY_PROGRESS.get(self.new_status, 0) > _INQUIRY_PROGRESS.get(self.old_status, 0)

    def is_quoted(self) -> bool:
        return self.new_status == "quoted"

    def is_accepted(self) -> bool:
        return self.new_status == "accepted"

    def is_rejected(self) -> bool:
        return self.new_status == "rejected"

    def is_expired(self) -> bool:
        return self.new_status == "expired"
