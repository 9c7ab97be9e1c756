"""
Status value objects for Order and Inquiry aggregates.

Each status is a closed enum; legal moves between *different* statuses live in
the module-level transition tables. Staying in the same status is handled by
the aggregates as a no-op.
"""
from __future__ import annotations

from enum import Enum

from procurement.exceptions import ValidationError


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    ON_HOLD = "on_hold"

    @classmethod
    def from_tag(cls, tag: str) -> OrderStatus:
        """Build status from its string tag."""
        try:
            return cls(tag)
        except ValueError:
            raise ValidationError(
                f'Invalid order status "{tag}". Valid statuses are: '
                + ", ".join(s.value for s in cls)
            ) from None

    @property
    def allowed_transitions(self) -> frozenset[OrderStatus]:
        return ORDER_TRANSITIONS[self]

    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in ORDER_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not ORDER_TRANSITIONS[self]

    @property
    def is_pending(self) -> bool:
        return self is OrderStatus.PENDING

    @property
    def is_on_hold(self) -> bool:
        return self is OrderStatus.ON_HOLD

    @property
    def is_delivered(self) -> bool:
        return self is OrderStatus.DELIVERED

    @property
    def is_active(self) -> bool:
        return self in (
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.ON_HOLD,
        )

    @property
    def is_completed(self) -> bool:
        return self is OrderStatus.DELIVERED

    @property
    def is_terminated(self) -> bool:
        return self in (OrderStatus.CANCELLED, OrderStatus.REFUNDED)

    @property
    def can_be_cancelled(self) -> bool:
        return self in (
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.ON_HOLD,
        )

    @property
    def can_be_refunded(self) -> bool:
        return self is OrderStatus.DELIVERED

    @property
    def can_be_modified(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.CONFIRMED)

    @property
    def requires_shipping(self) -> bool:
        return self in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED)


class InquiryStatus(str, Enum):
    """Inquiry status enumeration."""
    PENDING = "pending"
    QUOTED = "quoted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"

    @classmethod
    def from_tag(cls, tag: str) -> InquiryStatus:
        """Build status from its string tag."""
        try:
            return cls(tag)
        except ValueError:
            raise ValidationError(
                f'Invalid inquiry status "{tag}". Valid statuses are: '
                + ", ".join(s.value for s in cls)
            ) from None

    @property
    def allowed_transitions(self) -> frozenset[InquiryStatus]:
        return INQUIRY_TRANSITIONS[self]

    def can_transition_to(self, target: InquiryStatus) -> bool:
        return target in INQUIRY_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not INQUIRY_TRANSITIONS[self]

    @property
    def is_pending(self) -> bool:
        return self is InquiryStatus.PENDING

    @property
    def is_quoted(self) -> bool:
        return self is InquiryStatus.QUOTED

    @property
    def is_active(self) -> bool:
        return self in (InquiryStatus.PENDING, InquiryStatus.QUOTED)

    @property
    def is_completed(self) -> bool:
        return self.is_terminal

    @property
    def can_be_quoted(self) -> bool:
        return self is InquiryStatus.PENDING

    @property
    def can_be_accepted(self) -> bool:
        return self is InquiryStatus.QUOTED

    @property
    def can_be_rejected(self) -> bool:
        return self in (InquiryStatus.PENDING, InquiryStatus.QUOTED)

    @property
    def can_be_withdrawn(self) -> bool:
        return self in (InquiryStatus.PENDING, InquiryStatus.QUOTED)


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.ON_HOLD}
    ),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.ON_HOLD}
    ),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.ON_HOLD: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
}

INQUIRY_TRANSITIONS: dict[InquiryStatus, frozenset[InquiryStatus]] = {
    InquiryStatus.PENDING: frozenset(
        {InquiryStatus.QUOTED, InquiryStatus.REJECTED, InquiryStatus.WITHDRAWN}
    ),
    InquiryStatus.QUOTED: frozenset(
        {
            InquiryStatus.ACCEPTED,
            InquiryStatus.REJECTED,
            InquiryStatus.EXPIRED,
            InquiryStatus.WITHDRAWN,
        }
    ),
    InquiryStatus.ACCEPTED: frozenset(),
    InquiryStatus.REJECTED: frozenset(),
    InquiryStatus.EXPIRED: frozenset(),
    InquiryStatus.WITHDRAWN: frozenset(),
}
