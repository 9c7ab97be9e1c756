"""
Domain model for Order aggregate.
"""
from __future__ import annotations

import random
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any

from procurement.domain.aggregate import AggregateRoot
from procurement.domain.events import OrderCreated, OrderStatusChanged, utcnow
from procurement.domain.status import OrderStatus
from procurement.exceptions import (
    InvalidTransitionError,
    ItemConstraintError,
    ValidationError,
)

SUPPORTED_CURRENCIES = ("CNY", "JPY", "USD")
# Matches the scale of the price columns.
PRICE_DECIMAL_PLACES = 4

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_ORDER_NUMBER_RE = re.compile(r"^B2B-(\d{8})-(\d{5})$")


def validate_identifier(value: str, label: str) -> str:
    """Validate a business identifier and return it trimmed."""
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{label} cannot be empty")
    if len(trimmed) > 50:
        raise ValidationError(f"{label} cannot exceed 50 characters")
    if not _IDENTIFIER_RE.match(trimmed):
        raise ValidationError(
            f"{label} can only contain letters, numbers, hyphens, and underscores"
        )
    return trimmed


def validate_currency(currency: str) -> str:
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError(
            f"Invalid currency {currency!r}. Supported currencies: "
            + ", ".join(SUPPORTED_CURRENCIES)
        )
    return currency


def validate_price(value: Any, label: str) -> Decimal:
    """Parse a finite, non-negative price with at most four decimal places."""
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid {label}: {value!r}") from None
    if not price.is_finite():
        raise ValidationError(f"Invalid {label}: {value!r}")
    if price < 0:
        raise ItemConstraintError(f"{label.capitalize()} cannot be negative")
    if -price.as_tuple().exponent > PRICE_DECIMAL_PLACES:
        raise ValidationError(
            f"{label.capitalize()} cannot have more than {PRICE_DECIMAL_PLACES} decimal places"
        )
    return price


def generate_business_number(prefix: str, now: datetime | None = None) -> str:
    """Build ``PREFIX-YYYYMMDD-NNNNN``."""
    now = now or utcnow()
    return f"{prefix}-{now:%Y%m%d}-{random.randint(1, 99999):05d}"


@dataclass(frozen=True)
class OrderId:
    """Order identity value object (``B2B-YYYYMMDD-NNNNN`` for generated ids)."""
    value: str

    def __post_init__(self):
        object.__setattr__(self, "value", validate_identifier(self.value, "Order ID"))

    @classmethod
    def generate(cls, now: datetime | None = None) -> OrderId:
        return cls(generate_business_number("B2B", now))

    @property
    def date(self) -> str:
        match = _ORDER_NUMBER_RE.match(self.value)
        return match.group(1) if match else ""

    @property
    def sequence(self) -> str:
        match = _ORDER_NUMBER_RE.match(self.value)
        return match.group(2) if match else ""

    @property
    def formatted_date(self) -> str:
        date = self.date
        if len(date) != 8:
            return ""
        return f"{date[:4]}-{date[4:6]}-{date[6:]}"

    @property
    def is_b2b(self) -> bool:
        return self.value.startswith("B2B-")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class OrderItem:
    """Order line item value object."""
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    currency: str = "CNY"
    specifications: Mapping[str, Any] = field(default_factory=dict)

    MAX_QUANTITY = 10000
    MAX_NAME_LENGTH = 255

    def __post_init__(self):
        product_id = str(self.product_id).strip()
        if not product_id:
            raise ValidationError("Product ID cannot be empty")

        if not isinstance(self.product_name, str) or not self.product_name.strip():
            raise ValidationError("Product name cannot be empty")
        if len(self.product_name) > self.MAX_NAME_LENGTH:
            raise ValidationError("Product name cannot exceed 255 characters")

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError("Quantity must be an integer")
        if self.quantity <= 0:
            raise ItemConstraintError("Quantity must be positive")
        if self.quantity > self.MAX_QUANTITY:
            raise ItemConstraintError("Quantity cannot exceed 10,000 items")

        unit_price = validate_price(self.unit_price, "unit price")

        validate_currency(self.currency)

        object.__setattr__(self, "product_id", product_id)
        object.__setattr__(self, "unit_price", unit_price)
        object.__setattr__(self, "specifications", MappingProxyType(dict(self.specifications)))

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> OrderItem:
        return self._replace(quantity=quantity)

    def with_unit_price(self, unit_price: Decimal) -> OrderItem:
        return self._replace(unit_price=unit_price)

    def with_product_name(self, product_name: str) -> OrderItem:
        if not isinstance(product_name, str) or not product_name.strip():
            raise ValidationError("Product name cannot be empty")
        return self._replace(product_name=product_name.strip())

    def with_specifications(self, specifications: Mapping[str, Any]) -> OrderItem:
        return self._replace(specifications=specifications)

    def is_same_product(self, product_id: str) -> bool:
        return self.product_id == str(product_id)

    def has_same_price(self, price: Decimal, currency: str) -> bool:
        return self.unit_price == Decimal(str(price)) and self.currency == currency

    def is_bulk(self) -> bool:
        return self.quantity >= 100

    def is_high_value(self) -> bool:
        return self.total_price >= 10000

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "currency": self.currency,
            "total_price": str(self.total_price),
            "specifications": dict(self.specifications),
        }

    def _replace(self, **changes: Any) -> OrderItem:
        values = {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "currency": self.currency,
            "specifications": dict(self.specifications),
        }
        values.update(changes)
        return OrderItem(**values)


class Order(AggregateRoot):
    """Order aggregate root."""

    BULK_AMOUNT = Decimal("50000")
    BULK_ITEM_COUNT = 20
    HIGH_VALUE_AMOUNT = Decimal("100000")

    _MILESTONES = {
        OrderStatus.CONFIRMED: "_confirmed_at",
        OrderStatus.SHIPPED: "_shipped_at",
        OrderStatus.DELIVERED: "_delivered_at",
    }

    def __init__(
        self,
        id: OrderId | str,
        customer_id: str,
        customer_email: str,
        items: Iterable[OrderItem],
        currency: str = "CNY",
        status: OrderStatus | str = OrderStatus.PENDING,
        shipping_address: str | None = None,
        billing_address: str | None = None,
        notes: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        confirmed_at: datetime | None = None,
        shipped_at: datetime | None = None,
        delivered_at: datetime | None = None,
        tracking_number: str | None = None,
    ):
        order_id = id if isinstance(id, OrderId) else OrderId(id)
        super().__init__(order_id.value)

        items = list(items)
        self._check_items(items)
        if not str(customer_id or "").strip():
            raise ValidationError("Customer ID cannot be empty")

        self.order_id = order_id
        self.customer_id = str(customer_id)
        self.customer_email = customer_email
        self._items = items
        self.currency = validate_currency(currency)
        self._status = status if isinstance(status, OrderStatus) else OrderStatus.from_tag(status)
        self.shipping_address = shipping_address
        self.billing_address = billing_address
        self.notes = notes
        self.created_at = created_at or utcnow()
        self.updated_at = updated_at
        self._confirmed_at = confirmed_at
        self._shipped_at = shipped_at
        self._delivered_at = delivered_at
        self._tracking_number = tracking_number

    @classmethod
    def create(
        cls,
        id: OrderId | str,
        customer_id: str,
        customer_email: str,
        items: Iterable[OrderItem],
        currency: str = "CNY",
    ) -> Order:
        """Place a new pending order and record ``OrderCreated``."""
        order = cls(id, customer_id, customer_email, items, currency)
        order._record_event(OrderCreated.from_order(order))
        return order

    @classmethod
    def create_existing(cls, **fields: Any) -> Order:
        """Rehydrate an order from storage without recording events."""
        return cls(**fields)

    @staticmethod
    def _check_items(items: list[OrderItem]) -> None:
        if not items:
            raise ItemConstraintError("Order must contain at least one item")
        seen: set[str] = set()
        for item in items:
            if not isinstance(item, OrderItem):
                raise ValidationError(f"Expected OrderItem, got {type(item).__name__}")
            if item.product_id in seen:
                raise ItemConstraintError(f"Product {item.product_id} already exists in order")
            seen.add(item.product_id)

    @property
    def items(self) -> list[OrderItem]:
        """Get order items (copy)."""
        return list(self._items)

    @property
    def status(self) -> OrderStatus:
        return self._status

    @property
    def total_amount(self) -> Decimal:
        """Sum of item totals."""
        return sum((item.total_price for item in self._items), Decimal("0"))

    @property
    def item_count(self) -> int:
        return len(self._items)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self._items)

    @property
    def confirmed_at(self) -> datetime | None:
        return self._confirmed_at

    @property
    def shipped_at(self) -> datetime | None:
        return self._shipped_at

    @property
    def delivered_at(self) -> datetime | None:
        return self._delivered_at

    @property
    def tracking_number(self) -> str | None:
        return self._tracking_number

    # Status lifecycle

    def change_status(
        self,
        new_status: OrderStatus | str,
        reason: str | None = None,
        changed_by: str | None = None,
    ) -> None:
        """Move to ``new_status`` if the transition table allows it."""
        if not isinstance(new_status, OrderStatus):
            new_status = OrderStatus.from_tag(new_status)
        if new_status is self._status:
            return
        self._ensure_transition(new_status)

        old_status = self._status
        now = utcnow()
        self._status = new_status
        self.updated_at = now
        milestone = self._MILESTONES.get(new_status)
        if milestone:
            setattr(self, milestone, now)

        self._record_event(
            OrderStatusChanged.from_order(
                self, old_status.value, new_status.value, reason, changed_by
            )
        )

    def _ensure_transition(self, new_status: OrderStatus) -> None:
        if not self._status.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot transition from {self._status.value} to {new_status.value}",
                current=self._status.value,
                target=new_status.value,
            )

    def confirm(self, confirmed_by: str | None = None) -> None:
        self.change_status(OrderStatus.CONFIRMED, "Order confirmed", confirmed_by)

    def start_processing(self, processed_by: str | None = None) -> None:
        self.change_status(OrderStatus.PROCESSING, "Processing started", processed_by)

    def ship(self, tracking_number: str, shipped_by: str | None = None) -> None:
        if not tracking_number or not str(tracking_number).strip():
            raise ValidationError("Tracking number cannot be empty")
        if self._status is OrderStatus.SHIPPED:
            return
        self._ensure_transition(OrderStatus.SHIPPED)
        self._tracking_number = str(tracking_number).strip()
        self.change_status(OrderStatus.SHIPPED, "Order shipped", shipped_by)

    def deliver(self, delivered_by: str | None = None) -> None:
        self.change_status(OrderStatus.DELIVERED, "Order delivered", delivered_by)

    def cancel(self, reason: str | None = None, cancelled_by: str | None = None) -> None:
        if not self._status.can_be_cancelled:
            raise InvalidTransitionError(
                f"Order cannot be cancelled in status {self._status.value}",
                current=self._status.value,
                target=OrderStatus.CANCELLED.value,
            )
        self.change_status(OrderStatus.CANCELLED, reason or "Order cancelled", cancelled_by)

    def refund(self, reason: str | None = None, refunded_by: str | None = None) -> None:
        if not self._status.can_be_refunded:
            raise InvalidTransitionError(
                f"Order cannot be refunded in status {self._status.value}",
                current=self._status.value,
                target=OrderStatus.REFUNDED.value,
            )
        self.change_status(OrderStatus.REFUNDED, reason or "Order refunded", refunded_by)

    def put_on_hold(self, reason: str | None = None, held_by: str | None = None) -> None:
        self.change_status(OrderStatus.ON_HOLD, reason or "Order put on hold", held_by)

    def resume_from_hold(self, resumed_by: str | None = None) -> None:
        if not self._status.is_on_hold:
            raise InvalidTransitionError(
                "Order is not on hold",
                current=self._status.value,
                target=OrderStatus.PROCESSING.value,
            )
        self.change_status(OrderStatus.PROCESSING, "Resumed from hold", resumed_by)

    # Modifications

    def _ensure_modifiable(self, action: str) -> None:
        if not self._status.can_be_modified:
            raise InvalidTransitionError(
                f"Cannot {action} in status {self._status.value}",
                current=self._status.value,
            )

    def update_shipping_address(self, address: str) -> None:
        self._ensure_modifiable("modify shipping address")
        self.shipping_address = address
        self._touch()

    def update_billing_address(self, address: str) -> None:
        self._ensure_modifiable("modify billing address")
        self.billing_address = address
        self._touch()

    def update_notes(self, notes: str | None) -> None:
        self.notes = notes
        self._touch()

    def add_item(self, item: OrderItem) -> None:
        """Add item to order."""
        self._ensure_modifiable("add items to order")
        if not isinstance(item, OrderItem):
            raise ValidationError(f"Expected OrderItem, got {type(item).__name__}")
        if any(existing.is_same_product(item.product_id) for existing in self._items):
            raise ItemConstraintError(f"Product {item.product_id} already exists in order")
        self._items.append(item)
        self._touch()

    def remove_item(self, product_id: str) -> None:
        """Remove item from order; the last item cannot be removed."""
        self._ensure_modifiable("remove items from order")
        remaining = [item for item in self._items if not item.is_same_product(product_id)]
        if len(remaining) == len(self._items):
            raise ItemConstraintError(f"Product {product_id} not found in order")
        if not remaining:
            raise ItemConstraintError("Order must contain at least one item")
        self._items = remaining
        self._touch()

    def update_item_quantity(self, product_id: str, quantity: int) -> None:
        self._ensure_modifiable("modify items")
        for index, item in enumerate(self._items):
            if item.is_same_product(product_id):
                self._items[index] = item.with_quantity(quantity)
                self._touch()
                return
        raise ItemConstraintError(f"Product {product_id} not found in order")

    def _touch(self) -> None:
        self.updated_at = utcnow()

    # Queries

    def is_bulk_order(self) -> bool:
        return self.total_amount >= self.BULK_AMOUNT or self.item_count >= self.BULK_ITEM_COUNT

    def is_high_value_order(self) -> bool:
        return self.total_amount >= self.HIGH_VALUE_AMOUNT

    def requires_special_handling(self) -> bool:
        return self.is_bulk_order() or self.is_high_value_order()

    def can_be_modified(self) -> bool:
        return self._status.can_be_modified

    def can_be_cancelled(self) -> bool:
        return self._status.can_be_cancelled

    def is_active(self) -> bool:
        return self._status.is_active

    def is_completed(self) -> bool:
        return self._status.is_completed

    def is_terminated(self) -> bool:
        return self._status.is_terminated

    def processing_time(self) -> timedelta | None:
        if not self._delivered_at:
            return None
        return self._delivered_at - self.created_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "items": [item.to_dict() for item in self._items],
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "status": self._status.value,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "confirmed_at": self._confirmed_at.isoformat() if self._confirmed_at else None,
            "shipped_at": self._shipped_at.isoformat() if self._shipped_at else None,
            "delivered_at": self._delivered_at.isoformat() if self._delivered_at else None,
            "tracking_number": self._tracking_number,
            "item_count": self.item_count,
            "total_quantity": self.total_quantity,
            "is_bulk_order": self.is_bulk_order(),
            "is_high_value_order": self.is_high_value_order(),
            "requires_special_handling": self.requires_special_handling(),
        }
