"""
Application services for order and inquiry operations.

Each operation loads the aggregate, applies the change, saves it and
dispatches the drained events inside one transaction, so outbox rows are
committed or rolled back together with the aggregate.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import transaction

from procurement import conf
from procurement.domain.aggregate import AggregateRoot
from procurement.domain.events import InquiryCreated, utcnow
from procurement.domain.inquiry import Inquiry, InquiryId
from procurement.domain.order import Order, OrderId, OrderItem
from procurement.domain.status import OrderStatus
from procurement.events.dispatcher import DispatchResult, EventDispatcher
from procurement.exceptions import NotFoundError
from procurement.infra.repositories import InquiryRepository, OrderRepository


logger = logging.getLogger(__name__)


class _EventPublishingService:

    def __init__(self, dispatcher: EventDispatcher | None = None):
        self.dispatcher = dispatcher or conf.build_dispatcher()

    def _publish(self, aggregate: AggregateRoot, *extra_events) -> list[DispatchResult]:
        events = aggregate.pull_domain_events()
        events.extend(extra_events)
        return self.dispatcher.dispatch_all(events)


class OrderService(_EventPublishingService):
    """Service for order operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        dispatcher: EventDispatcher | None = None,
    ):
        super().__init__(dispatcher)
        self.order_repo = order_repo or OrderRepository()

    def get_order(self, order_id: str) -> Order:
        order = self.order_repo.find_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @transaction.atomic
    def place_order(
        self,
        customer_id: str,
        customer_email: str,
        items: Iterable[OrderItem | Mapping[str, Any]],
        currency: str = "CNY",
        order_id: str | None = None,
        shipping_address: str | None = None,
        billing_address: str | None = None,
        notes: str | None = None,
    ) -> Order:
        """Create a pending order and publish ``OrderCreated``."""
        order_items = [item if isinstance(item, OrderItem) else OrderItem(**item) for item in items]
        order = Order.create(
            order_id or OrderId.generate(),
            customer_id,
            customer_email,
            order_items,
            currency,
        )
        order.shipping_address = shipping_address
        order.billing_address = billing_address
        order.notes = notes

        self.order_repo.save(order)
        self._publish(order)
        logger.info(
            "order_placed",
            extra={
                "operation": "place_order",
                "order_id": order.id,
                "user_id": customer_id,
                "status": order.status.value,
            },
        )
        return order

    @transaction.atomic
    def change_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        reason: str | None = None,
        changed_by: str | None = None,
    ) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.change_status(new_status, reason, changed_by)
        self._save(order, "change_status", old_status)
        return order

    @transaction.atomic
    def confirm(self, order_id: str, confirmed_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.confirm(confirmed_by)
        self._save(order, "confirm", old_status)
        return order

    @transaction.atomic
    def start_processing(self, order_id: str, processed_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.start_processing(processed_by)
        self._save(order, "start_processing", old_status)
        return order

    @transaction.atomic
    def ship(self, order_id: str, tracking_number: str, shipped_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.ship(tracking_number, shipped_by)
        self._save(order, "ship", old_status)
        return order

    @transaction.atomic
    def deliver(self, order_id: str, delivered_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.deliver(delivered_by)
        self._save(order, "deliver", old_status)
        return order

    @transaction.atomic
    def cancel(self, order_id: str, reason: str | None = None, cancelled_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.cancel(reason, cancelled_by)
        self._save(order, "cancel", old_status)
        return order

    @transaction.atomic
    def refund(self, order_id: str, reason: str | None = None, refunded_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.refund(reason, refunded_by)
        self._save(order, "refund", old_status)
        return order

    @transaction.atomic
    def put_on_hold(self, order_id: str, reason: str | None = None, held_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.put_on_hold(reason, held_by)
        self._save(order, "put_on_hold", old_status)
        return order

    @transaction.atomic
    def resume_from_hold(self, order_id: str, resumed_by: str | None = None) -> Order:
        order = self.get_order(order_id)
        old_status = order.status
        order.resume_from_hold(resumed_by)
        self._save(order, "resume_from_hold", old_status)
        return order

    @transaction.atomic
    def add_item(self, order_id: str, item: OrderItem | Mapping[str, Any]) -> Order:
        order = self.get_order(order_id)
        order.add_item(item if isinstance(item, OrderItem) else OrderItem(**item))
        self._save(order, "add_item", order.status)
        return order

    @transaction.atomic
    def remove_item(self, order_id: str, product_id: str) -> Order:
        order = self.get_order(order_id)
        order.remove_item(product_id)
        self._save(order, "remove_item", order.status)
        return order

    @transaction.atomic
    def update_item_quantity(self, order_id: str, product_id: str, quantity: int) -> Order:
        order = self.get_order(order_id)
        order.update_item_quantity(product_id, quantity)
        self._save(order, "update_item_quantity", order.status)
        return order

    def _save(self, order: Order, operation: str, old_status: OrderStatus) -> None:
        self.order_repo.save(order)
        self._publish(order)
        logger.info(
            "order_updated",
            extra={
                "operation": operation,
                "order_id": order.id,
                "status": order.status.value,
                "previous_status": old_status.value,
            },
        )


class InquiryService(_EventPublishingService):
    """Service for inquiry operations."""

    def __init__(
        self,
        inquiry_repo: InquiryRepository | None = None,
        dispatcher: EventDispatcher | None = None,
    ):
        super().__init__(dispatcher)
        self.inquiry_repo = inquiry_repo or InquiryRepository()

    def get_inquiry(self, inquiry_id: str) -> Inquiry:
        inquiry = self.inquiry_repo.find_by_id(inquiry_id)
        if inquiry is None:
            raise NotFoundError(f"Inquiry {inquiry_id} not found")
        return inquiry

    @transaction.atomic
    def submit_inquiry(
        self,
        customer_id: str,
        customer_email: str,
        customer_phone: str,
        company_name: str,
        subject: str,
        message: str,
        product_ids: Iterable[str] = (),
        inquiry_id: str | None = None,
    ) -> Inquiry:
        """Open an inquiry and publish ``InquiryCreated``.

        The aggregate itself records nothing on creation; the submission
        is what announces it.
        """
        inquiry = Inquiry.create(
            inquiry_id or InquiryId.generate(),
            customer_id,
            customer_email,
            customer_phone,
            company_name,
            subject,
            message,
            product_ids,
        )
        self.inquiry_repo.save(inquiry)
        self._publish(inquiry, InquiryCreated.from_inquiry(inquiry))
        logger.info(
            "inquiry_submitted",
            extra={
                "operation": "submit_inquiry",
                "inquiry_id": inquiry.id,
                "user_id": customer_id,
            },
        )
        return inquiry

    @transaction.atomic
    def quote(
        self,
        inquiry_id: str,
        price: Decimal,
        currency: str = "CNY",
        notes: str | None = None,
        handled_by: str | None = None,
    ) -> Inquiry:
        inquiry = self.get_inquiry(inquiry_id)
        inquiry.add_quote(price, currency, notes, handled_by)
        self._save(inquiry, "quote")
        return inquiry

    @transaction.atomic
    def accept(self, inquiry_id: str, accepted_by: str | None = None) -> Inquiry:
        inquiry = self.get_inquiry(inquiry_id)
        inquiry.accept(accepted_by)
        self._save(inquiry, "accept")
        return inquiry

    @transaction.atomic
    def reject(self, inquiry_id: str, reason: str | None = None, rejected_by: str | None = None) -> Inquiry:
        inquiry = self.get_inquiry(inquiry_id)
        inquiry.reject(reason, rejected_by)
        self._save(inquiry, "reject")
        return inquiry

    @transaction.atomic
    def withdraw(self, inquiry_id: str, reason: str | None = None, withdrawn_by: str | None = None) -> Inquiry:
        inquiry = self.get_inquiry(inquiry_id)
        inquiry.withdraw(reason, withdrawn_by)
        self._save(inquiry, "withdraw")
        return inquiry

    @transaction.atomic
    def expire_stale_quotes(self, now: datetime | None = None) -> list[str]:
        """Expire every quoted inquiry whose quote has lapsed."""
        now = now or utcnow()
        expired = []
        for inquiry in self.inquiry_repo.find_quoted():
            if inquiry.is_expired(now):
                inquiry.expire()
                self._save(inquiry, "expire")
                expired.append(inquiry.id)
        return expired

    def _save(self, inquiry: Inquiry, operation: str) -> None:
        self.inquiry_repo.save(inquiry)
        self._publish(inquiry)
        logger.info(
            "inquiry_updated",
            extra={
                "operation": operation,
                "inquiry_id": inquiry.id,
                "status": inquiry.status.value,
            },
        )
