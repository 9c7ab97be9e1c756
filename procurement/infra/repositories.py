"""
Repositories for the Order and Inquiry aggregates.

Loading always goes through ``create_existing`` so rehydrated aggregates
carry no pending events.
"""
from __future__ import annotations

import copy
from typing import Any

from django.db import transaction

from procurement.domain.inquiry import Inquiry
from procurement.domain.order import Order, OrderItem
from procurement.infra.models import InquiryORM, OrderItemORM, OrderORM


class OrderRepository:
    """Django ORM repository for Order aggregate."""

    def find_by_id(self, order_id: str) -> Order | None:
        try:
            order_orm = OrderORM.objects.prefetch_related("items").get(id=str(order_id))
        except OrderORM.DoesNotExist:
            return None
        return self._to_domain(order_orm)

    def find_all(self) -> list[Order]:
        orders_orm = OrderORM.objects.prefetch_related("items").order_by("placed_at", "id")
        return [self._to_domain(order_orm) for order_orm in orders_orm]

    def find_by_customer(self, customer_id: str, limit: int = 50, offset: int = 0) -> list[Order]:
        orders_orm = (
            OrderORM.objects
            .filter(customer_id=customer_id)
            .prefetch_related("items")
            .order_by("-placed_at")[offset:offset + limit]
        )
        return [self._to_domain(order_orm) for order_orm in orders_orm]

    @transaction.atomic
    def save(self, order: Order) -> str:
        """Save order aggregate. Pending events are left to the caller."""
        order_orm, created = OrderORM.objects.update_or_create(
            id=order.id,
            defaults={
                "customer_id": order.customer_id,
                "customer_email": order.customer_email,
                "currency": order.currency,
                "status": order.status.value,
                "total_amount": order.total_amount,
                "shipping_address": order.shipping_address,
                "billing_address": order.billing_address,
                "notes": order.notes,
                "tracking_number": order.tracking_number,
                "placed_at": order.created_at,
                "changed_at": order.updated_at,
                "confirmed_at": order.confirmed_at,
                "shipped_at": order.shipped_at,
                "delivered_at": order.delivered_at,
            },
        )

        if not created:
            OrderItemORM.objects.filter(order=order_orm).delete()

        OrderItemORM.objects.bulk_create([
            OrderItemORM(
                order=order_orm,
                position=position,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                currency=item.currency,
                specifications=dict(item.specifications),
            )
            for position, item in enumerate(order.items)
        ])
        return order_orm.id

    def delete(self, order_id: str) -> None:
        OrderORM.objects.filter(id=str(order_id)).delete()

    def _to_domain(self, order_orm: OrderORM) -> Order:
        items = [
            OrderItem(
                product_id=item_orm.product_id,
                product_name=item_orm.product_name,
                quantity=item_orm.quantity,
                unit_price=item_orm.unit_price,
                currency=item_orm.currency,
                specifications=item_orm.specifications,
            )
            for item_orm in order_orm.items.all()
        ]
        return Order.create_existing(
            id=order_orm.id,
            customer_id=order_orm.customer_id,
            customer_email=order_orm.customer_email,
            items=items,
            currency=order_orm.currency,
            status=order_orm.status,
            shipping_address=order_orm.shipping_address,
            billing_address=order_orm.billing_address,
            notes=order_orm.notes,
            created_at=order_orm.placed_at,
            updated_at=order_orm.changed_at,
            confirmed_at=order_orm.confirmed_at,
            shipped_at=order_orm.shipped_at,
            delivered_at=order_orm.delivered_at,
            tracking_number=order_orm.tracking_number,
        )


class InquiryRepository:
    """Django ORM repository for Inquiry aggregate."""

    def find_by_id(self, inquiry_id: str) -> Inquiry | None:
        try:
            inquiry_orm = InquiryORM.objects.get(id=str(inquiry_id))
        except InquiryORM.DoesNotExist:
            return None
        return self._to_domain(inquiry_orm)

    def find_all(self) -> list[Inquiry]:
        return [self._to_domain(i) for i in InquiryORM.objects.order_by("submitted_at", "id")]

    def find_quoted(self) -> list[Inquiry]:
        rows = InquiryORM.objects.filter(status="quoted").order_by("expires_at")
        return [self._to_domain(i) for i in rows]

    @transaction.atomic
    def save(self, inquiry: Inquiry) -> str:
        inquiry_orm, _ = InquiryORM.objects.update_or_create(
            id=inquiry.id,
            defaults={
                "customer_id": inquiry.customer_id,
                "customer_email": inquiry.customer_email,
                "customer_phone": inquiry.customer_phone or "",
                "company_name": inquiry.company_name or "",
                "subject": inquiry.subject,
                "message": inquiry.message or "",
                "product_ids": list(inquiry.product_ids),
                "status": inquiry.status.value,
                "quoted_price": inquiry.quoted_price,
                "quoted_currency": inquiry.quoted_currency,
                "notes": inquiry.notes,
                "handled_by": inquiry.handled_by,
                "submitted_at": inquiry.created_at,
                "changed_at": inquiry.updated_at,
                "quoted_at": inquiry.quoted_at,
                "expires_at": inquiry.expires_at,
            },
        )
        return inquiry_orm.id

    def delete(self, inquiry_id: str) -> None:
        InquiryORM.objects.filter(id=str(inquiry_id)).delete()

    def _to_domain(self, inquiry_orm: InquiryORM) -> Inquiry:
        return Inquiry.create_existing(
            id=inquiry_orm.id,
            customer_id=inquiry_orm.customer_id,
            customer_email=inquiry_orm.customer_email,
            customer_phone=inquiry_orm.customer_phone,
            company_name=inquiry_orm.company_name,
            subject=inquiry_orm.subject,
            message=inquiry_orm.message,
            product_ids=inquiry_orm.product_ids,
            quoted_price=inquiry_orm.quoted_price,
            quoted_currency=inquiry_orm.quoted_currency,
            notes=inquiry_orm.notes,
            status=inquiry_orm.status,
            created_at=inquiry_orm.submitted_at,
            updated_at=inquiry_orm.changed_at,
            quoted_at=inquiry_orm.quoted_at,
            expires_at=inquiry_orm.expires_at,
            handled_by=inquiry_orm.handled_by,
        )


class InMemoryOrderRepository:
    """Process-local order storage holding plain snapshots."""

    def __init__(self):
        self._records: dict[str, dict[str, Any]] = {}

    def save(self, order: Order) -> str:
        self._records[order.id] = _order_record(order)
        return order.id

    def find_by_id(self, order_id: str) -> Order | None:
        record = self._records.get(str(order_id))
        if record is None:
            return None
        return _order_from_record(record)

    def find_all(self) -> list[Order]:
        return [_order_from_record(record) for record in self._records.values()]

    def delete(self, order_id: str) -> None:
        self._records.pop(str(order_id), None)


class InMemoryInquiryRepository:
    """Process-local inquiry storage holding plain snapshots."""

    def __init__(self):
        self._records: dict[str, dict[str, Any]] = {}

    def save(self, inquiry: Inquiry) -> str:
        self._records[inquiry.id] = _inquiry_record(inquiry)
        return inquiry.id

    def find_by_id(self, inquiry_id: str) -> Inquiry | None:
        record = self._records.get(str(inquiry_id))
        if record is None:
            return None
        return Inquiry.create_existing(**copy.deepcopy(record))

    def find_all(self) -> list[Inquiry]:
        return [Inquiry.create_existing(**copy.deepcopy(r)) for r in self._records.values()]

    def find_quoted(self) -> list[Inquiry]:
        return [i for i in self.find_all() if i.status.is_quoted]

    def delete(self, inquiry_id: str) -> None:
        self._records.pop(str(inquiry_id), None)


def _order_record(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "customer_id": order.customer_id,
        "customer_email": order.customer_email,
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "currency": item.currency,
                "specifications": dict(item.specifications),
            }
            for item in order.items
        ],
        "currency": order.currency,
        "status": order.status.value,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "notes": order.notes,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "confirmed_at": order.confirmed_at,
        "shipped_at": order.shipped_at,
        "delivered_at": order.delivered_at,
        "tracking_number": order.tracking_number,
    }


def _order_from_record(record: dict[str, Any]) -> Order:
    fields = copy.deepcopy(record)
    fields["items"] = [OrderItem(**item) for item in fields["items"]]
    return Order.create_existing(**fields)


def _inquiry_record(inquiry: Inquiry) -> dict[str, Any]:
    return {
        "id": inquiry.id,
        "customer_id": inquiry.customer_id,
        "customer_email": inquiry.customer_email,
        "customer_phone": inquiry.customer_phone,
        "company_name": inquiry.company_name,
        "subject": inquiry.subject,
        "message": inquiry.message,
        "product_ids": list(inquiry.product_ids),
        "quoted_price": inquiry.quoted_price,
        "quoted_currency": inquiry.quoted_currency,
        "notes": inquiry.notes,
        "status": inquiry.status.value,
        "created_at": inquiry.created_at,
        "updated_at": inquiry.updated_at,
        "quoted_at": inquiry.quoted_at,
        "expires_at": inquiry.expires_at,
        "handled_by": inquiry.handled_by,
    }
