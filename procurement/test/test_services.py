"""
Tests for application services: persistence plus event publication.
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase

from procurement.domain.events import DomainEvent, utcnow
from procurement.domain.status import InquiryStatus, OrderStatus
from procurement.events import EventDispatcher, StatisticsListener
from procurement.exceptions import (
    InvalidTransitionError,
    ItemConstraintError,
    NotFoundError,
)
from procurement.infra.models import InquiryORM, OrderORM
from procurement.infra.outbox import OutboxEvent, OutboxEventQueue
from procurement.infra.worker import OutboxProcessor
from procurement.services import InquiryService, OrderService


ITEMS = [
    {"product_id": "P-1", "product_name": "Pipe", "quantity": 3, "unit_price": "10"},
    {"product_id": "P-2", "product_name": "Valve", "quantity": 2, "unit_price": "5"},
]


class BrokenQueue:

    def enqueue(self, message):
        raise RuntimeError("queue unavailable")


def outbox_types():
    return list(OutboxEvent.objects.order_by("created_at", "id").values_list("event_type", flat=True))


class OrderServiceTest(TestCase):

    def setUp(self):
        self.dispatcher = EventDispatcher(queue=OutboxEventQueue())
        self.service = OrderService(dispatcher=self.dispatcher)

    def place(self, **kwargs):
        return self.service.place_order("CUST-1", "buyer@example.com", ITEMS, **kwargs)

    def test_place_order_persists_and_queues_event(self):
        order = self.place(order_id="B2B-20240101-00001", shipping_address="Dock 4")

        self.assertEqual(order.id, "B2B-20240101-00001")
        self.assertFalse(order.has_pending_events())
        stored = OrderORM.objects.get(id=order.id)
        self.assertEqual(stored.status, "pending")
        self.assertEqual(stored.total_amount, Decimal("40"))
        self.assertEqual(stored.shipping_address, "Dock 4")
        self.assertEqual(outbox_types(), ["OrderCreated"])
        self.assertEqual(OutboxEvent.objects.get().queue, "events-high")

    def test_generated_order_id(self):
        order = self.place()
        self.assertTrue(order.order_id.is_b2b)

    def test_lifecycle_queues_status_changes(self):
        order = self.place()
        self.service.confirm(order.id, "sales")
        self.service.start_processing(order.id)
        self.service.ship(order.id, "SF123")
        self.service.deliver(order.id)

        loaded = self.service.get_order(order.id)
        self.assertIs(loaded.status, OrderStatus.DELIVERED)
        self.assertEqual(loaded.tracking_number, "SF123")
        self.assertEqual(
            outbox_types(),
            ["OrderCreated"] + ["OrderStatusChanged"] * 4,
        )
        self.assertEqual(
            OutboxEvent.objects.filter(event_type="OrderStatusChanged").values_list("queue", flat=True).distinct().get(),
            "events-medium",
        )

    def test_invalid_transition_changes_nothing(self):
        order = self.place()
        with self.assertRaises(InvalidTransitionError):
            self.service.deliver(order.id)
        self.assertEqual(OrderORM.objects.get(id=order.id).status, "pending")
        self.assertEqual(outbox_types(), ["OrderCreated"])

    def test_change_status_by_tag(self):
        order = self.place()
        self.service.change_status(order.id, "confirmed", reason="paid upfront")
        event = DomainEvent.deserialize(OutboxEvent.objects.latest("id").payload)
        self.assertEqual(event.new_status, "confirmed")
        self.assertEqual(event.reason, "paid upfront")

    def test_cancel_and_hold(self):
        order = self.place()
        self.service.confirm(order.id)
        self.service.put_on_hold(order.id, "credit check")
        self.service.resume_from_hold(order.id)
        self.service.cancel(order.id, "customer request")
        self.assertIs(self.service.get_order(order.id).status, OrderStatus.CANCELLED)

    def test_refund_after_delivery(self):
        order = self.place()
        for step in ("confirm", "start_processing"):
            getattr(self.service, step)(order.id)
        self.service.ship(order.id, "SF1")
        self.service.deliver(order.id)
        self.service.refund(order.id, "damaged")
        self.assertIs(self.service.get_order(order.id).status, OrderStatus.REFUNDED)

    def test_item_changes_are_saved_without_events(self):
        order = self.place()
        self.service.add_item(
            order.id,
            {"product_id": "P-3", "product_name": "Flange", "quantity": 1, "unit_price": "7.5"},
        )
        self.service.update_item_quantity(order.id, "P-1", 10)
        self.service.remove_item(order.id, "P-2")

        loaded = self.service.get_order(order.id)
        self.assertEqual([i.product_id for i in loaded.items], ["P-1", "P-3"])
        self.assertEqual(loaded.total_amount, Decimal("107.5"))
        self.assertEqual(outbox_types(), ["OrderCreated"])

    def test_removing_last_item_is_rejected(self):
        order = self.service.place_order(
            "CUST-1", "buyer@example.com", ITEMS[:1], order_id="B2B-20240101-00009"
        )
        with self.assertRaises(ItemConstraintError):
            self.service.remove_item(order.id, "P-1")
        self.assertEqual(len(self.service.get_order(order.id).items), 1)

    def test_unknown_order(self):
        with self.assertRaises(NotFoundError) as ctx:
            self.service.confirm("B2B-20990101-00000")
        self.assertEqual(ctx.exception.code, "NOT_FOUND")

    def test_queue_failure_rolls_back_save(self):
        service = OrderService(dispatcher=EventDispatcher(queue=BrokenQueue()))
        with self.assertRaises(RuntimeError):
            service.place_order("CUST-1", "buyer@example.com", ITEMS, order_id="B2B-20240101-00005")
        self.assertFalse(OrderORM.objects.filter(id="B2B-20240101-00005").exists())

    def test_outbox_worker_feeds_listeners(self):
        self.place()
        self.place()
        stats = StatisticsListener()
        consumer = EventDispatcher()
        consumer.listen("*", stats)

        self.assertEqual(OutboxProcessor(consumer).process_outbox_events(), 2)
        self.assertEqual(stats.orders_created, 2)
        self.assertEqual(stats.revenue["CNY"], Decimal("80"))


class InquiryServiceTest(TestCase):

    def setUp(self):
        self.service = InquiryService(dispatcher=EventDispatcher(queue=OutboxEventQueue()))

    def submit(self, inquiry_id=None):
        return self.service.submit_inquiry(
            "CUST-1",
            "buyer@example.com",
            "+86 21 5555 0000",
            "Acme Trading",
            "Valves",
            "Need 200 DN50 valves",
            ["P-2"],
            inquiry_id=inquiry_id,
        )

    def test_submit_publishes_inquiry_created(self):
        inquiry = self.submit("INQ-20240101-00001")
        self.assertTrue(InquiryORM.objects.filter(id=inquiry.id).exists())
        self.assertEqual(outbox_types(), ["InquiryCreated"])
        event = DomainEvent.deserialize(OutboxEvent.objects.get().payload)
        self.assertEqual(event.inquiry_id, inquiry.id)
        self.assertTrue(event.requires_follow_up)

    def test_quote_and_accept(self):
        inquiry = self.submit()
        self.service.quote(inquiry.id, Decimal("880.00"), "USD", handled_by="sales-2")
        self.service.accept(inquiry.id, "CUST-1")

        loaded = self.service.get_inquiry(inquiry.id)
        self.assertIs(loaded.status, InquiryStatus.ACCEPTED)
        self.assertEqual(loaded.quoted_price, Decimal("880"))
        self.assertEqual(
            outbox_types(),
            ["InquiryCreated", "InquiryStatusChanged", "InquiryStatusChanged"],
        )

    def test_reject_and_withdraw(self):
        first = self.submit()
        self.service.reject(first.id, "no capacity")
        second = self.submit()
        self.service.withdraw(second.id)
        self.assertIs(self.service.get_inquiry(first.id).status, InquiryStatus.REJECTED)
        self.assertIs(self.service.get_inquiry(second.id).status, InquiryStatus.WITHDRAWN)

    def test_accept_without_quote(self):
        inquiry = self.submit()
        with self.assertRaises(InvalidTransitionError):
            self.service.accept(inquiry.id)
        self.assertEqual(outbox_types(), ["InquiryCreated"])

    def test_expire_stale_quotes(self):
        stale = self.submit("INQ-20240101-00001")
        self.service.quote(stale.id, 100)
        fresh = self.submit("INQ-20240101-00002")

        self.assertEqual(self.service.expire_stale_quotes(), [])
        expired = self.service.expire_stale_quotes(now=utcnow() + timedelta(days=31))

        self.assertEqual(expired, [stale.id])
        self.assertIs(self.service.get_inquiry(stale.id).status, InquiryStatus.EXPIRED)
        self.assertIs(self.service.get_inquiry(fresh.id).status, InquiryStatus.PENDING)

    def test_unknown_inquiry(self):
        with self.assertRaises(NotFoundError):
            self.service.quote("INQ-20990101-00000", 10)
