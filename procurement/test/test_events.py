"""
Tests for domain events and their JSON form.
"""
import json
from datetime import datetime, timezone
from decimal import Decimal

from django.test import SimpleTestCase

from procurement.domain.events import (
    DomainEvent,
    InquiryCreated,
    InquiryStatusChanged,
    OrderCreated,
    OrderStatusChanged,
    event_class_for,
)
from procurement.domain.inquiry import Inquiry
from procurement.domain.order import Order, OrderItem
from procurement.exceptions import SerializationError


class StockReserved(DomainEvent):
    default_priority = 3


def make_order():
    return Order.create(
        "B2B-20240101-00001",
        "CUST-1",
        "buyer@example.com",
        [
            OrderItem("P-1", "Pipe", 3, Decimal("10.10"), specifications={"size": "DN50"}),
            OrderItem("P-2", "Valve", 2, Decimal("5")),
        ],
    )


class DomainEventTest(SimpleTestCase):

    def test_defaults(self):
        event = StockReserved(data={"sku": "P-1"})
        self.assertEqual(event.event_type, "StockReserved")
        self.assertEqual(event.name, "StockReserved")
        self.assertFalse(event.is_async)
        self.assertEqual(event.priority, 3)
        self.assertTrue(event.event_id)
        self.assertEqual(event.occurred_at.tzinfo, timezone.utc)

    def test_identity_is_unique(self):
        self.assertNotEqual(StockReserved().event_id, StockReserved().event_id)

    def test_event_is_hashable(self):
        event = StockReserved(data={"lines": [{"sku": "P-1"}]}, metadata={"channel": "web"})
        copy = StockReserved.deserialize(event.serialize())
        self.assertEqual(copy, event)
        self.assertEqual(hash(copy), hash(event))
        self.assertEqual(len({event, copy, StockReserved()}), 2)

    def test_event_is_immutable(self):
        event = StockReserved(data={"lines": [{"sku": "P-1"}]})
        with self.assertRaises(AttributeError):
            event.priority = 9
        with self.assertRaises(TypeError):
            event.data["sku"] = "P-2"
        with self.assertRaises(TypeError):
            event.data["lines"][0]["sku"] = "P-2"

    def test_data_is_snapshot(self):
        source = {"qty": 1}
        event = StockReserved(data=source)
        source["qty"] = 2
        self.assertEqual(event.get("qty"), 1)

    def test_explicit_flags_override_class_defaults(self):
        event = StockReserved(is_async=True, priority=12)
        self.assertTrue(event.is_async)
        self.assertEqual(event.priority, 12)

    def test_registry(self):
        self.assertIs(event_class_for("StockReserved"), StockReserved)
        self.assertIs(event_class_for("OrderCreated"), OrderCreated)
        self.assertIsNone(event_class_for("Nope"))


class EventSerializationTest(SimpleTestCase):

    def assertSameEvent(self, restored, original):
        self.assertIs(type(restored), type(original))
        self.assertEqual(restored.event_id, original.event_id)
        self.assertEqual(restored.occurred_at, original.occurred_at)
        self.assertEqual(dict(restored.to_dict()["data"]), original.to_dict()["data"])
        self.assertEqual(restored.to_dict()["metadata"], original.to_dict()["metadata"])
        self.assertEqual(restored.is_async, original.is_async)
        self.assertEqual(restored.priority, original.priority)

    def test_round_trip_order_created(self):
        event = OrderCreated.from_order(make_order(), metadata={"channel": "web"})
        restored = DomainEvent.deserialize(event.serialize())
        self.assertSameEvent(restored, event)
        self.assertEqual(restored.total_amount, Decimal("40.30"))
        self.assertEqual(restored.get_metadata("channel"), "web")

    def test_round_trip_custom_event(self):
        event = StockReserved(data={"sku": "P-1", "qty": 4}, is_async=True)
        self.assertSameEvent(DomainEvent.deserialize(event.serialize()), event)

    def test_round_trip_from_bytes_and_mapping(self):
        event = StockReserved(data={"sku": "P-1"})
        self.assertSameEvent(DomainEvent.deserialize(event.serialize().encode()), event)
        self.assertSameEvent(DomainEvent.deserialize(event.to_dict()), event)

    def test_serialized_fields(self):
        payload = json.loads(StockReserved(data={"a": 1}).serialize())
        self.assertEqual(
            set(payload),
            {"type", "id", "timestamp", "data", "metadata", "async", "priority"},
        )
        self.assertEqual(payload["type"], "StockReserved")

    def test_unknown_type(self):
        payload = StockReserved().to_dict()
        payload["type"] = "Unheard"
        with self.assertRaises(SerializationError):
            DomainEvent.deserialize(payload)

    def test_missing_field(self):
        payload = StockReserved().to_dict()
        del payload["priority"]
        with self.assertRaises(SerializationError):
            DomainEvent.deserialize(payload)

    def test_malformed_json(self):
        with self.assertRaises(SerializationError):
            DomainEvent.deserialize("{not json")

    def test_bad_timestamp(self):
        payload = StockReserved().to_dict()
        payload["timestamp"] = "yesterday"
        with self.assertRaises(SerializationError):
            DomainEvent.deserialize(payload)

    def test_subclass_deserialize_checks_kind(self):
        payload = StockReserved().serialize()
        with self.assertRaises(SerializationError):
            OrderCreated.deserialize(payload)

    def test_unserializable_data(self):
        with self.assertRaises(SerializationError):
            StockReserved(data={"amount": Decimal("1.5")}).serialize()


class OrderEventsTest(SimpleTestCase):

    def test_order_created_snapshot(self):
        event = OrderCreated.from_order(make_order())
        self.assertEqual(event.order_id, "B2B-20240101-00001")
        self.assertEqual(event.customer_id, "CUST-1")
        self.assertEqual(event.item_count, 2)
        self.assertEqual(event.total_quantity, 5)
        self.assertEqual(event.product_ids, ["P-1", "P-2"])
        self.assertEqual(event.currency, "CNY")
        self.assertTrue(event.requires_notification)
        self.assertFalse(event.is_bulk_order())
        self.assertEqual(event.get_metadata("category"), "order_lifecycle")

    def test_order_status_changed_helpers(self):
        order = make_order()
        order.confirm()
        event = OrderStatusChanged.from_order(order, "pending", "confirmed", "ok", "sales")
        self.assertTrue(event.is_progressing())
        self.assertTrue(event.requires_inventory_update())
        self.assertFalse(event.is_refund())
        self.assertEqual(event.priority, 8)
        self.assertTrue(event.is_async)

    def test_cancellation_is_not_progress(self):
        event = OrderStatusChanged.from_order(make_order(), "pending", "cancelled")
        self.assertFalse(event.is_progressing())
        self.assertTrue(event.is_cancellation())


class InquiryEventsTest(SimpleTestCase):

    def make_inquiry(self):
        return Inquiry.create(
            "INQ-20240101-00001",
            "CUST-1",
            "buyer@example.com",
            "",
            "Acme",
            "Pipes",
            "Please quote",
            ["P-1"],
        )

    def test_inquiry_created(self):
        event = InquiryCreated.from_inquiry(self.make_inquiry())
        self.assertEqual(event.inquiry_id, "INQ-20240101-00001")
        self.assertEqual(event.company_name, "Acme")
        self.assertEqual(event.product_ids, ["P-1"])
        self.assertTrue(event.requires_notification)
        self.assertTrue(event.requires_follow_up)
        self.assertEqual(event.priority, 10)

    def test_inquiry_status_changed_round_trip(self):
        inquiry = self.make_inquiry()
        inquiry.add_quote(Decimal("12.34"), "USD")
        (event,) = inquiry.pull_domain_events()
        restored = DomainEvent.deserialize(event.serialize())
        self.assertIsInstance(restored, InquiryStatusChanged)
        self.assertEqual(restored.quoted_price, Decimal("12.34"))
        self.assertTrue(restored.is_status_progress())
        self.assertEqual(
            datetime.fromisoformat(restored.get("expires_at")),
            inquiry.expires_at,
        )
