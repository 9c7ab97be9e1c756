"""
Unit tests for the Inquiry aggregate.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from django.test import SimpleTestCase

from procurement.domain.events import InquiryStatusChanged, utcnow
from procurement.domain.inquiry import QUOTE_VALIDITY, Inquiry, InquiryId
from procurement.domain.status import InquiryStatus
from procurement.exceptions import InvalidTransitionError, ValidationError
from procurement.test.test_status import EXPECTED_INQUIRY_MOVES


def make_inquiry(**kwargs):
    return Inquiry.create(
        kwargs.pop("id", "INQ-20240101-00001"),
        kwargs.pop("customer_id", "CUST-1"),
        "buyer@example.com",
        "+86 10 1234 5678",
        "Acme Trading",
        kwargs.pop("subject", "Steel pipes"),
        "Need a quote for 500 units",
        kwargs.pop("product_ids", ["P-1", "P-2"]),
    )


def existing_inquiry(status, **kwargs):
    return Inquiry.create_existing(
        id="INQ-20240101-00002",
        customer_id="CUST-1",
        customer_email="buyer@example.com",
        customer_phone="",
        company_name="Acme Trading",
        subject="Valves",
        message="",
        status=status,
        updated_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        **kwargs,
    )


class InquiryIdTest(SimpleTestCase):

    def test_generate(self):
        inquiry_id = InquiryId.generate(datetime(2024, 7, 9, tzinfo=timezone.utc))
        self.assertTrue(inquiry_id.value.startswith("INQ-20240709-"))
        self.assertEqual(inquiry_id.date, "20240709")
        self.assertEqual(len(inquiry_id.sequence), 5)

    def test_invalid(self):
        with self.assertRaises(ValidationError):
            InquiryId("")


class InquiryLifecycleTest(SimpleTestCase):

    def test_create_is_pending_without_events(self):
        inquiry = make_inquiry()
        self.assertIs(inquiry.status, InquiryStatus.PENDING)
        self.assertFalse(inquiry.has_pending_events())
        self.assertEqual(inquiry.product_ids, ("P-1", "P-2"))

    def test_subject_required(self):
        with self.assertRaises(ValidationError):
            make_inquiry(subject=" ")

    def test_add_quote_sets_validity_window(self):
        inquiry = make_inquiry()
        before = utcnow()
        inquiry.add_quote(100, "CNY", notes="FOB Shanghai", handled_by="sales-1")
        after = utcnow()

        self.assertIs(inquiry.status, InquiryStatus.QUOTED)
        self.assertEqual(inquiry.quoted_price, Decimal("100"))
        self.assertEqual(inquiry.quoted_currency, "CNY")
        self.assertEqual(inquiry.handled_by, "sales-1")
        self.assertTrue(before <= inquiry.quoted_at <= after)
        self.assertLess(abs(inquiry.quoted_at - utcnow()), timedelta(seconds=1))
        self.assertEqual(inquiry.expires_at - inquiry.quoted_at, timedelta(days=30))
        self.assertEqual(QUOTE_VALIDITY, timedelta(days=30))

    def test_add_quote_records_status_change(self):
        inquiry = make_inquiry()
        inquiry.add_quote(Decimal("250.50"), "USD")
        (event,) = inquiry.pull_domain_events()
        self.assertIsInstance(event, InquiryStatusChanged)
        self.assertTrue(event.is_quoted())
        self.assertEqual(event.quoted_price, Decimal("250.50"))
        self.assertEqual(event.get("quoted_currency"), "USD")
        self.assertTrue(event.requires_notification)

    def test_add_quote_only_when_pending(self):
        inquiry = existing_inquiry(InquiryStatus.QUOTED)
        with self.assertRaises(InvalidTransitionError):
            inquiry.add_quote(100)

    def test_add_quote_validates_price_and_currency(self):
        with self.assertRaises(ValidationError):
            make_inquiry().add_quote(-1)
        with self.assertRaises(ValidationError):
            make_inquiry().add_quote("abc")
        with self.assertRaises(ValidationError):
            make_inquiry().add_quote(10, "EUR")
        with self.assertRaises(ValidationError):
            make_inquiry().add_quote(Decimal("99.99999"))

    def test_rejected_quote_leaves_inquiry_pending(self):
        inquiry = make_inquiry()
        with self.assertRaises(ValidationError):
            inquiry.add_quote(-5)
        self.assertIs(inquiry.status, InquiryStatus.PENDING)
        self.assertIsNone(inquiry.quoted_at)
        self.assertFalse(inquiry.has_pending_events())

    def test_accept_after_quote(self):
        inquiry = make_inquiry()
        inquiry.add_quote(100)
        inquiry.accept("CUST-1")
        self.assertIs(inquiry.status, InquiryStatus.ACCEPTED)
        events = inquiry.pull_domain_events()
        self.assertEqual([e.new_status for e in events], ["quoted", "accepted"])

    def test_accept_requires_quote(self):
        with self.assertRaises(InvalidTransitionError):
            make_inquiry().accept()

    def test_reject_and_withdraw_from_pending(self):
        inquiry = make_inquiry()
        inquiry.reject("out of stock")
        self.assertIs(inquiry.status, InquiryStatus.REJECTED)
        with self.assertRaises(InvalidTransitionError):
            inquiry.withdraw()

        inquiry = make_inquiry()
        inquiry.withdraw()
        self.assertIs(inquiry.status, InquiryStatus.WITHDRAWN)

    def test_expire_only_from_quoted(self):
        for status in InquiryStatus:
            with self.subTest(status=status):
                inquiry = existing_inquiry(status)
                if status is InquiryStatus.QUOTED:
                    inquiry.expire()
                    self.assertIs(inquiry.status, InquiryStatus.EXPIRED)
                    (event,) = inquiry.pull_domain_events()
                    self.assertTrue(event.is_expired())
                else:
                    with self.assertRaises(InvalidTransitionError):
                        inquiry.expire()
                    self.assertIs(inquiry.status, status)
                    self.assertFalse(inquiry.has_pending_events())

    def test_disallowed_transitions_leave_state_untouched(self):
        for current in InquiryStatus:
            for target in InquiryStatus:
                if target is current or target.value in EXPECTED_INQUIRY_MOVES[current.value]:
                    continue
                with self.subTest(current=current, target=target):
                    inquiry = existing_inquiry(current)
                    with self.assertRaises(InvalidTransitionError):
                        inquiry._change_status(target)
                    self.assertIs(inquiry.status, current)
                    self.assertEqual(inquiry.updated_at, datetime(2024, 1, 2, tzinfo=timezone.utc))
                    self.assertFalse(inquiry.has_pending_events())

    def test_self_transition_is_noop(self):
        inquiry = existing_inquiry(InquiryStatus.QUOTED)
        inquiry._change_status(InquiryStatus.QUOTED)
        self.assertFalse(inquiry.has_pending_events())
        self.assertEqual(inquiry.updated_at, datetime(2024, 1, 2, tzinfo=timezone.utc))


class InquiryExpiryTest(SimpleTestCase):

    def test_is_expired_is_pure_query(self):
        quoted_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        inquiry = existing_inquiry(
            InquiryStatus.QUOTED,
            quoted_price=Decimal("10"),
            quoted_currency="CNY",
            quoted_at=quoted_at,
            expires_at=quoted_at + QUOTE_VALIDITY,
        )
        self.assertFalse(inquiry.is_expired(quoted_at + timedelta(days=29)))
        self.assertTrue(inquiry.is_expired(quoted_at + timedelta(days=31)))
        self.assertIs(inquiry.status, InquiryStatus.QUOTED)
        self.assertFalse(inquiry.has_pending_events())

    def test_not_expired_without_quote(self):
        self.assertFalse(make_inquiry().is_expired())
        self.assertFalse(make_inquiry().has_quote())

    def test_to_dict(self):
        inquiry = make_inquiry()
        inquiry.add_quote(Decimal("99.90"), "JPY")
        data = inquiry.to_dict()
        self.assertEqual(data["status"], "quoted")
        self.assertEqual(data["quoted_price"], "99.90")
        self.assertEqual(data["product_ids"], ["P-1", "P-2"])
        self.assertFalse(data["is_expired"])
