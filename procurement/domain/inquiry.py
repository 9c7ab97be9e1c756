"""
Domain model for Inquiry aggregate.
"""
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from procurement.domain.aggregate import AggregateRoot
from procurement.domain.events import InquiryStatusChanged, utcnow
from procurement.domain.order import (
    generate_business_number,
    validate_currency,
    validate_identifier,
    validate_price,
)
from procurement.domain.status import InquiryStatus
from procurement.exceptions import InvalidTransitionError, ValidationError

QUOTE_VALIDITY = timedelta(days=30)

_INQUIRY_NUMBER_RE = re.compile(r"^INQ-(\d{8})-(\d{5})$")


@dataclass(frozen=True)
class InquiryId:
    """Inquiry identity value object (``INQ-YYYYMMDD-NNNNN`` for generated ids)."""
    value: str

    def __post_init__(self):
        object.__setattr__(self, "value", validate_identifier(self.value, "Inquiry ID"))

    @classmethod
    def generate(cls, now: datetime | None = None) -> InquiryId:
        return cls(generate_business_number("INQ", now))

    @property
    def date(self) -> str:
        match = _INQUIRY_NUMBER_RE.match(self.value)
        return match.group(1) if match else ""

    @property
    def sequence(self) -> str:
        match = _INQUIRY_NUMBER_RE.match(self.value)
        return match.group(2) if match else ""

    def __str__(self) -> str:
        return self.value


class Inquiry(AggregateRoot):
    """Inquiry aggregate root.

    A pending inquiry can be quoted once; the quote stays valid for
    ``QUOTE_VALIDITY`` after which it may be expired explicitly.
    """

    def __init__(
        self,
        id: InquiryId | str,
        customer_id: str,
        customer_email: str,
        customer_phone: str,
        company_name: str,
        subject: str,
        message: str,
        product_ids: Iterable[str] = (),
        quoted_price: Decimal | None = None,
        quoted_currency: str | None = None,
        notes: str | None = None,
        status: InquiryStatus | str = InquiryStatus.PENDING,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        quoted_at: datetime | None = None,
        expires_at: datetime | None = None,
        handled_by: str | None = None,
    ):
        inquiry_id = id if isinstance(id, InquiryId) else InquiryId(id)
        super().__init__(inquiry_id.value)

        if not str(customer_id or "").strip():
            raise ValidationError("Customer ID cannot be empty")
        if not str(subject or "").strip():
            raise ValidationError("Inquiry subject cannot be empty")

        self.inquiry_id = inquiry_id
        self.customer_id = str(customer_id)
        self.customer_email = customer_email
        self.customer_phone = customer_phone
        self.company_name = company_name
        self.subject = subject
        self.message = message
        self.product_ids = tuple(str(product_id) for product_id in product_ids)
        self._quoted_price = Decimal(str(quoted_price)) if quoted_price is not None else None
        self._quoted_currency = quoted_currency
        self.notes = notes
        self._status = status if isinstance(status, InquiryStatus) else InquiryStatus.from_tag(status)
        self.created_at = created_at or utcnow()
        self.updated_at = updated_at
        self._quoted_at = quoted_at
        self._expires_at = expires_at
        self._handled_by = handled_by

    @classmethod
    def create(
        cls,
        id: InquiryId | str,
        customer_id: str,
        customer_email: str,
        customer_phone: str,
        company_name: str,
        subject: str,
        message: str,
        product_ids: Iterable[str] = (),
    ) -> Inquiry:
        """Open a new pending inquiry."""
        return cls(
            id,
            customer_id,
            customer_email,
            customer_phone,
            company_name,
            subject,
            message,
            product_ids,
        )

    @classmethod
    def create_existing(cls, **fields: Any) -> Inquiry:
        """Rehydrate an inquiry from storage without recording events."""
        return cls(**fields)

    @property
    def status(self) -> InquiryStatus:
        return self._status

    @property
    def quoted_price(self) -> Decimal | None:
        return self._quoted_price

    @property
    def quoted_currency(self) -> str | None:
        return self._quoted_currency

    @property
    def quoted_at(self) -> datetime | None:
        return self._quoted_at

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    @property
    def handled_by(self) -> str | None:
        return self._handled_by

    def add_quote(
        self,
        price: Decimal,
        currency: str = "CNY",
        notes: str | None = None,
        handled_by: str | None = None,
    ) -> None:
        """Attach a quote and move to ``quoted``."""
        if not self._status.can_be_quoted:
            raise InvalidTransitionError(
                f"Inquiry cannot be quoted in status {self._status.value}",
                current=self._status.value,
                target=InquiryStatus.QUOTED.value,
            )
        quoted_price = validate_price(price, "quoted price")
        validate_currency(currency)

        quoted_at = utcnow()
        self._quoted_price = quoted_price
        self._quoted_currency = currency
        self.notes = notes
        self._handled_by = handled_by
        self._quoted_at = quoted_at
        self._expires_at = quoted_at + QUOTE_VALIDITY
        self._change_status(InquiryStatus.QUOTED, "Quote provided", handled_by, now=quoted_at)

    def accept(self, accepted_by: str | None = None) -> None:
        if not self._status.can_be_accepted:
            raise self._guard_error("accepted", InquiryStatus.ACCEPTED)
        self._change_status(InquiryStatus.ACCEPTED, "Quote accepted by customer", accepted_by)

    def reject(self, reason: str | None = None, rejected_by: str | None = None) -> None:
        if not self._status.can_be_rejected:
            raise self._guard_error("rejected", InquiryStatus.REJECTED)
        self._change_status(InquiryStatus.REJECTED, reason or "Quote rejected", rejected_by)

    def withdraw(self, reason: str | None = None, withdrawn_by: str | None = None) -> None:
        if not self._status.can_be_withdrawn:
            raise self._guard_error("withdrawn", InquiryStatus.WITHDRAWN)
        self._change_status(
            InquiryStatus.WITHDRAWN, reason or "Withdrawn by customer", withdrawn_by
        )

    def expire(self) -> None:
        if not self._status.is_quoted:
            raise InvalidTransitionError(
                "Only quoted inquiries can expire",
                current=self._status.value,
                target=InquiryStatus.EXPIRED.value,
            )
        self._change_status(InquiryStatus.EXPIRED, "Quote expired")

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the quote validity window has passed. Never changes status."""
        if self._expires_at is None:
            return False
        return self._expires_at < (now or utcnow())

    def has_quote(self) -> bool:
        return self._quoted_price is not None

    def update_notes(self, notes: str) -> None:
        self.notes = notes
        self.updated_at = utcnow()

    def _guard_error(self, verb: str, target: InquiryStatus) -> InvalidTransitionError:
        return InvalidTransitionError(
            f"Inquiry cannot be {verb} in status {self._status.value}",
            current=self._status.value,
            target=target.value,
        )

    def _change_status(
        self,
        new_status: InquiryStatus,
        reason: str | None = None,
        changed_by: str | None = None,
        now: datetime | None = None,
    ) -> None:
        if new_status is self._status:
            return
        if not self._status.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot transition from {self._status.value} to {new_status.value}",
                current=self._status.value,
                target=new_status.value,
            )

        old_status = self._status
        self._status = new_status
        self.updated_at = now or utcnow()
        self._record_event(
            InquiryStatusChanged.from_inquiry(
                self, old_status.value, new_status.value, reason, changed_by
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "company_name": self.company_name,
            "subject": self.subject,
            "message": self.message,
            "product_ids": list(self.product_ids),
            "quoted_price": str(self._quoted_price) if self._quoted_price is not None else None,
            "quoted_currency": self._quoted_currency,
            "notes": self.notes,
            "status": self._status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "quoted_at": self._quoted_at.isoformat() if self._quoted_at else None,
            "expires_at": self._expires_at.isoformat() if self._expires_at else None,
            "handled_by": self._handled_by,
            "is_expired": self.is_expired(),
        }
