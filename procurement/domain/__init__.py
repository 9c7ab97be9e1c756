from procurement.domain.aggregate import AggregateRoot
from procurement.domain.events import (
    DomainEvent,
    InquiryCreated,
    InquiryStatusChanged,
    OrderCreated,
    OrderStatusChanged,
)
from procurement.domain.inquiry import Inquiry, InquiryId
from procurement.domain.order import Order, OrderId, OrderItem
from procurement.domain.status import InquiryStatus, OrderStatus

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "Inquiry",
    "InquiryCreated",
    "InquiryId",
    "InquiryStatus",
    "InquiryStatusChanged",
    "Order",
    "OrderCreated",
    "OrderId",
    "OrderItem",
    "OrderStatus",
    "OrderStatusChanged",
]
