"""
Expose ORM models for Django's auto-discovery while keeping real definitions
under the infrastructure package.
"""

from procurement.infra.models import InquiryORM, OrderItemORM, OrderORM, TimeStampedModel
from procurement.infra.outbox import OutboxEvent
