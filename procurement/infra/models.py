from __future__ import annotations

from django.db import models

from procurement.domain.status import InquiryStatus, OrderStatus


ORDER_STATUS_CHOICES = tuple((status.value, status.name.replace("_", " ").title()) for status in OrderStatus)
INQUIRY_STATUS_CHOICES = tuple((status.value, status.name.title()) for status in InquiryStatus)


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class OrderORM(TimeStampedModel):
    id = models.CharField(primary_key=True, max_length=50)
    customer_id = models.CharField(max_length=50)
    customer_email = models.CharField(max_length=255)
    currency = models.CharField(max_length=3)
    status = models.CharField(max_length=20, choices=ORDER_STATUS_CHOICES)
    # Denormalized for reporting; the aggregate always recomputes it.
    total_amount = models.DecimalField(max_digits=20, decimal_places=4)
    shipping_address = models.TextField(null=True, blank=True)
    billing_address = models.TextField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    tracking_number = models.CharField(max_length=100, null=True, blank=True)
    placed_at = models.DateTimeField()
    changed_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("customer_id", "status")),
            models.Index(fields=("status",)),
        ]


class OrderItemORM(TimeStampedModel):
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    position = models.PositiveIntegerField()
    product_id = models.CharField(max_length=50)
    product_name = models.CharField(max_length=255)
    quantity = models.IntegerField()
    unit_price = models.DecimalField(max_digits=20, decimal_places=4)
    currency = models.CharField(max_length=3)
    specifications = models.JSONField(default=dict)

    class Meta:
        ordering = ("position",)
        indexes = [
            models.Index(fields=("order",)),
        ]


class InquiryORM(TimeStampedModel):
    id = models.CharField(primary_key=True, max_length=50)
    customer_id = models.CharField(max_length=50)
    customer_email = models.CharField(max_length=255)
    customer_phone = models.CharField(max_length=50, blank=True, default="")
    company_name = models.CharField(max_length=255, blank=True, default="")
    subject = models.CharField(max_length=255)
    message = models.TextField(blank=True, default="")
    product_ids = models.JSONField(default=list)
    status = models.CharField(max_length=20, choices=INQUIRY_STATUS_CHOICES)
    quoted_price = models.DecimalField(max_digits=20, decimal_places=4, null=True, blank=True)
    quoted_currency = models.CharField(max_length=3, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    handled_by = models.CharField(max_length=100, null=True, blank=True)
    submitted_at = models.DateTimeField()
    changed_at = models.DateTimeField(null=True, blank=True)
    quoted_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("customer_id", "status")),
            models.Index(fields=("status", "expires_at")),
        ]
