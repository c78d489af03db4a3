"""
Returns Module - Database Models

TABLES:
1. Order              → The storefront order; carries the reverse-shipment tracking once booked
2. OrderItem          → Line items of an order
3. RefundRequest      → Customer refund/return request, decided once by an admin
4. UserDocumentMirror → The customer's own copy of order/refund fields shown in their account
"""

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from .shipping import OrderSnapshot


# ============================================================
# ORDER MODEL
# ============================================================
# Orders are created by checkout (outside this service). The back-office
# only reads them and writes the return-tracking fields.

class Order(models.Model):

    # External order id, e.g. the storefront document id
    order_number = models.CharField(max_length=64, unique=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders',
    )

    # Billing sub-record
    billing_name = models.CharField(max_length=200, blank=True)
    billing_email = models.EmailField(blank=True)
    billing_phone = models.CharField(max_length=20, blank=True)
    billing_address = models.TextField(blank=True)
    billing_city = models.CharField(max_length=100, blank=True)
    billing_state = models.CharField(max_length=100, blank=True)
    billing_zip = models.CharField(max_length=20, blank=True)

    # Computed at checkout. gst/payable may be absent on older orders.
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    gst = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payable = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_id = models.CharField(max_length=200, blank=True)
    coupon_code = models.CharField(max_length=50, blank=True)

    # Reverse shipment (filled once, by the return-creation flow)
    return_requested = models.BooleanField(default=False)
    return_requested_at = models.DateTimeField(null=True, blank=True)
    return_awb = models.CharField(max_length=100, blank=True)
    return_shipment_id = models.CharField(max_length=100, blank=True)
    return_raw = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    return_reason = models.CharField(max_length=200, blank=True)
    return_notes = models.TextField(blank=True)
    return_pickup = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']

    def __str__(self):
        return f"Order {self.order_number}"

    @property
    def has_return(self):
        return bool(self.return_awb or self.return_shipment_id)

    @property
    def return_label(self):
        """Courier order number for the reverse shipment: RET + first 6 chars."""
        return f"RET{self.order_number[:6].upper()}"

    def snapshot(self):
        """Plain-data view of the order for the payload builder."""
        return OrderSnapshot(
            billing={
                'name': self.billing_name,
                'phone': self.billing_phone,
                'address': self.billing_address,
                'city': self.billing_city,
                'state': self.billing_state,
                'zip': self.billing_zip,
            },
            items=[
                {'name': item.name, 'qty': item.qty, 'price': item.price, 'sku': item.sku}
                for item in self.items.all()
            ],
            amount=self.amount,
            discount=self.discount,
            gst=self.gst,
            payable=self.payable,
        )


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    name = models.CharField(max_length=500)
    sku = models.CharField(max_length=100, blank=True)
    qty = models.PositiveIntegerField(default=1)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    class Meta:
        db_table = 'order_items'
        ordering = ['id']

    def __str__(self):
        return f"{self.name} x{self.qty}"


# ============================================================
# REFUND REQUEST MODEL
# ============================================================
# Created by the storefront. An admin approves or rejects it exactly once.

class RefundRequest(models.Model):

    STATUS_REQUESTED = 'requested'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_REQUESTED, 'Requested'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    DECISIONS = (STATUS_APPROVED, STATUS_REJECTED)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='refund_requests',
    )
    # Order number of the order being refunded (not a FK: the storefront
    # may reference orders this service has not seen yet)
    order_ref = models.CharField(max_length=64, blank=True, db_index=True)

    # Contact info as typed by the customer
    contact_name = models.CharField(max_length=200, blank=True)
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)
    contact_city = models.CharField(max_length=100, blank=True)
    contact_state = models.CharField(max_length=100, blank=True)
    contact_zip = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)

    reasons = models.JSONField(default=list, blank=True)   # e.g. ["damaged", "wrong_size"]
    description = models.TextField(blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_REQUESTED)

    # Audit trail of the admin decision
    processed_by = models.CharField(max_length=254, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    decision_notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'refund_requests'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='refund_status_created_idx'),
        ]

    def __str__(self):
        return f"Refund request {self.pk} ({self.status})"

    @property
    def is_decided(self):
        return self.status in self.DECISIONS


# ============================================================
# USER DOCUMENT MIRROR
# ============================================================
# Customers read their own copy of an order/refund request. Writes to it
# are best-effort and never block the primary update.

class UserDocumentMirror(models.Model):

    COLLECTION_ORDERS = 'orders'
    COLLECTION_REFUND_REQUESTS = 'refund_requests'

    COLLECTION_CHOICES = [
        (COLLECTION_ORDERS, 'Orders'),
        (COLLECTION_REFUND_REQUESTS, 'Refund Requests'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='mirrored_documents',
    )
    collection = models.CharField(max_length=30, choices=COLLECTION_CHOICES)
    document_id = models.CharField(max_length=64)
    data = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_document_mirrors'
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'collection', 'document_id'],
                name='unique_user_document_mirror',
            ),
        ]

    def __str__(self):
        return f"{self.collection}/{self.document_id} for user {self.user_id}"

    @classmethod
    def merge(cls, user_id, collection, document_id, fields):
        """Merge `fields` into the user's copy, creating it if needed."""
        mirror, _ = cls.objects.get_or_create(
            user_id=user_id,
            collection=collection,
            document_id=str(document_id),
        )
        mirror.data = {**(mirror.data or {}), **fields}
        mirror.save()
        return mirror
