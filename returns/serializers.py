"""
Returns Module - Serializers

Admin-supplied JSON is loosely shaped (the panel sends whatever it has).
The input serializers below pin each field down, state its default, and
hand the views plain values; output serializers shape what the panel reads.
"""

from rest_framework import serializers

from .models import Order, OrderItem, RefundRequest
from .shipping import PickupOverride


# ============================================================
# CREATE RETURN (REVERSE PICKUP) INPUT
# ============================================================

class PickupOverrideSerializer(serializers.Serializer):
    """
    Customer pickup address. Every field is optional; blanks fall back to
    the order's billing address. The postal code may arrive as zip,
    pincode or pin.
    """

    name = serializers.CharField(required=False, allow_blank=True, default='')
    phone = serializers.CharField(required=False, allow_blank=True, default='')
    address = serializers.CharField(required=False, allow_blank=True, default='')
    city = serializers.CharField(required=False, allow_blank=True, default='')
    state = serializers.CharField(required=False, allow_blank=True, default='')
    zip = serializers.CharField(required=False, allow_blank=True, default='')
    pincode = serializers.CharField(required=False, allow_blank=True, default='')
    pin = serializers.CharField(required=False, allow_blank=True, default='')


class CreateReturnSerializer(serializers.Serializer):
    """
    What the panel sends (POST body):
    {
        "order_id": "AbC123xyz",
        "pickup": {"name": "...", "phone": "...", "address": "...", "zip": "110087"},
        "reason": "refund-approved",
        "notes": "Created from admin Refunds page"
    }
    `orderId` is accepted as an alias of `order_id`.
    """

    order_id = serializers.CharField(max_length=64, trim_whitespace=True)
    pickup = PickupOverrideSerializer(required=False, allow_null=True, default=None)
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=200)
    notes = serializers.CharField(required=False, allow_blank=True, default='', max_length=2000)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and 'order_id' not in data and 'orderId' in data:
            data = data.copy()
            data['order_id'] = data.get('orderId')
        return super().to_internal_value(data)

    def validate(self, attrs):
        # An all-blank pickup is the same as no pickup
        attrs['pickup'] = PickupOverride.from_mapping(attrs.get('pickup'))
        return attrs


# ============================================================
# REFUND DECISION INPUT
# ============================================================

class ResolveRefundRequestSerializer(serializers.Serializer):
    """
    {"status": "rejected", "notes": "Item was used"}

    `decision` is accepted instead of `status`. Whether a note is required
    is decided by the service, so the rule holds for every caller.
    """

    status = serializers.CharField(required=False, allow_blank=True, default='')
    decision = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')

    def validate(self, attrs):
        decision = (attrs.get('status') or attrs.get('decision') or '').strip().lower()
        if decision not in RefundRequest.DECISIONS:
            raise serializers.ValidationError({'status': 'status must be approved|rejected'})
        return {'decision': decision, 'notes': (attrs.get('notes') or '').strip()}


# ============================================================
# OUTPUT SERIALIZERS
# ============================================================

class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['name', 'sku', 'qty', 'price']
        read_only_fields = fields


class OrderReturnSerializer(serializers.ModelSerializer):
    """Order as shown next to a refund request: who, what, and the return status."""

    items = OrderItemSerializer(many=True, read_only=True)
    has_return = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'order_number', 'billing_name', 'billing_email', 'billing_phone',
            'billing_address', 'billing_city', 'billing_state', 'billing_zip',
            'amount', 'discount', 'payable', 'items',
            'has_return', 'return_requested', 'return_requested_at',
            'return_awb', 'return_shipment_id', 'return_reason', 'return_notes',
            'created_at',
        ]
        read_only_fields = fields


class RefundRequestListSerializer(serializers.ModelSerializer):
    """
    Lightweight row for the refunds table. `has_return` comes from the
    view (one query for the whole page) via context['orders_with_return'].
    """

    has_return = serializers.SerializerMethodField()

    class Meta:
        model = RefundRequest
        fields = [
            'id', 'order_ref', 'contact_name', 'contact_email', 'contact_phone',
            'reasons', 'status', 'processed_by', 'processed_at',
            'has_return', 'created_at',
        ]

    def get_has_return(self, obj):
        return obj.order_ref.strip() in self.context.get('orders_with_return', set())


class RefundRequestSerializer(serializers.ModelSerializer):
    """Full refund request, with the referenced order when we have it."""

    order = serializers.SerializerMethodField()

    class Meta:
        model = RefundRequest
        fields = [
            'id', 'order_ref', 'contact_name', 'contact_email', 'contact_phone',
            'contact_city', 'contact_state', 'contact_zip', 'address',
            'reasons', 'description', 'status',
            'processed_by', 'processed_at', 'decision_notes',
            'order', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_order(self, obj):
        order = self.context.get('order')
        return OrderReturnSerializer(order).data if order else None
