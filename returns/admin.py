"""
Returns Module - Django Admin Configuration

Internal panel for the operations team to:
- Look up orders and their reverse-shipment tracking
- Review refund requests and approve them in bulk
- Inspect what customers see in their own copy of a document

Rejections need a note for the customer, so they go through the API
(POST /api/v1/refund-requests/{id}/resolve/), not a bulk action.

Access at: http://127.0.0.1:8000/admin/
"""

from django.contrib import admin, messages

from . import services
from .errors import BackofficeError
from .models import Order, OrderItem, RefundRequest, UserDocumentMirror


# ============================================================
# INLINE MODELS (shown inside parent model's page)
# ============================================================

class OrderItemInline(admin.TabularInline):
    """Show line items inside the Order detail page."""
    model = OrderItem
    extra = 0
    fields = ['name', 'sku', 'qty', 'price']


# ============================================================
# ORDER ADMIN
# ============================================================

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'billing_name', 'billing_phone',
        'payable', 'return_requested', 'return_awb', 'created_at',
    ]
    list_filter = ['return_requested', 'billing_state']
    search_fields = ['order_number', 'billing_name', 'billing_email', 'billing_phone', 'return_awb']
    # Return fields are written only by the return-creation flow
    readonly_fields = [
        'return_requested', 'return_requested_at', 'return_awb', 'return_shipment_id',
        'return_reason', 'return_notes', 'return_pickup', 'return_raw',
        'created_at', 'updated_at',
    ]
    list_per_page = 25
    inlines = [OrderItemInline]

    fieldsets = (
        ('Order Info', {
            'fields': ('order_number', 'user', 'payment_id', 'coupon_code')
        }),
        ('Billing', {
            'fields': (
                'billing_name', 'billing_email', 'billing_phone', 'billing_address',
                'billing_city', 'billing_state', 'billing_zip',
            )
        }),
        ('Amounts', {
            'fields': ('amount', 'discount', 'gst', 'payable')
        }),
        ('Reverse Shipment', {
            'fields': (
                'return_requested', 'return_requested_at', 'return_awb', 'return_shipment_id',
                'return_reason', 'return_notes', 'return_pickup', 'return_raw',
            )
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


# ============================================================
# REFUND REQUEST ADMIN
# ============================================================

@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'order_ref', 'contact_name', 'contact_phone',
        'status', 'processed_by', 'processed_at', 'created_at',
    ]
    list_filter = ['status']
    search_fields = ['id', 'order_ref', 'contact_name', 'contact_email', 'contact_phone']
    readonly_fields = ['status', 'processed_by', 'processed_at', 'decision_notes', 'created_at', 'updated_at']
    list_per_page = 25

    fieldsets = (
        ('Request Info', {
            'fields': ('order_ref', 'user', 'status', 'reasons', 'description')
        }),
        ('Contact', {
            'fields': (
                'contact_name', 'contact_email', 'contact_phone',
                'address', 'contact_city', 'contact_state', 'contact_zip',
            )
        }),
        ('Decision', {
            'fields': ('processed_by', 'processed_at', 'decision_notes')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    actions = ['approve_requests']

    @admin.action(description='Approve selected refund requests')
    def approve_requests(self, request, queryset):
        actor = request.user.email or f'admin:{request.user.username}'
        approved = 0
        for refund_request in queryset.filter(status=RefundRequest.STATUS_REQUESTED):
            try:
                services.resolve_refund_request(refund_request.pk, RefundRequest.STATUS_APPROVED, actor=actor)
            except BackofficeError as exc:
                self.message_user(request, f'Request {refund_request.pk}: {exc.detail}', level=messages.WARNING)
                continue
            approved += 1
        self.message_user(request, f'{approved} refund request(s) approved.')


# ============================================================
# USER MIRROR ADMIN (read-only view)
# ============================================================

@admin.register(UserDocumentMirror)
class UserDocumentMirrorAdmin(admin.ModelAdmin):
    list_display = ['user', 'collection', 'document_id', 'updated_at']
    list_filter = ['collection']
    search_fields = ['document_id', 'user__email']
    readonly_fields = ['user', 'collection', 'document_id', 'data', 'updated_at']
    list_per_page = 50

    def has_add_permission(self, request):
        return False
