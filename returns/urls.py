"""
Returns Module URL Configuration
All URLs are prefixed with /api/v1/
"""

from django.urls import path
from . import views
from . import invoice

urlpatterns = [
    # Admin APIs
    path('returns/', views.create_return, name='create-return'),
    path('refund-requests/', views.list_refund_requests, name='list-refund-requests'),
    path('refund-requests/<int:request_id>/', views.get_refund_request, name='refund-request-detail'),
    path('refund-requests/<int:request_id>/resolve/', views.resolve_refund_request, name='resolve-refund-request'),

    # Customer/admin: printable invoice
    path('orders/<str:order_id>/invoice/', invoice.order_invoice, name='order-invoice'),
]
