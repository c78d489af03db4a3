"""
Returns Module - Printable Invoice

GET /api/v1/orders/{order_id}/invoice/ renders an HTML invoice the browser
can print or save as PDF. Readable by the order's owner and by admins.

    no / bad token       → 401
    order not found      → 404
    someone else's order → 403
"""

from django.template.loader import render_to_string
from django.utils import timezone
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
    renderer_classes,
)
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import StaticHTMLRenderer
from rest_framework.response import Response

from .authentication import BearerTokenAuthentication, QueryStringTokenAuthentication
from .errors import RecordNotFound
from .models import Order
from .permissions import can_access_order
from .shipping import to_number

INVOICE_TEMPLATE = 'returns/invoice.html'
DATE_FORMAT = '%d %b %Y, %I:%M %p'


def invoice_context(order, generated_at=None):
    """Template values for an order. Missing numbers count as 0."""
    items = []
    for item in order.items.all():
        qty = to_number(item.qty) or 0
        price = to_number(item.price) or 0
        items.append({
            'name': item.name,
            'qty': int(qty) if float(qty).is_integer() else qty,
            'price': price,
            'line_total': price * qty,
        })

    amount = to_number(order.amount) or 0
    created = timezone.localtime(order.created_at).strftime(DATE_FORMAT) if order.created_at else '-'
    generated_at = generated_at or timezone.now()

    return {
        'id_short': order.order_number[-8:],
        'created': created,
        'generated': timezone.localtime(generated_at).strftime(DATE_FORMAT),
        'billed_name': order.billing_name or '-',
        'billed_email': order.billing_email,
        'items': items,
        'subtotal': amount,
        'discount': to_number(order.discount) or 0,
        'coupon': order.coupon_code.strip(),
        'total': to_number(order.payable) or amount,
        'payment_id': order.payment_id or '-',
    }


@api_view(['GET'])
@authentication_classes([BearerTokenAuthentication, QueryStringTokenAuthentication])
@permission_classes([IsAuthenticated])
@renderer_classes([StaticHTMLRenderer])
def order_invoice(request, order_id):
    try:
        order = Order.objects.prefetch_related('items').get(order_number=order_id)
    except Order.DoesNotExist:
        raise RecordNotFound('Order not found')

    if not can_access_order(request.user, order):
        raise PermissionDenied('You do not have access to this order')

    html = render_to_string(INVOICE_TEMPLATE, invoice_context(order))
    return Response(html)
