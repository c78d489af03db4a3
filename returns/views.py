"""
Returns Module - Admin API Views

Every endpoint here is admin-only (IsBackofficeAdmin is the default
permission class). The panel is a thin client: it lists refund requests,
approves/rejects them, and books reverse pickups.
"""

import logging

from django.db.models import Q
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from . import services
from .errors import RecordNotFound, ValidationFailed
from .models import Order, RefundRequest
from .serializers import (
    CreateReturnSerializer,
    RefundRequestListSerializer,
    RefundRequestSerializer,
    ResolveRefundRequestSerializer,
)

logger = logging.getLogger('returns')

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _actor(request):
    return getattr(request.user, 'email', '') or '(admin)'


def _get_refund_request(request_id):
    try:
        return RefundRequest.objects.get(pk=request_id)
    except RefundRequest.DoesNotExist:
        raise RecordNotFound('Request not found')


# ============================================================
# REVERSE PICKUP
# ============================================================

@api_view(['POST'])
def create_return(request):
    """
    POST /api/v1/returns/

    Book a reverse pickup (return shipment) for an order.
    201 when a shipment was booked, 200 when the order already had one.
    """

    serializer = CreateReturnSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    logger.info(f"Return requested for order {data['order_id']} by {_actor(request)}")

    outcome = services.create_return(
        data['order_id'],
        pickup=data.get('pickup'),
        reason=data.get('reason', '').strip(),
        notes=data.get('notes', '').strip(),
    )

    response_status = status.HTTP_200_OK if outcome.primary['already'] else status.HTTP_201_CREATED
    return Response(outcome.as_response(), status=response_status)


# ============================================================
# REFUND REQUESTS
# ============================================================

@api_view(['GET'])
def list_refund_requests(request):
    """
    GET /api/v1/refund-requests/

    Newest first, CURSOR-BASED pagination (same scheme as every list here).

    Query params:
    - status: requested | approved | rejected | all (default all)
    - q: matches request id, order ref, contact name/e-mail/phone
    - cursor: ID of last item from previous page
    - direction: 'next' (default) or 'prev'
    - page_size: Items per page (default 20, max 100)
    """
    queryset = RefundRequest.objects.all()

    status_filter = request.query_params.get('status', 'all').strip().lower()
    if status_filter and status_filter != 'all':
        queryset = queryset.filter(status=status_filter)

    query = request.query_params.get('q', '').strip()
    if query:
        match = (
            Q(order_ref__icontains=query)
            | Q(contact_name__icontains=query)
            | Q(contact_email__icontains=query)
            | Q(contact_phone__icontains=query)
        )
        if query.isdigit():
            match |= Q(pk=int(query))
        queryset = queryset.filter(match)

    try:
        page_size = min(int(request.query_params.get('page_size', DEFAULT_PAGE_SIZE)), MAX_PAGE_SIZE)
    except ValueError:
        raise ValidationFailed('Invalid page_size value')
    page_size = max(page_size, 1)

    cursor = request.query_params.get('cursor')
    direction = request.query_params.get('direction', 'next')

    if cursor:
        try:
            cursor_id = int(cursor)
        except ValueError:
            raise ValidationFailed('Invalid cursor value')
        if direction == 'prev':
            queryset = queryset.filter(id__gt=cursor_id)
        else:
            queryset = queryset.filter(id__lt=cursor_id)

    # Newest first; 'prev' walks back up towards newer rows
    queryset = queryset.order_by('id' if direction == 'prev' else '-id')

    results = list(queryset[:page_size + 1])  # Fetch one extra to check if more exist
    has_more = len(results) > page_size
    results = results[:page_size]
    if direction == 'prev':
        results.reverse()

    # One query for the whole page instead of one per row
    refs = {r.order_ref.strip() for r in results if r.order_ref.strip()}
    orders_with_return = set(
        Order.objects.filter(order_number__in=refs)
        .filter(~Q(return_awb='') | ~Q(return_shipment_id=''))
        .values_list('order_number', flat=True)
    )

    serializer = RefundRequestListSerializer(
        results, many=True, context={'orders_with_return': orders_with_return},
    )

    response_data = {
        'results': serializer.data,
        'page_size': page_size,
        'has_more': has_more,
    }
    if results:
        response_data['next_cursor'] = results[-1].id
        response_data['prev_cursor'] = results[0].id

    return Response(response_data)


@api_view(['GET'])
def get_refund_request(request, request_id):
    """
    GET /api/v1/refund-requests/{id}/

    Full request plus the referenced order and its return tracking.
    """

    refund_request = _get_refund_request(request_id)
    order = None
    if refund_request.order_ref.strip():
        order = (
            Order.objects.prefetch_related('items')
            .filter(order_number=refund_request.order_ref.strip())
            .first()
        )

    serializer = RefundRequestSerializer(refund_request, context={'order': order})
    return Response(serializer.data)


@api_view(['POST'])
def resolve_refund_request(request, request_id):
    """
    POST /api/v1/refund-requests/{id}/resolve/

    Request: {"status": "approved"} or {"status": "rejected", "notes": "Item was worn"}
    A rejection without notes is refused before anything is written.
    """

    serializer = ResolveRefundRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    outcome = services.resolve_refund_request(
        request_id,
        data['decision'],
        notes=data['notes'],
        actor=_actor(request),
    )
    return Response(outcome.as_response())
