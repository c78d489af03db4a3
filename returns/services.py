"""
Returns Module - Admin Actions

The two state-changing admin actions live here so the API views and the
Django admin go through the same rules:

1. create_return           → book a reverse pickup for an order (at most once per order)
2. resolve_refund_request  → approve/reject a refund request, notify on rejection

Each action returns an ActionOutcome: the primary result, plus what
happened to the best-effort side effects (user mirror, WhatsApp). A failed
side effect is logged and reported, never raised.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from django.db import DatabaseError, transaction
from django.utils import timezone

from .config import get_config
from .courier import XpressbeesClient
from .errors import NotConfigured, RecordNotFound, ValidationFailed
from .messaging import WhatsAppClient, phone_to_whatsapp, template_variables
from .models import Order, RefundRequest, UserDocumentMirror
from .shipping import build_remarks, build_reverse_payload

logger = logging.getLogger('returns')

SIDE_EFFECT_OK = 'ok'
SIDE_EFFECT_SKIPPED = 'skipped'
SIDE_EFFECT_FAILED = 'failed'


@dataclass
class ActionOutcome:
    primary: Dict[str, Any]
    auxiliary: Dict[str, str] = field(default_factory=dict)

    def as_response(self):
        return {'ok': True, **self.primary, 'side_effects': dict(self.auxiliary)}


# ============================================================
# HELPERS
# ============================================================

def _mirror(user_id, collection, document_id, fields):
    """Copy fields to the customer's own document. Best-effort."""
    if not user_id:
        return SIDE_EFFECT_SKIPPED
    try:
        with transaction.atomic():
            UserDocumentMirror.merge(user_id, collection, document_id, fields)
    except DatabaseError as exc:
        logger.warning(f"Mirror write failed for {collection}/{document_id} (user {user_id}): {exc}")
        return SIDE_EFFECT_FAILED
    return SIDE_EFFECT_OK


# ============================================================
# REVERSE PICKUP
# ============================================================

def create_return(order_number, pickup=None, reason='', notes='', config=None, client=None):
    """
    Book a reverse pickup for an order and store the tracking ids on it.

    If the order already has an AWB or shipment id, those are returned and
    the courier is not called.
    """
    config = config or get_config()
    order_number = str(order_number or '').strip()
    if not order_number:
        raise ValidationFailed('orderId is required')

    try:
        order = Order.objects.prefetch_related('items').get(order_number=order_number)
    except Order.DoesNotExist:
        raise RecordNotFound('Order not found')

    if order.has_return:
        logger.info(f"Return already exists for order {order_number}: AWB {order.return_awb}")
        return ActionOutcome(primary={
            'already': True,
            'awb': order.return_awb or None,
            'shipment_id': order.return_shipment_id or None,
        })

    if not config.courier.is_configured:
        raise NotConfigured('XpressBees not configured')

    payload = build_reverse_payload(order.return_label, order.snapshot(), pickup, config.courier)
    remarks = build_remarks(reason, notes)
    if remarks:
        payload['remarks'] = remarks

    client = client or XpressbeesClient(config.courier)
    result = client.create_reverse_shipment(payload)

    pickup_fields = pickup.as_dict() if pickup else None
    order.return_requested = True
    order.return_requested_at = timezone.now()
    order.return_awb = result.awb or ''
    order.return_shipment_id = result.shipment_id or ''
    order.return_raw = result.raw
    update_fields = [
        'return_requested', 'return_requested_at', 'return_awb',
        'return_shipment_id', 'return_raw', 'updated_at',
    ]
    if reason:
        order.return_reason = reason
        update_fields.append('return_reason')
    if notes:
        order.return_notes = notes
        update_fields.append('return_notes')
    if pickup_fields:
        order.return_pickup = pickup_fields
        update_fields.append('return_pickup')
    order.save(update_fields=update_fields)

    mirror_fields = {
        'returnRequested': True,
        'returnAwb': result.awb,
        'returnShipmentId': result.shipment_id,
        'updatedAt': timezone.now(),
    }
    if reason:
        mirror_fields['returnReason'] = reason
    if notes:
        mirror_fields['returnNotes'] = notes
    if pickup_fields:
        mirror_fields['returnPickup'] = pickup_fields

    mirror_state = _mirror(order.user_id, UserDocumentMirror.COLLECTION_ORDERS, order.order_number, mirror_fields)

    logger.info(f"Return created for order {order_number}: AWB {result.awb} | shipment {result.shipment_id}")

    return ActionOutcome(
        primary={'already': False, 'awb': result.awb, 'shipment_id': result.shipment_id},
        auxiliary={'mirror': mirror_state},
    )


# ============================================================
# REFUND DECISION
# ============================================================

def resolve_refund_request(request_id, decision, notes='', actor='', config=None, messenger=None):
    """
    Approve or reject a refund request.

    requested → approved | rejected. Rejection needs a note; without one
    nothing is written and nobody is notified. Only rejections notify the
    customer (one WhatsApp attempt).
    """
    decision = str(decision or '').strip().lower()
    notes = str(notes or '').strip()

    if decision not in RefundRequest.DECISIONS:
        raise ValidationFailed('status must be approved|rejected')
    if decision == RefundRequest.STATUS_REJECTED and not notes:
        raise ValidationFailed('Rejection note is required')

    try:
        refund_request = RefundRequest.objects.get(pk=request_id)
    except (RefundRequest.DoesNotExist, ValueError, TypeError):
        raise RecordNotFound('Request not found')

    if refund_request.is_decided:
        raise ValidationFailed(f'Request already {refund_request.status}')

    actor = actor or '(admin)'
    decision_fields = {
        'status': decision,
        'processed_at': timezone.now(),
        'processed_by': actor,
        'decision_notes': notes or None,
    }
    for name, value in decision_fields.items():
        setattr(refund_request, name, value)
    refund_request.save(update_fields=[*decision_fields, 'updated_at'])

    logger.info(f"Refund request {refund_request.pk} {decision} by {actor}")

    auxiliary = {
        'mirror': _mirror(
            refund_request.user_id,
            UserDocumentMirror.COLLECTION_REFUND_REQUESTS,
            refund_request.pk,
            {
                'status': decision,
                'processedAt': decision_fields['processed_at'],
                'processedBy': actor,
                'decisionNotes': notes or None,
            },
        ),
    }

    if decision == RefundRequest.STATUS_REJECTED:
        auxiliary['notification'] = _notify_rejection(refund_request, notes, config or get_config(), messenger)

    return ActionOutcome(
        primary={'id': refund_request.pk, 'status': decision},
        auxiliary=auxiliary,
    )


def _notify_rejection(refund_request, notes, config, messenger=None):
    """Tell the customer their request was rejected, and why."""
    messaging = config.messaging
    to = phone_to_whatsapp(refund_request.contact_phone)
    content_sid = messaging.rejection_template

    if not (messaging.is_configured and to and content_sid):
        logger.info(f"Rejection notice for request {refund_request.pk} skipped (no phone or messaging config)")
        return SIDE_EFFECT_SKIPPED

    messenger = messenger or WhatsAppClient(messaging)
    variables = template_variables(
        refund_request.contact_name,
        refund_request.order_ref.strip(),
        'REJECTED',
        notes,
    )
    result = messenger.send_template(to, content_sid, variables)
    if not result.ok:
        logger.warning(f"Rejection notice for request {refund_request.pk} not delivered: {result.error}")
        return SIDE_EFFECT_FAILED
    return SIDE_EFFECT_OK
