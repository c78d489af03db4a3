"""
Returns Module - XpressBees Courier Client

Books reverse pickups on the courier's shipment API:

    POST /api/users/login   {email, password}  → bearer token
    POST /api/shipments2    payload            → AWB + shipment id

A token is fetched per booking. If the booking is refused with 401/403 the
client logs in again and retries once; a second failure is final.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from .errors import CourierError

logger = logging.getLogger('returns')

LOGIN_PATH = '/api/users/login'
SHIPMENT_PATH = '/api/shipments2'

AUTH_FAILURE_STATUSES = (401, 403)

AWB_KEYS = ('awb_number', 'awb', 'awbno')
SHIPMENT_ID_KEYS = ('shipment_id', 'order_id', 'id')


@dataclass
class ShipmentResult:
    awb: Optional[str]
    shipment_id: Optional[str]
    raw: Any = None


class XpressbeesClient:
    """
    Usage:
        client = XpressbeesClient(get_config().courier)
        result = client.create_reverse_shipment(payload)
        result.awb, result.shipment_id
    """

    def __init__(self, config, session=None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def origin(self):
        return self.config.origin

    def login(self):
        """Exchange the stored credentials for a bearer token."""
        response = self._post(
            LOGIN_PATH,
            json={
                'email': self.config.username.strip(),
                'password': self.config.password.strip(),
            },
        )
        body = _json_or_none(response)
        if not response.ok:
            raise CourierError(
                _error_message(body, response.status_code),
                upstream_status=response.status_code,
            )

        token = _extract_token(body)
        if not token:
            raise CourierError('Login ok but no token', upstream_status=response.status_code)
        return token

    def create_reverse_shipment(self, payload):
        token = self.login()
        response = self._post_shipment(payload, token)

        if response.status_code in AUTH_FAILURE_STATUSES:
            logger.warning(
                f"Courier refused token ({response.status_code}) for {payload.get('order_number')}; "
                f"retrying with a fresh one"
            )
            response = self._post_shipment(payload, self.login())

        raw = _json_or_text(response)
        if not response.ok:
            raise CourierError(
                _error_message(raw, response.status_code),
                upstream_status=response.status_code,
            )

        result = parse_shipment_response(raw)
        logger.info(
            f"Reverse shipment booked: {payload.get('order_number')} | "
            f"AWB {result.awb} | shipment {result.shipment_id}"
        )
        return result

    def _post_shipment(self, payload, token):
        return self._post(
            SHIPMENT_PATH,
            json=payload,
            headers={'Authorization': f'Bearer {token}'},
        )

    def _post(self, path, **kwargs):
        url = f'{self.origin}{path}'
        try:
            return self.session.post(url, timeout=self.config.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error(f"Courier request to {path} failed: {exc}")
            raise CourierError(f'Courier unreachable: {exc}') from exc


# ============================================================
# RESPONSE PARSING
# ============================================================
# The courier is inconsistent about where it puts things; accept every
# shape seen so far.

def parse_shipment_response(raw):
    source = raw if isinstance(raw, dict) else {}
    if isinstance(source, dict) and source.get('data'):
        source = source['data']
    if not isinstance(source, dict):
        return ShipmentResult(awb=None, shipment_id=None, raw=raw)

    return ShipmentResult(
        awb=_first_value(source, AWB_KEYS),
        shipment_id=_first_value(source, SHIPMENT_ID_KEYS),
        raw=raw,
    )


def _extract_token(body):
    if not body:
        return None
    data = body.get('data') if isinstance(body, dict) else None
    if isinstance(data, str) and data:
        return data
    if not isinstance(body, dict):
        return None
    token = body.get('token') or body.get('access_token')
    if not token and isinstance(data, dict):
        token = data.get('token') or data.get('access_token')
    return token or None


def _first_value(source, keys):
    for key in keys:
        value = source.get(key)
        if value:
            return str(value)
    return None


def _error_message(body, status_code):
    if isinstance(body, dict):
        message = body.get('message') or body.get('error')
        if message:
            return str(message)
    return f'HTTP {status_code}'


def _json_or_none(response):
    try:
        return response.json()
    except ValueError:
        return None


def _json_or_text(response):
    try:
        return response.json()
    except ValueError:
        return response.text or None
