"""
Returns Module - WhatsApp Notifications (Twilio)

Customer notifications go out as pre-approved WhatsApp templates through
the Twilio Messages REST API. Sending never raises: callers get a
DeliveryResult and decide what to log.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger('returns')

WHATSAPP_PREFIX = 'whatsapp:'
DEFAULT_COUNTRY_CODE = '91'


@dataclass
class DeliveryResult:
    ok: bool
    sid: Optional[str] = None
    error: Optional[str] = None


def phone_to_whatsapp(raw):
    """
    Address a phone number on WhatsApp.

    '9876543210'      → 'whatsapp:+919876543210'  (10 digits = domestic)
    '+14155550100'    → 'whatsapp:+14155550100'
    '91 98765 43210'  → 'whatsapp:+919876543210'
    """
    text = str(raw or '').strip()
    if not text:
        return ''
    if text.startswith(WHATSAPP_PREFIX):
        return text
    if text.startswith('+'):
        return f'{WHATSAPP_PREFIX}{text}'
    digits = ''.join(ch for ch in text if ch.isdigit())
    if not digits:
        return ''
    if len(digits) == 10:
        return f'{WHATSAPP_PREFIX}+{DEFAULT_COUNTRY_CODE}{digits}'
    return f'{WHATSAPP_PREFIX}+{digits}'


def normalize_sender(raw):
    text = str(raw or '').strip()
    if not text or text.startswith(WHATSAPP_PREFIX):
        return text
    if text.startswith('+'):
        return f'{WHATSAPP_PREFIX}{text}'
    return f"{WHATSAPP_PREFIX}+{''.join(ch for ch in text if ch.isdigit() or ch == '+')}"


def template_variables(*values):
    """Positional template variables: {"1": ..., "2": ...} as JSON."""
    return json.dumps({str(i): str(v) for i, v in enumerate(values, start=1)})


class WhatsAppClient:

    def __init__(self, config, session=None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def sender(self):
        return normalize_sender(self.config.whatsapp_from)

    def send_template(self, to, content_sid, variables):
        """Send one templated message. Never raises."""
        config = self.config
        if not (config.account_sid and config.auth_token and self.sender and to and content_sid):
            return DeliveryResult(ok=False, error='missing_config')

        endpoint = (
            f"{config.api_base_url.rstrip('/')}/2010-04-01/Accounts/"
            f"{config.account_sid}/Messages.json"
        )
        try:
            response = self.session.post(
                endpoint,
                data={
                    'From': self.sender,
                    'To': to,
                    'ContentSid': content_sid,
                    'ContentVariables': variables,
                },
                auth=(config.account_sid, config.auth_token),
                timeout=30,
            )
        except requests.RequestException as exc:
            return DeliveryResult(ok=False, error=str(exc))

        if not response.ok:
            return DeliveryResult(ok=False, error=response.text or f'HTTP {response.status_code}')

        try:
            body = response.json()
        except ValueError:
            body = {}
        sid = body.get('sid') if isinstance(body, dict) else None
        logger.info(f"WhatsApp template {content_sid} sent to {to} (sid={sid})")
        return DeliveryResult(ok=True, sid=sid)
