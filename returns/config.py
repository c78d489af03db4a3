"""
Returns Module - Runtime Configuration

settings.py only reads the environment. This module turns those raw values
into one immutable config object that is handed to the courier client,
the payload builder and the messaging client, instead of each of them
reaching into settings on its own.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import FrozenSet
from urllib.parse import urlsplit

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

DEFAULT_COURIER_BASE_URL = 'https://shipment.xpressbees.com'


@dataclass(frozen=True)
class WarehouseAddress:
    """Our own warehouse: the consignee of every reverse shipment."""
    warehouse_name: str = 'Megance WH1'
    name: str = 'Megance'
    phone: str = ''
    email: str = ''
    address: str = ''
    city: str = 'NEW DELHI'
    state: str = 'DELHI'
    pincode: str = ''
    gst_number: str = ''


@dataclass(frozen=True)
class PackageDefaults:
    """Package size used for every reverse pickup. Values are kept raw."""
    weight_kg: object = '0.7'
    length_cm: object = '30'
    breadth_cm: object = '20'
    height_cm: object = '10'


@dataclass(frozen=True)
class CourierConfig:
    base_url: str = DEFAULT_COURIER_BASE_URL
    username: str = ''
    password: str = ''
    auto_pickup: bool = True
    timeout: float = 30.0
    package: PackageDefaults = PackageDefaults()
    warehouse: WarehouseAddress = WarehouseAddress()

    @property
    def is_configured(self):
        return bool(self.username and self.password)

    @property
    def origin(self):
        return courier_origin(self.base_url)


@dataclass(frozen=True)
class MessagingConfig:
    account_sid: str = ''
    auth_token: str = ''
    whatsapp_from: str = ''
    rejected_template_sid: str = ''
    fallback_template_sid: str = ''
    api_base_url: str = 'https://api.twilio.com'

    @property
    def is_configured(self):
        return bool(self.account_sid and self.auth_token and self.whatsapp_from)

    @property
    def rejection_template(self):
        return self.rejected_template_sid or self.fallback_template_sid


@dataclass(frozen=True)
class BackofficeConfig:
    courier: CourierConfig
    messaging: MessagingConfig
    admin_emails: FrozenSet[str] = frozenset()

    @classmethod
    def from_settings(cls):
        xb = getattr(settings, 'XPRESSBEES', {})
        wh = getattr(settings, 'WAREHOUSE', {})
        tw = getattr(settings, 'TWILIO', {})

        warehouse = WarehouseAddress(
            warehouse_name=_clean(wh.get('WAREHOUSE_NAME')) or 'Megance WH1',
            name=_clean(wh.get('NAME')) or 'Megance',
            phone=_clean(wh.get('PHONE')),
            email=_clean(wh.get('EMAIL')),
            address=_clean(wh.get('ADDRESS')),
            city=_clean(wh.get('CITY')) or 'NEW DELHI',
            state=_clean(wh.get('STATE')) or 'DELHI',
            pincode=_clean(wh.get('PINCODE')),
            gst_number=_clean(wh.get('GST_NUMBER')),
        )
        package = PackageDefaults(
            weight_kg=xb.get('DEFAULT_WEIGHT_KG', '0.7'),
            length_cm=xb.get('DEFAULT_LENGTH_CM', '30'),
            breadth_cm=xb.get('DEFAULT_BREADTH_CM', '20'),
            height_cm=xb.get('DEFAULT_HEIGHT_CM', '10'),
        )
        courier = CourierConfig(
            base_url=_clean(xb.get('BASE_URL')) or DEFAULT_COURIER_BASE_URL,
            username=_clean(xb.get('USERNAME')),
            password=_clean(xb.get('PASSWORD')),
            auto_pickup=_clean(xb.get('AUTO_PICKUP', 'yes')).lower() == 'yes',
            timeout=_seconds(xb.get('TIMEOUT_SECONDS'), 30.0),
            package=package,
            warehouse=warehouse,
        )
        messaging = MessagingConfig(
            account_sid=_clean(tw.get('ACCOUNT_SID')),
            auth_token=_clean(tw.get('AUTH_TOKEN')),
            whatsapp_from=_clean(tw.get('WHATSAPP_FROM')),
            rejected_template_sid=_clean(tw.get('RETURNS_REJECTED_SID')),
            fallback_template_sid=_clean(tw.get('RETURNS_TEMPLATE_SID')),
            api_base_url=_clean(tw.get('API_BASE_URL')) or 'https://api.twilio.com',
        )
        admin_emails = frozenset(
            _clean(e).lower()
            for e in getattr(settings, 'BACKOFFICE_ADMIN_EMAILS', [])
            if _clean(e)
        )
        return cls(courier=courier, messaging=messaging, admin_emails=admin_emails)


def courier_origin(raw_base):
    """Reduce a configured base URL to scheme://host."""
    raw = str(raw_base or DEFAULT_COURIER_BASE_URL)
    parts = urlsplit(raw)
    if parts.scheme and parts.netloc:
        return f'{parts.scheme}://{parts.netloc}'
    # Not a parseable absolute URL: strip any API path by hand
    stripped = raw.split('/api/', 1)[0].rstrip('/')
    return stripped or DEFAULT_COURIER_BASE_URL


@lru_cache(maxsize=1)
def get_config():
    """Build the config once per process."""
    return BackofficeConfig.from_settings()


@receiver(setting_changed)
def _reset_config(**kwargs):
    # override_settings() in tests must be visible to the next get_config()
    get_config.cache_clear()


def _clean(value):
    return str(value or '').strip()


def _seconds(value, default):
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return default
    return seconds if seconds > 0 else default
