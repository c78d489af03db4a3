"""
Returns Module - Reverse Shipment Payload Builder

Maps an order (plus an optional pickup override) to the courier's reverse
shipment schema. In a reverse shipment the customer is the *pickup* party
and our warehouse is the *consignee*.

Numbers are parsed leniently: anything that is not a finite number is
treated as missing and replaced by a safe default. Nothing here raises on
bad order data; the courier API is the only validator.
"""

import math
import re
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_WEIGHT_GRAMS = 500
GST_RATE = 0.18
FALLBACK_CONSIGNEE_PHONE = '9999999999'

# Field length caps accepted by the courier
ORDER_NUMBER_MAX = 20
WAREHOUSE_NAME_MAX = 20
NAME_MAX = 200
ADDRESS_LINE_MAX = 200
CITY_STATE_MAX = 40

_NON_DIGITS = re.compile(r'\D')
_COMMA_SPLIT = re.compile(r',\s*')


@dataclass
class PickupOverride:
    """Customer pickup address typed by the admin; empty fields fall back to billing."""
    name: str = ''
    phone: str = ''
    address: str = ''
    city: str = ''
    state: str = ''
    zip: str = ''

    @classmethod
    def from_mapping(cls, data):
        """Build from loose input. Returns None when nothing usable was given."""
        if not isinstance(data, Mapping):
            return None
        values = {
            'name': data.get('name'),
            'phone': data.get('phone'),
            'address': data.get('address'),
            'city': data.get('city'),
            'state': data.get('state'),
            'zip': data.get('zip') or data.get('pincode') or data.get('pin'),
        }
        cleaned = {k: str(v) for k, v in values.items() if v}
        return cls(**cleaned) if cleaned else None

    def as_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}


@dataclass
class OrderSnapshot:
    """The parts of an order the payload needs. Values may be loosely typed."""
    billing: Mapping[str, Any] = field(default_factory=dict)
    items: List[Mapping[str, Any]] = field(default_factory=list)
    amount: Any = None
    discount: Any = None
    gst: Any = None
    payable: Any = None


# ============================================================
# NORMALIZERS
# ============================================================

def to_number(value):
    """Parse a finite number, or return None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def round_half_up(number):
    return int(math.floor(number + 0.5))


def truncate(value, limit):
    text = '' if value is None else str(value)
    return text[:limit]


def only_digits(value):
    return _NON_DIGITS.sub('', '' if value is None else str(value))


def normalize_phone(value):
    """Last 10 digits; shorter numbers are kept as they are."""
    digits = only_digits(value)
    return digits[-10:] if len(digits) >= 10 else digits


def normalize_pincode(value):
    """First 6 digits; shorter codes are kept as they are."""
    digits = only_digits(value)
    return digits[:6] if len(digits) >= 6 else digits


def split_address(value):
    """
    Split free text into (address, address_2).

    The first two comma-separated parts form the primary line, the rest the
    secondary line; both capped at 200 characters.
    """
    text = ('' if value is None else str(value)).strip()
    if not text:
        return '', ''
    parts = _COMMA_SPLIT.split(text)
    primary = truncate(', '.join(parts[:2]), ADDRESS_LINE_MAX) or truncate(text, ADDRESS_LINE_MAX)
    secondary = truncate(', '.join(parts[2:]), ADDRESS_LINE_MAX)
    return primary, secondary


def kg_to_grams(kg):
    number = to_number(kg)
    if number is None:
        return DEFAULT_WEIGHT_GRAMS
    return max(1, round_half_up(number * 1000))


def _dimension(value, default):
    number = to_number(value)
    if number is None:
        return default
    return int(number) if number.is_integer() else number


def _number_text(number):
    """Render like the courier expects: 2 not 2.0, 499.5 stays 499.5."""
    return str(int(number)) if float(number).is_integer() else repr(float(number))


# ============================================================
# PAYLOAD BUILDER
# ============================================================

def compute_totals(snapshot):
    """Integer (amount, discount, payable) for an order snapshot."""
    amount = round_half_up(to_number(snapshot.amount) or 0)
    discount = round_half_up(to_number(snapshot.discount) or 0)
    base = max(0, amount - discount)

    gst = to_number(snapshot.gst)
    gst = round_half_up(gst) if gst is not None else round_half_up(base * GST_RATE)

    payable = to_number(snapshot.payable)
    payable = round_half_up(payable or base + gst)
    return amount, discount, payable


def build_order_items(items):
    order_items = []
    for item in items or []:
        qty = to_number(item.get('qty')) or 1
        price = to_number(item.get('price')) or 0
        order_items.append({
            'name': str(item.get('name') or ''),
            'qty': _number_text(qty),
            'price': _number_text(price),
            'sku': str(item.get('sku') or item.get('id') or ''),
        })
    return order_items


def build_reverse_payload(order_label, snapshot, pickup, courier_config) -> Dict[str, Any]:
    """
    Build the courier's reverse shipment payload.

    `pickup` (a PickupOverride or None) wins over the order's billing
    fields. The consignee is always the configured warehouse.
    """
    billing = snapshot.billing or {}
    pickup = pickup or PickupOverride()
    package = courier_config.package
    warehouse = courier_config.warehouse

    _, discount, payable = compute_totals(snapshot)

    pickup_name = pickup.name or billing.get('name') or ''
    pickup_address, pickup_address_2 = split_address(pickup.address or billing.get('address') or '')

    warehouse_name = truncate(warehouse.warehouse_name or 'Megance WH1', WAREHOUSE_NAME_MAX)
    consignee = {
        'name': truncate(warehouse.name or 'Megance', NAME_MAX),
        'company_name': truncate(warehouse_name, NAME_MAX),
        'address': warehouse.address or '',
        'address_2': '',
        'city': truncate(warehouse.city or 'NEW DELHI', CITY_STATE_MAX),
        'state': truncate(warehouse.state or 'DELHI', CITY_STATE_MAX),
        'pincode': normalize_pincode(warehouse.pincode),
        'phone': normalize_phone(warehouse.phone) or FALLBACK_CONSIGNEE_PHONE,
    }
    if warehouse.gst_number.strip():
        consignee['gst_number'] = warehouse.gst_number.strip()

    return {
        'order_number': truncate(order_label, ORDER_NUMBER_MAX),
        'payment_type': 'prepaid',
        'order_amount': payable,
        'discount': discount or 0,
        'package_weight': kg_to_grams(package.weight_kg),
        'package_length': _dimension(package.length_cm, 30),
        'package_breadth': _dimension(package.breadth_cm, 20),
        'package_height': _dimension(package.height_cm, 10),
        'request_auto_pickup': 'yes' if courier_config.auto_pickup else 'no',
        'pickup': {
            'warehouse_name': truncate(pickup_name or 'Buyer', WAREHOUSE_NAME_MAX),
            'name': truncate(pickup_name, NAME_MAX),
            'address': pickup_address,
            'address_2': pickup_address_2,
            'city': truncate(pickup.city or billing.get('city') or '', CITY_STATE_MAX),
            'state': truncate(pickup.state or billing.get('state') or '', CITY_STATE_MAX),
            'pincode': normalize_pincode(pickup.zip or billing.get('zip') or ''),
            'phone': normalize_phone(pickup.phone or billing.get('phone') or ''),
        },
        'consignee': consignee,
        'order_items': build_order_items(snapshot.items),
        'collectable_amount': 0,
        'is_reverse': True,
    }


def build_remarks(reason, notes) -> Optional[str]:
    parts = [p for p in (reason, notes) if p]
    return ' | '.join(parts) if parts else None
