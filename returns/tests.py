"""
Returns Module - Tests

These tests validate the back-office workflows:
1. Reverse shipment payload (normalization, defaults, truncation)
2. Courier client (login, auth-refresh retry, response parsing)
3. WhatsApp addressing and sending
4. Return creation (happy path, idempotency, failures)
5. Refund decisions (validation, notification, side effects)
6. Refund request listing, invoice access, admin panel action

No test talks to the network: requests.Session.post is patched.

Run tests with: python manage.py test returns
"""

import json
from decimal import Decimal
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import DatabaseError
from django.test import Client, SimpleTestCase, TestCase, override_settings
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from .config import BackofficeConfig, CourierConfig, MessagingConfig, PackageDefaults, WarehouseAddress, courier_origin
from .courier import XpressbeesClient, parse_shipment_response
from .errors import CourierError
from .messaging import WhatsAppClient, normalize_sender, phone_to_whatsapp, template_variables
from .models import Order, OrderItem, RefundRequest, UserDocumentMirror
from .shipping import (
    OrderSnapshot,
    PickupOverride,
    build_order_items,
    build_remarks,
    build_reverse_payload,
    compute_totals,
    kg_to_grams,
    normalize_phone,
    normalize_pincode,
    split_address,
)

User = get_user_model()


TEST_XPRESSBEES = {
    'BASE_URL': 'https://shipment.example.com/api/v2',
    'USERNAME': 'ops@example.com',
    'PASSWORD': 'courier-secret',
    'DEFAULT_WEIGHT_KG': '0.7',
    'DEFAULT_LENGTH_CM': '30',
    'DEFAULT_BREADTH_CM': '20',
    'DEFAULT_HEIGHT_CM': '10',
    'AUTO_PICKUP': 'yes',
    'TIMEOUT_SECONDS': '30',
}

TEST_WAREHOUSE = {
    'WAREHOUSE_NAME': 'Megance WH1',
    'NAME': 'Megance',
    'PHONE': '+91 88821 32169',
    'EMAIL': 'support@example.com',
    'ADDRESS': 'A-51, First floor, Meera Bagh, Paschim Vihar',
    'CITY': 'NEW DELHI',
    'STATE': 'DELHI',
    'PINCODE': '110087',
    'GST_NUMBER': '',
}

TEST_TWILIO = {
    'ACCOUNT_SID': 'AC0001',
    'AUTH_TOKEN': 'twilio-secret',
    'WHATSAPP_FROM': '+14155238886',
    'RETURNS_REJECTED_SID': 'HXrejected',
    'RETURNS_TEMPLATE_SID': 'HXfallback',
    'API_BASE_URL': 'https://api.twilio.com',
}


def http_response(status_code, body=None, text=''):
    """A real requests.Response with a canned body."""
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode() if body is not None else text.encode()
    response.encoding = 'utf-8'
    return response


def courier_config(**overrides):
    values = {
        'base_url': 'https://shipment.example.com/api/v2',
        'username': 'ops@example.com',
        'password': 'courier-secret',
        'package': PackageDefaults(weight_kg='0.7'),
        'warehouse': WarehouseAddress(
            warehouse_name='Megance WH1',
            name='Megance',
            phone='8882132169',
            address='A-51, First floor, Meera Bagh, Paschim Vihar',
            city='NEW DELHI',
            state='DELHI',
            pincode='110087',
        ),
    }
    values.update(overrides)
    return CourierConfig(**values)


# ============================================================
# PAYLOAD NORMALIZATION TESTS
# ============================================================

class NormalizationTests(SimpleTestCase):
    """Field-level rules of the reverse shipment payload."""

    def test_weight_kg_to_grams(self):
        self.assertEqual(kg_to_grams('0.7'), 700)
        self.assertEqual(kg_to_grams(0.7), 700)
        self.assertEqual(kg_to_grams(1.25), 1250)

    def test_invalid_weight_falls_back_to_500_grams(self):
        self.assertEqual(kg_to_grams('heavy'), 500)
        self.assertEqual(kg_to_grams(None), 500)
        self.assertEqual(kg_to_grams(''), 500)

    def test_tiny_weight_is_at_least_one_gram(self):
        self.assertEqual(kg_to_grams(0), 1)
        self.assertEqual(kg_to_grams('0.0001'), 1)

    def test_phone_keeps_last_ten_digits(self):
        self.assertEqual(normalize_phone('9876543210'), '9876543210')
        self.assertEqual(normalize_phone('+91 98765-43210'), '9876543210')

    def test_short_phone_is_not_padded(self):
        self.assertEqual(normalize_phone('98765'), '98765')
        self.assertEqual(normalize_phone(''), '')

    def test_pincode_keeps_first_six_digits(self):
        self.assertEqual(normalize_pincode('110087-extra'), '110087')
        self.assertEqual(normalize_pincode('1100'), '1100')

    def test_split_address_groups_first_two_segments(self):
        primary, secondary = split_address('A-51, First floor, Meera Bagh, Paschim Vihar')
        self.assertEqual(primary, 'A-51, First floor')
        self.assertEqual(secondary, 'Meera Bagh, Paschim Vihar')

    def test_split_address_caps_lines_at_200(self):
        primary, secondary = split_address('x' * 250)
        self.assertEqual(len(primary), 200)
        self.assertEqual(secondary, '')

    def test_split_empty_address(self):
        self.assertEqual(split_address('   '), ('', ''))
        self.assertEqual(split_address(None), ('', ''))

    def test_totals_compute_gst_when_missing(self):
        # base 1800, gst 18% = 324
        self.assertEqual(compute_totals(OrderSnapshot(amount=2000, discount=200)), (2000, 200, 2124))

    def test_totals_use_stored_gst_and_payable(self):
        snapshot = OrderSnapshot(amount='2000', discount='200', gst='0', payable=Decimal('1999.50'))
        self.assertEqual(compute_totals(snapshot), (2000, 200, 2000))

    def test_malformed_totals_fall_back_to_defaults(self):
        snapshot = OrderSnapshot(amount='n/a', discount=None, payable='free')
        self.assertEqual(compute_totals(snapshot), (0, 0, 0))

    def test_order_items_are_stringified(self):
        items = build_order_items([
            {'name': 'Linen Shirt', 'qty': 2, 'price': Decimal('499.50'), 'sku': 'LS-01'},
            {'name': 'Socks', 'qty': 0, 'price': 'n/a', 'id': 'SK-9'},
        ])
        self.assertEqual(items[0], {'name': 'Linen Shirt', 'qty': '2', 'price': '499.5', 'sku': 'LS-01'})
        self.assertEqual(items[1], {'name': 'Socks', 'qty': '1', 'price': '0', 'sku': 'SK-9'})

    def test_pickup_override_accepts_pincode_aliases(self):
        pickup = PickupOverride.from_mapping({'name': 'Asha', 'pincode': '560001'})
        self.assertEqual(pickup.zip, '560001')
        self.assertEqual(pickup.as_dict(), {'name': 'Asha', 'zip': '560001'})

    def test_empty_pickup_override_is_none(self):
        self.assertIsNone(PickupOverride.from_mapping({}))
        self.assertIsNone(PickupOverride.from_mapping({'name': ''}))
        self.assertIsNone(PickupOverride.from_mapping('not a dict'))

    def test_remarks(self):
        self.assertEqual(build_remarks('refund-approved', 'from panel'), 'refund-approved | from panel')
        self.assertEqual(build_remarks('', 'from panel'), 'from panel')
        self.assertIsNone(build_remarks('', ''))


class ReversePayloadTests(SimpleTestCase):
    """The whole payload: customer is pickup, warehouse is consignee."""

    def setUp(self):
        self.snapshot = OrderSnapshot(
            billing={
                'name': 'Riya Sharma',
                'phone': '+91 98765 43210',
                'address': 'Flat 12, Tower B, Sector 62, Noida',
                'city': 'Noida',
                'state': 'Uttar Pradesh',
                'zip': '201309',
            },
            items=[{'name': 'Linen Shirt', 'qty': 1, 'price': 1800, 'sku': 'LS-01'}],
            amount=2000,
            discount=200,
        )

    def test_payload_from_billing(self):
        payload = build_reverse_payload('RETABC123', self.snapshot, None, courier_config())

        self.assertEqual(payload['order_number'], 'RETABC123')
        self.assertEqual(payload['payment_type'], 'prepaid')
        self.assertEqual(payload['order_amount'], 2124)
        self.assertEqual(payload['discount'], 200)
        self.assertEqual(payload['package_weight'], 700)
        self.assertEqual(
            (payload['package_length'], payload['package_breadth'], payload['package_height']),
            (30, 20, 10),
        )
        self.assertEqual(payload['request_auto_pickup'], 'yes')
        self.assertTrue(payload['is_reverse'])
        self.assertEqual(payload['collectable_amount'], 0)

        pickup = payload['pickup']
        self.assertEqual(pickup['name'], 'Riya Sharma')
        self.assertEqual(pickup['warehouse_name'], 'Riya Sharma')
        self.assertEqual(pickup['phone'], '9876543210')
        self.assertEqual(pickup['pincode'], '201309')
        self.assertEqual(pickup['address'], 'Flat 12, Tower B')
        self.assertEqual(pickup['address_2'], 'Sector 62, Noida')

    def test_consignee_is_always_the_warehouse(self):
        payload = build_reverse_payload('RETABC123', self.snapshot, None, courier_config())
        consignee = payload['consignee']
        self.assertEqual(consignee['name'], 'Megance')
        self.assertEqual(consignee['company_name'], 'Megance WH1')
        self.assertEqual(consignee['address'], 'A-51, First floor, Meera Bagh, Paschim Vihar')
        self.assertEqual(consignee['address_2'], '')
        self.assertEqual(consignee['pincode'], '110087')
        self.assertEqual(consignee['phone'], '8882132169')
        self.assertNotIn('gst_number', consignee)

    def test_gst_number_only_when_configured(self):
        config = courier_config(warehouse=WarehouseAddress(gst_number='07ABCDE1234F1Z5'))
        payload = build_reverse_payload('RETABC123', self.snapshot, None, config)
        self.assertEqual(payload['consignee']['gst_number'], '07ABCDE1234F1Z5')
        # No phone configured: courier still needs one
        self.assertEqual(payload['consignee']['phone'], '9999999999')

    def test_pickup_override_wins_over_billing(self):
        pickup = PickupOverride(name='Riya S', phone='9123456789', address='House 4, MG Road', zip='560001-1')
        payload = build_reverse_payload('RETABC123', self.snapshot, pickup, courier_config())

        self.assertEqual(payload['pickup']['name'], 'Riya S')
        self.assertEqual(payload['pickup']['phone'], '9123456789')
        self.assertEqual(payload['pickup']['address'], 'House 4, MG Road')
        self.assertEqual(payload['pickup']['address_2'], '')
        self.assertEqual(payload['pickup']['pincode'], '560001')
        # Not overridden: from billing
        self.assertEqual(payload['pickup']['city'], 'Noida')

    def test_long_fields_are_truncated(self):
        snapshot = OrderSnapshot(billing={
            'name': 'N' * 250,
            'city': 'C' * 60,
            'state': 'S' * 60,
        })
        payload = build_reverse_payload('RET' + 'X' * 30, snapshot, None, courier_config())

        self.assertEqual(len(payload['order_number']), 20)
        self.assertEqual(len(payload['pickup']['warehouse_name']), 20)
        self.assertEqual(len(payload['pickup']['name']), 200)
        self.assertEqual(len(payload['pickup']['city']), 40)
        self.assertEqual(len(payload['pickup']['state']), 40)

    def test_buyer_placeholder_without_name(self):
        payload = build_reverse_payload('RETABC123', OrderSnapshot(), None, courier_config())
        self.assertEqual(payload['pickup']['warehouse_name'], 'Buyer')
        self.assertEqual(payload['order_items'], [])

    def test_invalid_package_config_uses_defaults(self):
        config = courier_config(
            package=PackageDefaults(weight_kg='abc', length_cm='x', breadth_cm='', height_cm=None),
            auto_pickup=False,
        )
        payload = build_reverse_payload('RETABC123', self.snapshot, None, config)
        self.assertEqual(payload['package_weight'], 500)
        self.assertEqual(payload['package_length'], 30)
        self.assertEqual(payload['package_breadth'], 20)
        self.assertEqual(payload['package_height'], 10)
        self.assertEqual(payload['request_auto_pickup'], 'no')


# ============================================================
# COURIER CLIENT TESTS
# ============================================================

class CourierClientTests(SimpleTestCase):
    """Login, booking, and the single auth-refresh retry."""

    def setUp(self):
        self.session = mock.Mock()
        self.client = XpressbeesClient(courier_config(), session=self.session)

    def test_origin_strips_api_path(self):
        self.assertEqual(self.client.origin, 'https://shipment.example.com')
        self.assertEqual(courier_origin('shipment.example.com/api/users/'), 'shipment.example.com')
        self.assertEqual(courier_origin(''), 'https://shipment.xpressbees.com')

    def test_login_token_shapes(self):
        shapes = [
            ({'status': True, 'data': 'tok-a'}, 'tok-a'),
            ({'token': 'tok-b'}, 'tok-b'),
            ({'access_token': 'tok-c'}, 'tok-c'),
            ({'data': {'token': 'tok-d'}}, 'tok-d'),
            ({'data': {'access_token': 'tok-e'}}, 'tok-e'),
        ]
        for body, expected in shapes:
            self.session.post.return_value = http_response(200, body)
            self.assertEqual(self.client.login(), expected)

    def test_login_posts_credentials(self):
        self.session.post.return_value = http_response(200, {'data': 'tok'})
        self.client.login()
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], 'https://shipment.example.com/api/users/login')
        self.assertEqual(kwargs['json'], {'email': 'ops@example.com', 'password': 'courier-secret'})

    def test_login_without_token_fails(self):
        self.session.post.return_value = http_response(200, {'status': True})
        with self.assertRaisesMessage(CourierError, 'Login ok but no token'):
            self.client.login()

    def test_login_rejected_carries_upstream_message(self):
        self.session.post.return_value = http_response(401, {'message': 'Invalid credentials'})
        with self.assertRaisesMessage(CourierError, 'Invalid credentials'):
            self.client.login()

    def test_create_shipment(self):
        self.session.post.side_effect = [
            http_response(200, {'data': 'tok-1'}),
            http_response(200, {'status': True, 'data': {'awb_number': '1420110000123', 'shipment_id': 98765}}),
        ]
        result = self.client.create_reverse_shipment({'order_number': 'RETABC123'})

        self.assertEqual(result.awb, '1420110000123')
        self.assertEqual(result.shipment_id, '98765')
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], 'https://shipment.example.com/api/shipments2')
        self.assertEqual(kwargs['headers'], {'Authorization': 'Bearer tok-1'})
        self.assertEqual(kwargs['json'], {'order_number': 'RETABC123'})

    def test_expired_token_is_refreshed_once(self):
        self.session.post.side_effect = [
            http_response(200, {'data': 'tok-old'}),
            http_response(401, {'message': 'Token expired'}),
            http_response(200, {'data': 'tok-new'}),
            http_response(200, {'awb': 'AWB-2', 'order_id': 'XB-7'}),
        ]
        result = self.client.create_reverse_shipment({'order_number': 'RETABC123'})

        self.assertEqual(self.session.post.call_count, 4)
        self.assertEqual(self.session.post.call_args.kwargs['headers'], {'Authorization': 'Bearer tok-new'})
        self.assertEqual((result.awb, result.shipment_id), ('AWB-2', 'XB-7'))

    def test_second_auth_failure_is_final(self):
        self.session.post.side_effect = [
            http_response(200, {'data': 'tok-1'}),
            http_response(403, {}),
            http_response(200, {'data': 'tok-2'}),
            http_response(403, {}),
        ]
        with self.assertRaisesMessage(CourierError, 'HTTP 403'):
            self.client.create_reverse_shipment({'order_number': 'RETABC123'})
        self.assertEqual(self.session.post.call_count, 4)

    def test_other_errors_are_not_retried(self):
        self.session.post.side_effect = [
            http_response(200, {'data': 'tok-1'}),
            http_response(422, {'message': 'Pincode not serviceable'}),
        ]
        with self.assertRaisesMessage(CourierError, 'Pincode not serviceable'):
            self.client.create_reverse_shipment({'order_number': 'RETABC123'})
        self.assertEqual(self.session.post.call_count, 2)

    def test_non_json_error_reports_status(self):
        self.session.post.side_effect = [
            http_response(200, {'data': 'tok-1'}),
            http_response(500, text='<html>Bad Gateway</html>'),
        ]
        with self.assertRaises(CourierError) as ctx:
            self.client.create_reverse_shipment({'order_number': 'RETABC123'})
        self.assertEqual(str(ctx.exception.detail), 'HTTP 500')
        self.assertEqual(ctx.exception.upstream_status, 500)

    def test_network_error_becomes_courier_error(self):
        self.session.post.side_effect = requests.ConnectionError('connection refused')
        with self.assertRaises(CourierError):
            self.client.login()

    def test_parse_response_key_variants(self):
        self.assertEqual(parse_shipment_response({'awbno': 'A3', 'id': 5}).awb, 'A3')
        self.assertEqual(parse_shipment_response({'awbno': 'A3', 'id': 5}).shipment_id, '5')
        result = parse_shipment_response({'data': 'queued'})
        self.assertEqual((result.awb, result.shipment_id), (None, None))
        self.assertIsNone(parse_shipment_response('accepted').awb)


# ============================================================
# WHATSAPP TESTS
# ============================================================

class WhatsAppTests(SimpleTestCase):
    """Addressing and the Twilio template call."""

    def setUp(self):
        self.config = MessagingConfig(
            account_sid='AC0001',
            auth_token='twilio-secret',
            whatsapp_from='+14155238886',
            rejected_template_sid='HXrejected',
        )
        self.session = mock.Mock()
        self.client = WhatsAppClient(self.config, session=self.session)

    def test_phone_to_whatsapp(self):
        self.assertEqual(phone_to_whatsapp('9876543210'), 'whatsapp:+919876543210')
        self.assertEqual(phone_to_whatsapp('98765 43210'), 'whatsapp:+919876543210')
        self.assertEqual(phone_to_whatsapp('919876543210'), 'whatsapp:+919876543210')
        self.assertEqual(phone_to_whatsapp('+14155550100'), 'whatsapp:+14155550100')
        self.assertEqual(phone_to_whatsapp('whatsapp:+14155550100'), 'whatsapp:+14155550100')

    def test_phone_to_whatsapp_empty(self):
        self.assertEqual(phone_to_whatsapp(''), '')
        self.assertEqual(phone_to_whatsapp(None), '')
        self.assertEqual(phone_to_whatsapp('n/a'), '')

    def test_sender_normalization(self):
        self.assertEqual(normalize_sender('+14155238886'), 'whatsapp:+14155238886')
        self.assertEqual(normalize_sender('14155238886'), 'whatsapp:+14155238886')
        self.assertEqual(normalize_sender('whatsapp:+14155238886'), 'whatsapp:+14155238886')

    def test_template_variables_are_positional(self):
        self.assertEqual(json.loads(template_variables('Riya', 'ORD1')), {'1': 'Riya', '2': 'ORD1'})

    def test_send_template(self):
        self.session.post.return_value = http_response(201, {'sid': 'SM123'})
        result = self.client.send_template('whatsapp:+919876543210', 'HXrejected', '{"1": "Riya"}')

        self.assertTrue(result.ok)
        self.assertEqual(result.sid, 'SM123')
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], 'https://api.twilio.com/2010-04-01/Accounts/AC0001/Messages.json')
        self.assertEqual(kwargs['auth'], ('AC0001', 'twilio-secret'))
        self.assertEqual(kwargs['data']['From'], 'whatsapp:+14155238886')
        self.assertEqual(kwargs['data']['To'], 'whatsapp:+919876543210')
        self.assertEqual(kwargs['data']['ContentSid'], 'HXrejected')

    def test_missing_config_sends_nothing(self):
        client = WhatsAppClient(MessagingConfig(), session=self.session)
        result = client.send_template('whatsapp:+919876543210', 'HXrejected', '{}')
        self.assertFalse(result.ok)
        self.assertEqual(result.error, 'missing_config')
        self.session.post.assert_not_called()

    def test_provider_error_is_returned_not_raised(self):
        self.session.post.return_value = http_response(400, text='Template not approved')
        result = self.client.send_template('whatsapp:+919876543210', 'HXrejected', '{}')
        self.assertFalse(result.ok)
        self.assertEqual(result.error, 'Template not approved')

    def test_network_error_is_returned_not_raised(self):
        self.session.post.side_effect = requests.Timeout('timed out')
        result = self.client.send_template('whatsapp:+919876543210', 'HXrejected', '{}')
        self.assertFalse(result.ok)


class ConfigTests(SimpleTestCase):

    @override_settings(XPRESSBEES={'AUTO_PICKUP': 'NO', 'TIMEOUT_SECONDS': 'soon'}, WAREHOUSE={}, TWILIO={},
                       BACKOFFICE_ADMIN_EMAILS=[' Owner@Example.com ', ''])
    def test_from_settings_defaults(self):
        config = BackofficeConfig.from_settings()
        self.assertFalse(config.courier.auto_pickup)
        self.assertEqual(config.courier.timeout, 30.0)
        self.assertFalse(config.courier.is_configured)
        self.assertEqual(config.courier.origin, 'https://shipment.xpressbees.com')
        self.assertEqual(config.courier.warehouse.warehouse_name, 'Megance WH1')
        self.assertFalse(config.messaging.is_configured)
        self.assertEqual(config.admin_emails, frozenset({'owner@example.com'}))

    def test_rejection_template_falls_back(self):
        self.assertEqual(MessagingConfig(fallback_template_sid='HXfallback').rejection_template, 'HXfallback')
        self.assertEqual(
            MessagingConfig(rejected_template_sid='HXr', fallback_template_sid='HXf').rejection_template,
            'HXr',
        )


# ============================================================
# API TEST BASE
# ============================================================

@override_settings(
    XPRESSBEES=TEST_XPRESSBEES,
    WAREHOUSE=TEST_WAREHOUSE,
    TWILIO=TEST_TWILIO,
    BACKOFFICE_ADMIN_EMAILS=['owner@example.com'],
)
class BaseTestCase(TestCase):
    """
    Base test class with helper methods to create test data.
    All API test classes inherit from this.
    """

    def setUp(self):
        """Runs before EVERY test method. Creates fresh test data."""
        cache.clear()  # throttling counters
        self.client = APIClient()
        self.base_url = '/api/v1'

        self.staff = User.objects.create_user(
            username='ops', email='ops@megance.test', password='x', is_staff=True,
        )
        self.owner_admin = User.objects.create_user(
            username='owner', email='Owner@Example.com', password='x',
        )
        self.customer = User.objects.create_user(
            username='riya', email='riya@example.com', password='x',
        )
        self.stranger = User.objects.create_user(
            username='stranger', email='stranger@example.com', password='x',
        )

        self.order = Order.objects.create(
            order_number='abc123xyz789',
            user=self.customer,
            billing_name='Riya Sharma',
            billing_email='riya@example.com',
            billing_phone='+91 98765 43210',
            billing_address='Flat 12, Tower B, Sector 62, Noida',
            billing_city='Noida',
            billing_state='Uttar Pradesh',
            billing_zip='201309',
            amount=Decimal('2000.00'),
            discount=Decimal('200.00'),
            payment_id='pay_Nx81',
            coupon_code='WELCOME10',
        )
        OrderItem.objects.create(order=self.order, name='Linen Shirt', sku='LS-01', qty=1, price=Decimal('1200.00'))
        OrderItem.objects.create(order=self.order, name='Chino Shorts', sku='CS-07', qty=2, price=Decimal('400.00'))

        self.refund_request = RefundRequest.objects.create(
            user=self.customer,
            order_ref='abc123xyz789',
            contact_name='Riya Sharma',
            contact_email='riya@example.com',
            contact_phone='9876543210',
            address='House 4, MG Road, Bengaluru',
            contact_city='Bengaluru',
            contact_state='Karnataka',
            contact_zip='560001',
            reasons=['wrong_size'],
        )

    def login_response(self, token='tok-1'):
        return http_response(200, {'data': token})

    def shipment_response(self, awb='1420110000123', shipment_id=98765):
        return http_response(200, {'status': True, 'data': {'awb_number': awb, 'shipment_id': shipment_id}})


# ============================================================
# RETURN CREATION TESTS
# ============================================================

class CreateReturnTests(BaseTestCase):
    """POST /api/v1/returns/ - book a reverse pickup for an order."""

    def _create(self, **body):
        payload = {'order_id': self.order.order_number}
        payload.update(body)
        return self.client.post(f'{self.base_url}/returns/', payload, format='json')

    def test_create_return_success(self):
        """First call books a shipment and stores the tracking ids."""
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]) as post:
            response = self._create(reason='refund-approved', notes='Created from admin Refunds page')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['awb'], '1420110000123')
        self.assertEqual(response.data['shipment_id'], '98765')
        self.assertFalse(response.data['already'])
        self.assertEqual(post.call_count, 2)

        self.order.refresh_from_db()
        self.assertTrue(self.order.return_requested)
        self.assertIsNotNone(self.order.return_requested_at)
        self.assertEqual(self.order.return_awb, '1420110000123')
        self.assertEqual(self.order.return_shipment_id, '98765')
        self.assertEqual(self.order.return_reason, 'refund-approved')
        self.assertEqual(self.order.return_raw['data']['awb_number'], '1420110000123')

    def test_payload_sent_to_courier(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]) as post:
            self._create(
                pickup={'name': 'Riya S', 'phone': '98450 12345', 'address': 'House 4, MG Road, Bengaluru',
                        'pincode': '560001'},
                reason='refund-approved',
                notes='from panel',
            )

        payload = post.call_args.kwargs['json']
        self.assertEqual(payload['order_number'], 'RETABC123')
        self.assertEqual(payload['remarks'], 'refund-approved | from panel')
        self.assertEqual(payload['order_amount'], 2124)
        self.assertEqual(payload['pickup']['phone'], '9845012345')
        self.assertEqual(payload['pickup']['pincode'], '560001')
        self.assertEqual(payload['pickup']['address'], 'House 4, MG Road')
        self.assertEqual(payload['pickup']['address_2'], 'Bengaluru')
        self.assertEqual(payload['consignee']['phone'], '8882132169')
        self.assertEqual(
            payload['order_items'],
            [
                {'name': 'Linen Shirt', 'qty': '1', 'price': '1200', 'sku': 'LS-01'},
                {'name': 'Chino Shorts', 'qty': '2', 'price': '400', 'sku': 'CS-07'},
            ],
        )

        self.order.refresh_from_db()
        self.assertEqual(
            self.order.return_pickup,
            {'name': 'Riya S', 'phone': '98450 12345', 'address': 'House 4, MG Road, Bengaluru', 'zip': '560001'},
        )

    def test_blank_pickup_uses_billing(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]) as post:
            response = self._create(pickup={'name': '', 'zip': ''})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(post.call_args.kwargs['json']['pickup']['name'], 'Riya Sharma')
        self.order.refresh_from_db()
        self.assertIsNone(self.order.return_pickup)

    def test_second_call_is_idempotent(self):
        """Once tracking ids exist, the courier is never called again."""
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]):
            first = self._create()

        with mock.patch.object(requests.Session, 'post') as post:
            second = self._create()

        post.assert_not_called()
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.data['already'])
        self.assertEqual(second.data['awb'], first.data['awb'])
        self.assertEqual(second.data['shipment_id'], first.data['shipment_id'])

    def test_existing_shipment_id_alone_blocks_rebooking(self):
        Order.objects.filter(pk=self.order.pk).update(return_shipment_id='XB-1')
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post') as post:
            response = self._create()
        post.assert_not_called()
        self.assertEqual(response.data['shipment_id'], 'XB-1')
        self.assertIsNone(response.data['awb'])

    def test_mirror_copy_is_written(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]):
            response = self._create(reason='refund-approved')

        self.assertEqual(response.data['side_effects'], {'mirror': 'ok'})
        mirror = UserDocumentMirror.objects.get(
            user=self.customer, collection='orders', document_id='abc123xyz789',
        )
        self.assertTrue(mirror.data['returnRequested'])
        self.assertEqual(mirror.data['returnAwb'], '1420110000123')
        self.assertEqual(mirror.data['returnReason'], 'refund-approved')

    def test_mirror_failure_does_not_undo_return(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]), \
                mock.patch.object(UserDocumentMirror, 'merge', side_effect=DatabaseError('disk full')):
            response = self._create()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['side_effects'], {'mirror': 'failed'})
        self.order.refresh_from_db()
        self.assertEqual(self.order.return_awb, '1420110000123')

    def test_order_without_owner_skips_mirror(self):
        Order.objects.filter(pk=self.order.pk).update(user=None)
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]):
            response = self._create()
        self.assertEqual(response.data['side_effects'], {'mirror': 'skipped'})
        self.assertFalse(UserDocumentMirror.objects.exists())

    def test_order_id_alias(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]):
            response = self.client.post(
                f'{self.base_url}/returns/', {'orderId': self.order.order_number}, format='json',
            )
        self.assertEqual(response.status_code, 201)

    def test_allow_listed_email_is_admin(self):
        self.client.force_authenticate(self.owner_admin)
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]):
            response = self._create()
        self.assertEqual(response.status_code, 201)

    def test_courier_failure_surfaces_upstream_message(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post', side_effect=[
            self.login_response(),
            http_response(422, {'message': 'Pincode not serviceable'}),
        ]):
            response = self._create()

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data['kind'], 'upstream')
        self.assertEqual(response.data['error'], 'Pincode not serviceable')
        self.order.refresh_from_db()
        self.assertFalse(self.order.has_return)
        self.assertFalse(self.order.return_requested)

    def test_auth_refresh_through_api(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post', side_effect=[
            self.login_response('tok-old'),
            http_response(401, {'message': 'Unauthorized'}),
            self.login_response('tok-new'),
            self.shipment_response(awb='AWB-NEW'),
        ]) as post:
            response = self._create()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['awb'], 'AWB-NEW')
        self.assertEqual(post.call_count, 4)

    @override_settings(XPRESSBEES={**TEST_XPRESSBEES, 'USERNAME': '', 'PASSWORD': ''})
    def test_missing_courier_credentials(self):
        self.client.force_authenticate(self.staff)
        with mock.patch.object(requests.Session, 'post') as post:
            response = self._create()
        post.assert_not_called()
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data['kind'], 'not_configured')

    def test_unknown_order(self):
        self.client.force_authenticate(self.staff)
        response = self._create(order_id='does-not-exist')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'kind': 'not_found', 'error': 'Order not found'})

    def test_order_id_required(self):
        self.client.force_authenticate(self.staff)
        response = self.client.post(f'{self.base_url}/returns/', {'reason': 'x'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['kind'], 'validation')
        self.assertIn('order_id', response.data['details'])

    def test_non_admin_forbidden(self):
        self.client.force_authenticate(self.customer)
        with mock.patch.object(requests.Session, 'post') as post:
            response = self._create()
        post.assert_not_called()
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['kind'], 'permission')

    def test_anonymous_unauthorized(self):
        response = self._create()
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['kind'], 'permission')

    def test_bearer_token_auth(self):
        token = Token.objects.create(user=self.staff)
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token.key}')
        with mock.patch.object(requests.Session, 'post',
                               side_effect=[self.login_response(), self.shipment_response()]):
            response = self._create()
        self.assertEqual(response.status_code, 201)


# ============================================================
# REFUND DECISION TESTS
# ============================================================

class ResolveRefundRequestTests(BaseTestCase):
    """POST /api/v1/refund-requests/{id}/resolve/"""

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.staff)
        self.url = f'{self.base_url}/refund-requests/{self.refund_request.pk}/resolve/'

    def test_reject_without_note_changes_nothing(self):
        """No note: validation error, no write, no WhatsApp."""
        for body in ({'status': 'rejected'}, {'status': 'rejected', 'notes': '   '}):
            with mock.patch.object(requests.Session, 'post') as post:
                response = self.client.post(self.url, body, format='json')

            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.data['kind'], 'validation')
            self.assertEqual(response.data['error'], 'Rejection note is required')
            post.assert_not_called()

        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.status, 'requested')
        self.assertEqual(self.refund_request.processed_by, '')
        self.assertIsNone(self.refund_request.processed_at)
        self.assertFalse(UserDocumentMirror.objects.exists())

    def test_reject_with_note(self):
        with mock.patch.object(requests.Session, 'post',
                               return_value=http_response(201, {'sid': 'SM1'})) as post:
            response = self.client.post(
                self.url, {'status': 'rejected', 'notes': ' Item shows signs of wear '}, format='json',
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'rejected')
        self.assertEqual(response.data['side_effects'], {'mirror': 'ok', 'notification': 'ok'})

        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.status, 'rejected')
        self.assertEqual(self.refund_request.decision_notes, 'Item shows signs of wear')
        self.assertEqual(self.refund_request.processed_by, 'ops@megance.test')
        self.assertIsNotNone(self.refund_request.processed_at)

        # Exactly one WhatsApp attempt, to the customer
        self.assertEqual(post.call_count, 1)
        sent = post.call_args.kwargs['data']
        self.assertEqual(sent['To'], 'whatsapp:+919876543210')
        self.assertEqual(sent['ContentSid'], 'HXrejected')
        self.assertEqual(
            json.loads(sent['ContentVariables']),
            {'1': 'Riya Sharma', '2': 'abc123xyz789', '3': 'REJECTED', '4': 'Item shows signs of wear'},
        )

        mirror = UserDocumentMirror.objects.get(
            user=self.customer, collection='refund_requests', document_id=str(self.refund_request.pk),
        )
        self.assertEqual(mirror.data['status'], 'rejected')
        self.assertEqual(mirror.data['decisionNotes'], 'Item shows signs of wear')

    def test_approve_sends_no_notification(self):
        with mock.patch.object(requests.Session, 'post') as post:
            response = self.client.post(self.url, {'status': 'approved'}, format='json')

        post.assert_not_called()
        self.assertEqual(response.status_code, 200)
        self.assertNotIn('notification', response.data['side_effects'])
        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.status, 'approved')
        self.assertIsNone(self.refund_request.decision_notes)

    def test_decision_alias_and_case(self):
        response = self.client.post(self.url, {'decision': ' APPROVED '}, format='json')
        self.assertEqual(response.status_code, 200)
        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.status, 'approved')

    def test_unknown_decision(self):
        response = self.client.post(self.url, {'status': 'maybe'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['kind'], 'validation')

    def test_decision_is_final(self):
        self.client.post(self.url, {'status': 'approved'}, format='json')
        response = self.client.post(self.url, {'status': 'rejected', 'notes': 'changed my mind'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.status, 'approved')

    def test_unknown_request(self):
        response = self.client.post(
            f'{self.base_url}/refund-requests/999999/resolve/', {'status': 'approved'}, format='json',
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['kind'], 'not_found')

    def test_notification_failure_is_swallowed(self):
        with mock.patch.object(requests.Session, 'post',
                               return_value=http_response(500, text='Twilio down')) as post:
            response = self.client.post(self.url, {'status': 'rejected', 'notes': 'Used item'}, format='json')

        self.assertEqual(post.call_count, 1)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['side_effects']['notification'], 'failed')
        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.status, 'rejected')

    def test_notification_network_error_is_swallowed(self):
        with mock.patch.object(requests.Session, 'post', side_effect=requests.ConnectionError('offline')):
            response = self.client.post(self.url, {'status': 'rejected', 'notes': 'Used item'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['side_effects']['notification'], 'failed')

    @override_settings(TWILIO={**TEST_TWILIO, 'RETURNS_REJECTED_SID': ''})
    def test_fallback_template(self):
        with mock.patch.object(requests.Session, 'post',
                               return_value=http_response(201, {'sid': 'SM2'})) as post:
            self.client.post(self.url, {'status': 'rejected', 'notes': 'Used item'}, format='json')
        self.assertEqual(post.call_args.kwargs['data']['ContentSid'], 'HXfallback')

    def test_no_phone_skips_notification(self):
        RefundRequest.objects.filter(pk=self.refund_request.pk).update(contact_phone='')
        with mock.patch.object(requests.Session, 'post') as post:
            response = self.client.post(self.url, {'status': 'rejected', 'notes': 'Used item'}, format='json')
        post.assert_not_called()
        self.assertEqual(response.data['side_effects']['notification'], 'skipped')

    def test_actor_defaults_when_admin_has_no_email(self):
        nameless = User.objects.create_user(username='nameless', password='x', is_staff=True)
        self.client.force_authenticate(nameless)
        self.client.post(self.url, {'status': 'approved'}, format='json')
        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.processed_by, '(admin)')

    def test_non_admin_cannot_decide(self):
        self.client.force_authenticate(self.customer)
        response = self.client.post(self.url, {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, 403)
        self.refund_request.refresh_from_db()
        self.assertEqual(self.refund_request.status, 'requested')


# ============================================================
# LIST & DETAIL TESTS
# ============================================================

class RefundRequestListTests(BaseTestCase):
    """GET /api/v1/refund-requests/ and /{id}/"""

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.staff)
        self.other = RefundRequest.objects.create(
            order_ref='zzz999', contact_name='Kabir Mehta', contact_email='kabir@example.com',
            contact_phone='9123456780', status='rejected',
        )

    def test_list_all(self):
        response = self.client.get(f'{self.base_url}/refund-requests/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data['results']), 2)
        # Newest first
        self.assertEqual(response.data['results'][0]['id'], self.other.pk)
        self.assertFalse(response.data['has_more'])

    def test_filter_by_status(self):
        response = self.client.get(f'{self.base_url}/refund-requests/?status=requested')
        ids = [r['id'] for r in response.data['results']]
        self.assertEqual(ids, [self.refund_request.pk])

        response = self.client.get(f'{self.base_url}/refund-requests/?status=all')
        self.assertEqual(len(response.data['results']), 2)

    def test_search(self):
        response = self.client.get(f'{self.base_url}/refund-requests/?q=kabir')
        self.assertEqual([r['id'] for r in response.data['results']], [self.other.pk])

        response = self.client.get(f'{self.base_url}/refund-requests/?q=abc123')
        self.assertEqual([r['id'] for r in response.data['results']], [self.refund_request.pk])

        response = self.client.get(f'{self.base_url}/refund-requests/?q={self.other.pk}')
        self.assertIn(self.other.pk, [r['id'] for r in response.data['results']])

    def test_has_return_flag(self):
        Order.objects.filter(pk=self.order.pk).update(return_awb='AWB-1')
        response = self.client.get(f'{self.base_url}/refund-requests/')
        flags = {r['id']: r['has_return'] for r in response.data['results']}
        self.assertEqual(flags, {self.refund_request.pk: True, self.other.pk: False})

    def test_cursor_pagination(self):
        response = self.client.get(f'{self.base_url}/refund-requests/?page_size=1')
        self.assertTrue(response.data['has_more'])
        self.assertEqual(response.data['results'][0]['id'], self.other.pk)

        cursor = response.data['next_cursor']
        response = self.client.get(f'{self.base_url}/refund-requests/?page_size=1&cursor={cursor}')
        self.assertFalse(response.data['has_more'])
        self.assertEqual(response.data['results'][0]['id'], self.refund_request.pk)

    def test_invalid_cursor(self):
        response = self.client.get(f'{self.base_url}/refund-requests/?cursor=abc')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['kind'], 'validation')

    def test_detail_includes_order(self):
        response = self.client.get(f'{self.base_url}/refund-requests/{self.refund_request.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['order']['order_number'], 'abc123xyz789')
        self.assertFalse(response.data['order']['has_return'])
        self.assertEqual(len(response.data['order']['items']), 2)

    def test_detail_without_known_order(self):
        response = self.client.get(f'{self.base_url}/refund-requests/{self.other.pk}/')
        self.assertIsNone(response.data['order'])

    def test_detail_not_found(self):
        response = self.client.get(f'{self.base_url}/refund-requests/999999/')
        self.assertEqual(response.status_code, 404)

    def test_list_requires_admin(self):
        self.client.force_authenticate(self.customer)
        response = self.client.get(f'{self.base_url}/refund-requests/')
        self.assertEqual(response.status_code, 403)


# ============================================================
# INVOICE TESTS
# ============================================================

class InvoiceTests(BaseTestCase):
    """GET /api/v1/orders/{id}/invoice/ - owner or admin only."""

    def setUp(self):
        super().setUp()
        self.url = f'{self.base_url}/orders/{self.order.order_number}/invoice/'
        self.customer_token = Token.objects.create(user=self.customer).key

    def test_owner_with_bearer_token(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.customer_token}')
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/html; charset=utf-8')
        html = response.content.decode()
        self.assertIn('Invoice #23xyz789', html)
        self.assertIn('Riya Sharma', html)
        self.assertIn('Linen Shirt', html)
        self.assertIn('800.00', html)        # 2 x 400 line total
        self.assertIn('Coupon (WELCOME10)', html)
        self.assertIn('2000.00', html)       # no payable stored: total = amount
        self.assertIn('pay_Nx81', html)

    def test_owner_with_query_token(self):
        response = self.client.get(f'{self.url}?token={self.customer_token}')
        self.assertEqual(response.status_code, 200)

    def test_admin_can_read_any_invoice(self):
        token = Token.objects.create(user=self.staff).key
        response = self.client.get(f'{self.url}?token={token}')
        self.assertEqual(response.status_code, 200)

    def test_no_token(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 401)

    def test_bad_token(self):
        response = self.client.get(f'{self.url}?token=not-a-token')
        self.assertEqual(response.status_code, 401)

    def test_other_customer_forbidden(self):
        token = Token.objects.create(user=self.stranger).key
        response = self.client.get(f'{self.url}?token={token}')
        self.assertEqual(response.status_code, 403)

    def test_missing_order(self):
        response = self.client.get(f'{self.base_url}/orders/nope/invoice/?token={self.customer_token}')
        self.assertEqual(response.status_code, 404)

    def test_values_are_escaped(self):
        OrderItem.objects.create(order=self.order, name='<script>alert(1)</script>', qty=1, price=1)
        response = self.client.get(f'{self.url}?token={self.customer_token}')
        html = response.content.decode()
        self.assertNotIn('<script>alert(1)</script>', html)
        self.assertIn('&lt;script&gt;', html)


# ============================================================
# DJANGO ADMIN TESTS
# ============================================================

@override_settings(TWILIO=TEST_TWILIO, BACKOFFICE_ADMIN_EMAILS=['owner@example.com'])
class AdminPanelTests(TestCase):
    """Bulk approve goes through the same decision rules as the API."""

    def setUp(self):
        self.superuser = User.objects.create_superuser(
            username='root', email='root@megance.test', password='x',
        )
        self.client = Client()
        self.client.force_login(self.superuser)
        self.pending = RefundRequest.objects.create(order_ref='o1', contact_phone='9876543210')
        self.done = RefundRequest.objects.create(order_ref='o2', status='rejected', decision_notes='no')

    def test_bulk_approve(self):
        with mock.patch.object(requests.Session, 'post') as post:
            response = self.client.post('/admin/returns/refundrequest/', {
                'action': 'approve_requests',
                '_selected_action': [self.pending.pk, self.done.pk],
            })

        self.assertEqual(response.status_code, 302)
        post.assert_not_called()
        self.pending.refresh_from_db()
        self.done.refresh_from_db()
        self.assertEqual(self.pending.status, 'approved')
        self.assertEqual(self.pending.processed_by, 'root@megance.test')
        self.assertEqual(self.done.status, 'rejected')
