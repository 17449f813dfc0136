"""Shipping-partner webhook tests."""

from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from orders.models import Order, OrderStatus
from orders.pricing import place_order
from orders.state import cancel
from orders.webhooks import ShippingWebhookView, map_courier_status
from products.models import ProductCategory, Product

ADDRESS = {
	'first_name': 'Meena',
	'last_name': 'S',
	'street': '9 Park Street',
	'city': 'Kolkata',
	'state': 'West Bengal',
	'zip': '700016',
	'phone': '+918123456789',
}


class CourierStatusMappingTests(SimpleTestCase):
	def test_mapping(self):
		cases = {
			'Shipped': OrderStatus.SHIPPED,
			'Dispatched from hub': OrderStatus.SHIPPED,
			'OUT FOR DELIVERY': OrderStatus.OUT_FOR_DELIVERY,
			'Delivered to customer': OrderStatus.DELIVERED,
			'Cancelled by seller': OrderStatus.CANCELLED,
			'RTO Returned': OrderStatus.CANCELLED,
			'In transit': None,
			'': None,
			None: None,
		}
		for text, expected in cases.items():
			with self.subTest(text=text):
				self.assertEqual(map_courier_status(text), expected)


@override_settings(ALLOWED_HOSTS=['testserver'], SHIPPING_WEBHOOK_TOKEN='', ADMIN_NOTIFICATION_EMAIL='ops@example.com')
class ShippingWebhookTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.customer = User.objects.create_user(username='meena', email='meena@example.com', password='12345678')
		category = ProductCategory.objects.create(category_name='Sweets')
		cls.product = Product.objects.create(category=category, name='Laddu', slug='laddu', price='300.00', stock=6)

	def setUp(self):
		self.client = APIClient()
		self.order = place_order(
			self.customer,
			[{'id': self.product.id, 'type': 'product', 'quantity': 2, 'price': Decimal('300.00')}],
			ADDRESS,
			'Cash on Delivery',
		)

	def post(self, path, data, **extra):
		return self.client.post(f'/api/webhooks/{path}/', data=data, format='json', **extra)

	def test_shipment_update_moves_order_and_captures_awb(self):
		res = self.post('shipping-updates', {'order_id': self.order.order_id, 'status': 'Dispatched', 'awb': 'AWB42'})
		self.assertEqual(res.status_code, 200)
		self.order.refresh_from_db()
		self.assertEqual(self.order.order_status, OrderStatus.SHIPPED)
		self.assertEqual(self.order.tracking_number, 'AWB42')
		self.assertEqual(self.order.courier, 'iCarry')
		shipped = self.order.tracking_steps.get(status=OrderStatus.SHIPPED)
		self.assertEqual(shipped.note, 'Update via webhook: Dispatched')

	def test_redelivery_is_idempotent(self):
		payload = {'order_id': self.order.order_id, 'status': 'Out for delivery'}
		self.post('shipping-updates', payload)
		step = self.order.tracking_steps.get(status=OrderStatus.OUT_FOR_DELIVERY)

		with self.captureOnCommitCallbacks() as callbacks:
			res = self.post('shipping-updates', payload)
		self.assertEqual(res.status_code, 200)
		self.assertEqual(callbacks, [])
		again = self.order.tracking_steps.get(status=OrderStatus.OUT_FOR_DELIVERY)
		self.assertEqual(again.timestamp, step.timestamp)

	def test_unknown_status_appends_remark(self):
		res = self.post('shipping-updates', {'order_id': self.order.order_id, 'status': 'In transit', 'remark': 'Reached Howrah hub'})
		self.assertEqual(res.status_code, 200)
		self.order.refresh_from_db()
		self.assertEqual(self.order.order_status, OrderStatus.ORDERED)
		self.assertIn('In transit: Reached Howrah hub', self.order.notes)

	def test_delivered_does_not_revive_cancelled_order(self):
		cancel(self.order, reason='Customer request')
		res = self.post('shipping-updates', {'order_id': self.order.order_id, 'status': 'Delivered'})
		self.assertEqual(res.status_code, 200)
		self.order.refresh_from_db()
		self.assertEqual(self.order.order_status, OrderStatus.CANCELLED)

	def test_lookup_by_primary_key(self):
		res = self.post('shipping-updates', {'order_id': str(self.order.pk), 'status': 'Shipped'})
		self.assertEqual(res.status_code, 200)
		self.order.refresh_from_db()
		self.assertEqual(self.order.order_status, OrderStatus.SHIPPED)

	def test_missing_fields_and_unknown_order(self):
		self.assertEqual(self.post('shipping-updates', {'status': 'Shipped'}).status_code, 400)
		self.assertEqual(self.post('shipping-updates', {'order_id': 'ORD0', 'status': 'Shipped'}).status_code, 404)

	@override_settings(SHIPPING_WEBHOOK_TOKEN='hook-secret')
	def test_token_is_checked_when_configured(self):
		payload = {'order_id': self.order.order_id, 'status': 'Shipped'}
		self.assertEqual(self.post('shipping-updates', payload).status_code, 403)
		res = self.post('shipping-updates', payload, HTTP_X_WEBHOOK_TOKEN='hook-secret')
		self.assertEqual(res.status_code, 200)

	def test_ndr_logs_note_and_alerts_admin(self):
		with mock.patch('notifications.tasks.send_ndr_alert_email.delay') as delay:
			with self.captureOnCommitCallbacks(execute=True):
				res = self.post('ndr-updates', {'order_id': self.order.order_id, 'reason': 'Door locked', 'attempt_count': 2})
		self.assertEqual(res.status_code, 200)
		self.order.refresh_from_db()
		self.assertIn('[NDR ALERT]', self.order.notes)
		self.assertIn('Door locked', self.order.notes)
		delay.assert_called_once_with(self.order.pk, 'Door locked', 2)

	def test_note_written_meanwhile_is_kept(self):
		original = ShippingWebhookView._find_order

		def find_then_note(view, ref):
			found = original(view, ref)
			# An NDR note lands after this request loaded the order.
			Order.objects.filter(pk=found.pk).update(notes='[NDR ALERT] Customer unreachable')
			return found

		with mock.patch.object(ShippingWebhookView, '_find_order', find_then_note):
			res = self.post('shipping-updates', {'order_id': self.order.order_id, 'status': 'In transit', 'remark': 'Reached hub', 'awb': 'AWB9'})
		self.assertEqual(res.status_code, 200)
		self.order.refresh_from_db()
		self.assertIn('[NDR ALERT] Customer unreachable', self.order.notes)
		self.assertIn('In transit: Reached hub', self.order.notes)
		self.assertEqual(self.order.tracking_number, 'AWB9')
