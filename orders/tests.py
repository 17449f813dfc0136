"""Orders app tests."""

from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from cart.models import ShoppingCart, ShoppingCartItem
from orders.models import Order, OrderStatus
from orders.state import cancel, transition
from products.models import ProductCategory, Product


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'], FREE_SHIPPING_THRESHOLD=Decimal('500'))
class OrderCheckoutSmokeTests(TestCase):
	"""Checkout and order management through the HTTP API."""

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()

		cls.customer = User.objects.create_user(
			username='test_customer',
			email='test_customer@example.com',
			password='12345678',
			user_type='customer',
		)
		cls.other = User.objects.create_user(username='other_customer', password='12345678')
		cls.admin = User.objects.create_user(
			username='test_admin',
			email='test_admin@example.com',
			password='12345678',
			user_type='admin',
		)

		cls.category = ProductCategory.objects.create(category_name='TestCat')
		cls.product = Product.objects.create(
			category=cls.category,
			name='TestProduct',
			slug='test-product',
			description='Test',
			price='10.00',
			stock=100,
		)

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.customer)

	def payload(self, quantity=2, **overrides):
		data = {
			'items': [{'id': self.product.id, 'type': 'product', 'quantity': quantity, 'price': '10.00'}],
			'delivery_address': {
				'first_name': 'Test',
				'last_name': 'Customer',
				'street': '1 Test Street',
				'city': 'Pune',
				'state': 'Maharashtra',
				'zip': '411001',
				'phone': '081234 56789',
			},
			'payment_method': 'Cash on Delivery',
		}
		data.update(overrides)
		return data

	def place(self, quantity=2):
		res = self.client.post('/api/orders/', data=self.payload(quantity), format='json')
		self.assertEqual(res.status_code, 201, res.data)
		return Order.objects.get(order_id=res.data['order_id'])

	def test_create_order_cod_returns_201_and_clears_cart(self):
		cart, _ = ShoppingCart.objects.get_or_create(user=self.customer)
		ShoppingCartItem.objects.create(cart=cart, product=self.product, qty=2)

		res = self.client.post('/api/orders/', data=self.payload(), format='json')
		self.assertEqual(res.status_code, 201)

		# cart should be cleared
		self.assertEqual(cart.items.count(), 0)

		# order should exist and be Pending for COD
		order = Order.objects.get(order_id=res.data['order_id'])
		self.assertEqual(order.user_id, self.customer.id)
		self.assertEqual(order.order_status, OrderStatus.ORDERED)
		self.assertEqual(order.payment_status, 'Pending')
		self.assertEqual(Decimal(res.data['total']), Decimal('70.00'))
		self.assertEqual(res.data['delivery_address']['phone'], '+918123456789')
		self.assertEqual(len(res.data['tracking_steps']), 5)

		# stock should be decremented
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 98)

	def test_checkout_fails_when_insufficient_stock_and_cart_unchanged(self):
		self.product.stock = 1
		self.product.save(update_fields=['stock'])

		cart, _ = ShoppingCart.objects.get_or_create(user=self.customer)
		ShoppingCartItem.objects.create(cart=cart, product=self.product, qty=2)

		res = self.client.post('/api/orders/', data=self.payload(), format='json')
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'insufficient_stock')

		# cart should remain
		self.assertEqual(cart.items.count(), 1)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 1)

	def test_invalid_phone_is_rejected(self):
		data = self.payload()
		data['delivery_address']['phone'] = '12'
		res = self.client.post('/api/orders/', data=data, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertIn('delivery_address', res.data)

	def test_empty_cart_is_rejected(self):
		res = self.client.post('/api/orders/', data=self.payload(items=[]), format='json')
		self.assertEqual(res.status_code, 400)

	def test_online_payment_without_proof(self):
		res = self.client.post('/api/orders/', data=self.payload(payment_method='UPI'), format='json')
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'payment_proof_missing')
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 100)

	def test_lookup_by_order_id_or_pk(self):
		order = self.place()
		by_ref = self.client.get(f'/api/orders/{order.order_id}/')
		by_pk = self.client.get(f'/api/orders/{order.pk}/')
		self.assertEqual(by_ref.status_code, 200)
		self.assertEqual(by_pk.data['order_id'], order.order_id)

	def test_customers_only_see_their_own_orders(self):
		order = self.place()
		other = APIClient()
		other.force_authenticate(user=self.other)
		self.assertEqual(other.get(f'/api/orders/{order.order_id}/').status_code, 404)
		self.assertEqual(other.get('/api/orders/').data['count'], 0)

		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		self.assertEqual(admin.get('/api/orders/').data['count'], 1)

	def test_list_filters_by_status(self):
		first = self.place()
		self.place()
		transition(first, OrderStatus.PROCESSING)
		res = self.client.get('/api/orders/', {'status': 'Processing'})
		self.assertEqual(res.status_code, 200)
		self.assertEqual([o['order_id'] for o in res.data['results']], [first.order_id])

	def test_customer_cancels_before_shipping(self):
		order = self.place(quantity=3)
		res = self.client.put(f'/api/orders/{order.order_id}/cancel/', data={'reason': 'Ordered by mistake'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['order_status'], 'Cancelled')
		self.assertEqual(res.data['cancelled_by'], 'test_customer')
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 100)

	def test_customer_cannot_cancel_shipped_order(self):
		order = self.place()
		transition(order, OrderStatus.SHIPPED)
		res = self.client.put(f'/api/orders/{order.order_id}/cancel/', data={'reason': 'Too slow'}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'invalid_transition')

	def test_customer_cancel_loses_to_concurrent_shipment(self):
		order = self.place(quantity=3)

		def ship_then_cancel(target, **kwargs):
			# The admin ships the parcel after the customer's request loaded the order.
			transition(target, OrderStatus.SHIPPED)
			return cancel(target, **kwargs)

		with mock.patch('orders.views.cancel', side_effect=ship_then_cancel):
			res = self.client.put(f'/api/orders/{order.order_id}/cancel/', data={'reason': 'Changed my mind'}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'invalid_transition')
		order.refresh_from_db()
		self.assertEqual(order.order_status, OrderStatus.SHIPPED)
		self.assertFalse(order.stock_restored)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 97)

	def test_admin_can_cancel_shipped_order(self):
		order = self.place()
		transition(order, OrderStatus.SHIPPED)
		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		res = admin.put(f'/api/orders/{order.order_id}/cancel/', data={'reason': 'Lost in transit'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['order_status'], 'Cancelled')

	def test_status_update_is_admin_only(self):
		order = self.place()
		res = self.client.put(f'/api/orders/{order.order_id}/status/', data={'status': 'Shipped'}, format='json')
		self.assertEqual(res.status_code, 403)

		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		res = admin.put(f'/api/orders/{order.order_id}/status/', data={'status': 'Shipped', 'note': 'AWB 123'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['order_status'], 'Shipped')
		shipped = [s for s in res.data['tracking_steps'] if s['status'] == 'Shipped'][0]
		self.assertEqual(shipped['note'], 'AWB 123')
		self.assertEqual(shipped['updated_by'], 'test_admin')

	def test_backward_status_update_is_rejected(self):
		order = self.place()
		transition(order, OrderStatus.OUT_FOR_DELIVERY)
		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		res = admin.put(f'/api/orders/{order.order_id}/status/', data={'status': 'Processing'}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'invalid_transition')

	def test_admin_confirms_order(self):
		order = self.place()
		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		res = admin.put(f'/api/orders/{order.order_id}/confirm/', data={}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['order_status'], 'Processing')

	def test_statuses_lists_every_status(self):
		res = self.client.get('/api/orders/statuses/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual([s['value'] for s in res.data], list(OrderStatus.values))

	def test_admin_delete_restores_stock(self):
		order = self.place(quantity=4)
		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		res = admin.delete(f'/api/orders/{order.order_id}/')
		self.assertEqual(res.status_code, 204)
		self.assertFalse(Order.objects.filter(pk=order.pk).exists())
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 100)

	def test_delete_after_cancel_does_not_restock_twice(self):
		order = self.place(quantity=4)
		self.client.put(f'/api/orders/{order.order_id}/cancel/', data={}, format='json')
		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		admin.delete(f'/api/orders/{order.order_id}/')
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 100)

	def test_customer_cannot_delete(self):
		order = self.place()
		res = self.client.delete(f'/api/orders/{order.order_id}/')
		self.assertEqual(res.status_code, 403)

	def test_order_placed_notification_is_queued_after_commit(self):
		with mock.patch('notifications.tasks.send_order_placed_email.delay') as delay:
			with self.captureOnCommitCallbacks(execute=True):
				order = self.place()
		delay.assert_called_once_with(order.pk)
