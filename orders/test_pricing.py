"""Checkout pricing and stock reservation tests."""

import hashlib
import hmac
import re
import threading
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from rest_framework.exceptions import ValidationError

from cart.models import ShoppingCart, ShoppingCartItem
from orders.exceptions import (
	CatalogItemNotFound,
	InsufficientStock,
	PaymentProofMissing,
	PaymentVerificationFailed,
	PriceMismatch,
)
from orders.models import Order, OrderStatus
from orders.pricing import place_order, restore_stock, shipping_charge_for
from products.models import ProductCategory, Product, ProductVariant, Combo

ADDRESS = {
	'first_name': 'Asha',
	'last_name': 'Rao',
	'street': '12 MG Road',
	'city': 'Bengaluru',
	'state': 'Karnataka',
	'zip': '560001',
	'phone': '+918123456789',
}


def line(item, quantity, price, kind='product', variant=None):
	data = {'id': item.id, 'type': kind, 'quantity': quantity, 'price': Decimal(str(price))}
	if variant is not None:
		data['variant'] = variant.id
	return data


def sign(provider_order_id, payment_id, secret):
	message = f'{provider_order_id}|{payment_id}'.encode()
	return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


@override_settings(FREE_SHIPPING_THRESHOLD=Decimal('500'), SHIPPING_CHARGE=Decimal('50'), RAZORPAY_KEY_SECRET='s3cr3t')
class PlaceOrderTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.customer = User.objects.create_user(username='buyer', email='buyer@example.com', password='12345678')
		cls.category = ProductCategory.objects.create(category_name='Pantry')
		cls.product = Product.objects.create(category=cls.category, name='Product A', slug='product-a', price='500.00', stock=5)
		cls.cheap = Product.objects.create(category=cls.category, name='Salt', slug='salt', price='100.00', stock=10)
		cls.rice = Product.objects.create(category=cls.category, name='Black Rice', slug='black-rice', price='120.00', stock=8)
		cls.small = ProductVariant.objects.create(product=cls.rice, weight='500g', price='120.00', stock=3, position=0)
		cls.large = ProductVariant.objects.create(product=cls.rice, weight='1kg', price='220.00', offer_price='200.00', stock=5, position=1)
		cls.combo = Combo.objects.create(name='Starter Pack', slug='starter-pack', price='650.00', stock=2)

	def assertStock(self, obj, expected):
		obj.refresh_from_db()
		self.assertEqual(obj.stock, expected)

	def test_example_checkout_and_cancel_restore(self):
		order = place_order(self.customer, [line(self.product, 2, 500)], ADDRESS, 'Cash on Delivery')

		self.assertEqual(order.total, Decimal('1000.00'))
		self.assertEqual(order.shipping_charge, Decimal('0'))
		self.assertEqual(order.order_status, OrderStatus.ORDERED)
		self.assertEqual(order.payment_status, 'Pending')
		self.assertStock(self.product, 3)

		restore_stock(order)
		self.assertStock(self.product, 5)

	def test_total_ignores_claimed_prices(self):
		with self.assertLogs('orders.pricing', level='WARNING') as logs:
			order = place_order(self.customer, [line(self.product, 2, 1)], ADDRESS, 'Cash on Delivery')
		self.assertEqual(order.total, Decimal('1000.00'))
		self.assertEqual(order.items.get().price, Decimal('500.00'))
		self.assertTrue(any('Price mismatch' in message for message in logs.output))

	def test_small_rounding_difference_is_not_logged(self):
		with mock.patch('orders.pricing.logger') as logger:
			place_order(self.customer, [line(self.product, 1, 500)], ADDRESS, 'Cash on Delivery', claimed_total=Decimal('500.50'))
		logger.warning.assert_not_called()

	def test_shipping_added_below_threshold(self):
		order = place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
		self.assertEqual(order.subtotal, Decimal('100.00'))
		self.assertEqual(order.shipping_charge, Decimal('50'))
		self.assertEqual(order.total, Decimal('150.00'))
		self.assertEqual(shipping_charge_for(Decimal('500')), Decimal('0'))

	def test_variant_matched_by_offer_price(self):
		order = place_order(self.customer, [line(self.rice, 2, 200)], ADDRESS, 'Cash on Delivery')
		item = order.items.get()
		self.assertEqual(item.variant_id, self.large.id)
		self.assertEqual(item.price, Decimal('200.00'))
		self.assertEqual(item.weight, '1kg')
		self.assertStock(self.large, 3)
		self.assertStock(self.rice, 6)
		self.assertStock(self.small, 3)

	def test_explicit_variant_is_honoured(self):
		order = place_order(self.customer, [line(self.rice, 1, 220, variant=self.large)], ADDRESS, 'Cash on Delivery')
		self.assertEqual(order.items.get().variant_id, self.large.id)
		self.assertEqual(order.subtotal, Decimal('200.00'))
		self.assertStock(self.large, 4)

	def test_explicit_variant_with_wrong_price_is_rejected(self):
		for price in (0, 1, 200):
			with self.subTest(price=price):
				with self.assertRaises(PriceMismatch):
					place_order(self.customer, [line(self.rice, 1, price, variant=self.small)], ADDRESS, 'Cash on Delivery')
		self.assertStock(self.small, 3)
		self.assertStock(self.rice, 8)
		self.assertFalse(Order.objects.exists())

	def test_empty_items_is_a_validation_error(self):
		with self.assertRaises(ValidationError) as ctx:
			place_order(self.customer, [], ADDRESS, 'Cash on Delivery')
		self.assertIn('items', ctx.exception.detail)

	def test_variant_line_with_unknown_price_is_rejected(self):
		with self.assertRaises(PriceMismatch):
			place_order(self.customer, [line(self.rice, 1, 99)], ADDRESS, 'Cash on Delivery')
		self.assertStock(self.rice, 8)
		self.assertFalse(Order.objects.exists())

	def test_variant_of_another_product_is_not_found(self):
		with self.assertRaises(CatalogItemNotFound):
			place_order(self.customer, [line(self.product, 1, 500, variant=self.small)], ADDRESS, 'Cash on Delivery')

	def test_missing_product_is_not_found(self):
		with self.assertRaises(CatalogItemNotFound):
			place_order(self.customer, [{'id': 9999, 'type': 'product', 'quantity': 1, 'price': Decimal('1')}], ADDRESS, 'Cash on Delivery')

	def test_insufficient_variant_stock_names_variant(self):
		with self.assertRaises(InsufficientStock) as ctx:
			place_order(self.customer, [line(self.rice, 4, 120)], ADDRESS, 'Cash on Delivery')
		self.assertIn('500g', str(ctx.exception.detail))
		self.assertEqual(ctx.exception.available, 3)

	def test_failure_on_later_line_leaves_no_partial_deduction(self):
		ShoppingCartItem.objects.create(cart=ShoppingCart.objects.create(user=self.customer), product=self.cheap, qty=1)
		original = Combo.stock_layout

		def stale_layout(combo):
			layout = original(combo)
			# The combo sells out after pricing, while earlier lines are already taken.
			Combo.objects.filter(pk=combo.pk).update(stock=1)
			return layout

		with mock.patch.object(Combo, 'stock_layout', stale_layout):
			with self.assertRaises(InsufficientStock):
				place_order(
					self.customer,
					[line(self.product, 2, 500), line(self.cheap, 3, 100), line(self.combo, 2, 650, kind='combo')],
					ADDRESS,
					'Cash on Delivery',
				)
		self.assertStock(self.product, 5)
		self.assertStock(self.cheap, 10)
		# The simulated sale ran inside the failed checkout and was rolled back with it.
		self.assertStock(self.combo, 2)
		self.assertFalse(Order.objects.exists())
		self.assertEqual(ShoppingCartItem.objects.filter(cart__user=self.customer).count(), 1)

	def test_guarded_decrement_catches_stock_taken_after_pricing(self):
		original = Product.stock_layout

		def stale_layout(product):
			layout = original(product)
			# Another checkout takes the last units after this one read the catalog.
			Product.objects.filter(pk=product.pk).update(stock=0)
			return layout

		with mock.patch.object(Product, 'stock_layout', stale_layout):
			with self.assertRaises(InsufficientStock):
				place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
		self.assertStock(self.cheap, 10)
		self.assertFalse(Order.objects.exists())

	def test_sequential_checkouts_never_oversell(self):
		Product.objects.filter(pk=self.cheap.pk).update(stock=2)
		successes, failures = 0, 0
		for _ in range(3):
			try:
				place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
				successes += 1
			except InsufficientStock:
				failures += 1
		self.assertEqual((successes, failures), (2, 1))
		self.assertStock(self.cheap, 0)

	def test_success_clears_server_cart(self):
		cart = ShoppingCart.objects.create(user=self.customer)
		ShoppingCartItem.objects.create(cart=cart, product=self.cheap, qty=1)
		place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
		self.assertFalse(cart.items.exists())

	def test_order_is_seeded_with_tracking_steps(self):
		order = place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
		steps = list(order.tracking_steps.all())
		self.assertEqual([s.status for s in steps], ['Ordered', 'Processing', 'Shipped', 'Out for Delivery', 'Delivered'])
		self.assertEqual([s.completed for s in steps], [True, False, False, False, False])
		self.assertIsNotNone(steps[0].timestamp)
		self.assertIsNotNone(order.estimated_delivery_date)
		self.assertEqual(order.delivery_address.city, 'Bengaluru')

	def test_order_id_format(self):
		order = place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
		self.assertRegex(order.order_id, re.compile(r'^ORD\d{13}\d{3}$'))

	def test_order_id_collision_is_retried(self):
		first = place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
		with mock.patch('orders.pricing.generate_order_id', side_effect=[first.order_id, 'ORD1700000000000123']):
			second = place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Cash on Delivery')
		self.assertEqual(second.order_id, 'ORD1700000000000123')
		self.assertStock(self.cheap, 8)

	def test_online_payment_requires_proof(self):
		with self.assertRaises(PaymentProofMissing):
			place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'UPI', payment={'provider_order_id': 'order_1'})
		self.assertStock(self.cheap, 10)

	def test_bad_signature_creates_nothing(self):
		proof = {'provider_order_id': 'order_1', 'payment_id': 'pay_1', 'signature': sign('order_1', 'pay_1', 'wrong')}
		with self.assertRaises(PaymentVerificationFailed):
			place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'UPI', payment=proof)
		self.assertStock(self.cheap, 10)
		self.assertFalse(Order.objects.exists())

	def test_valid_signature_marks_order_paid(self):
		proof = {'provider_order_id': 'order_1', 'payment_id': 'pay_1', 'signature': sign('order_1', 'pay_1', 's3cr3t')}
		order = place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'UPI', payment=proof)
		self.assertEqual(order.payment_status, 'Paid')
		self.assertEqual(order.payment_id, 'pay_1')

	def test_payment_cannot_be_reused(self):
		proof = {'provider_order_id': 'order_1', 'payment_id': 'pay_1', 'signature': sign('order_1', 'pay_1', 's3cr3t')}
		place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Card', payment=proof)
		with self.assertRaises(PaymentVerificationFailed):
			place_order(self.customer, [line(self.cheap, 1, 100)], ADDRESS, 'Card', payment=proof)
		self.assertStock(self.cheap, 9)

	def test_restore_stock_is_best_effort_and_runs_once(self):
		order = place_order(
			self.customer,
			[line(self.product, 1, 500), line(self.rice, 2, 120)],
			ADDRESS,
			'Cash on Delivery',
		)
		self.product.delete()

		with self.assertLogs('orders.pricing', level='WARNING'):
			failed = restore_stock(order)
		self.assertEqual([item.name for item in failed], ['Product A'])
		self.assertStock(self.rice, 8)
		self.assertStock(self.small, 3)

		self.assertEqual(restore_stock(order), [])
		self.assertStock(self.rice, 8)
		order.refresh_from_db()
		self.assertTrue(order.stock_restored)


@skipUnlessDBFeature('has_select_for_update')
class ConcurrentCheckoutTests(TransactionTestCase):
	"""Parallel checkouts on a database with row-level locking."""

	def setUp(self):
		self.customer = get_user_model().objects.create_user(username='rush', password='12345678')
		category = ProductCategory.objects.create(category_name='Limited')
		self.product = Product.objects.create(category=category, name='Mango Pickle', slug='mango-pickle', price='100.00', stock=3)
		patcher = mock.patch('notifications.signals._enqueue')
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_parallel_checkouts_never_oversell(self):
		buyers = 8
		barrier = threading.Barrier(buyers)
		outcomes = []

		def buy():
			try:
				barrier.wait()
				place_order(self.customer, [line(self.product, 1, 100)], ADDRESS, 'Cash on Delivery')
				outcomes.append('ok')
			except InsufficientStock:
				outcomes.append('sold out')
			finally:
				connection.close()

		threads = [threading.Thread(target=buy) for _ in range(buyers)]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(outcomes.count('ok'), 3)
		self.assertEqual(outcomes.count('sold out'), buyers - 3)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 0)
		self.assertEqual(Order.objects.count(), 3)
