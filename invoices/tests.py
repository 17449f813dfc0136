"""Invoice generation tests."""

from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from invoices.models import Invoice
from orders.models import OrderStatus
from orders.pricing import place_order
from orders.state import transition
from products.models import ProductCategory, Product


class InvoiceOnDeliveryTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		cls.customer = get_user_model().objects.create_user(username='invoice_customer', password='12345678')
		category = ProductCategory.objects.create(category_name='Oils')
		cls.product = Product.objects.create(category=category, name='Sesame Oil', slug='sesame-oil', price='400.00', stock=5)

	def setUp(self):
		self.order = place_order(
			self.customer,
			[{'id': self.product.id, 'type': 'product', 'quantity': 1, 'price': Decimal('400.00')}],
			{'first_name': 'Anu', 'street': '1 Main Rd', 'city': 'Kochi', 'state': 'Kerala', 'zip': '682001', 'phone': '+918123456789'},
			'Cash on Delivery',
		)
		patcher = mock.patch('notifications.signals._enqueue')
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_invoice_issued_once_on_delivery(self):
		with self.captureOnCommitCallbacks(execute=True):
			transition(self.order, OrderStatus.SHIPPED)
		self.assertFalse(Invoice.objects.exists())

		with self.captureOnCommitCallbacks(execute=True):
			order = transition(self.order, OrderStatus.DELIVERED)
		invoice = Invoice.objects.get(order=order)
		self.assertEqual(invoice.invoice_number, f"INV-{order.created_at:%Y%m}-{order.order_id}")

		with self.captureOnCommitCallbacks(execute=True):
			transition(self.order, OrderStatus.DELIVERED)
		self.assertEqual(Invoice.objects.count(), 1)
