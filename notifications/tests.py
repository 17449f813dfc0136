"""Notification task and receiver tests."""

from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase, override_settings

from notifications import tasks
from orders.models import OrderStatus
from orders.pricing import place_order
from orders.state import transition
from products.models import ProductCategory, Product


@override_settings(EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend', ADMIN_NOTIFICATION_EMAIL='ops@example.com')
class NotificationTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		cls.customer = get_user_model().objects.create_user(username='notify_me', email='notify@example.com', password='12345678')
		category = ProductCategory.objects.create(category_name='Flour')
		cls.product = Product.objects.create(category=category, name='Ragi Flour', slug='ragi-flour', price='120.00', stock=9)

	def setUp(self):
		self.order = place_order(
			self.customer,
			[{'id': self.product.id, 'type': 'product', 'quantity': 2, 'price': Decimal('120.00')}],
			{'first_name': 'Divya', 'last_name': 'N', 'street': '3 Hill Rd', 'city': 'Mysuru', 'state': 'Karnataka', 'zip': '570001', 'phone': '+918123456789'},
			'Cash on Delivery',
		)

	def test_order_placed_email(self):
		result = tasks.send_order_placed_email(self.order.pk)
		self.assertEqual(result['status'], 'success')
		self.assertEqual(len(mail.outbox), 1)
		self.assertEqual(mail.outbox[0].to, ['notify@example.com'])
		self.assertIn(self.order.order_id, mail.outbox[0].subject)
		self.assertIn('Ragi Flour x 2', mail.outbox[0].body)

	def test_status_email_mentions_tracking(self):
		self.order.tracking_number = 'AWB7'
		self.order.courier = 'iCarry'
		self.order.save()
		tasks.send_order_status_email(self.order.pk, 'Shipped')
		self.assertIn('AWB7', mail.outbox[0].body)

	def test_ndr_alert_goes_to_admin(self):
		tasks.send_ndr_alert_email(self.order.pk, 'Door locked', 2)
		self.assertEqual(mail.outbox[0].to, ['ops@example.com'])
		self.assertIn('Divya N (+918123456789)', mail.outbox[0].body)

	def test_missing_order_is_reported_not_raised(self):
		self.assertEqual(tasks.send_order_status_email(999999, 'Shipped')['status'], 'error')

	def test_mail_failure_is_logged_and_swallowed(self):
		with mock.patch('notifications.tasks.send_mail', side_effect=OSError('smtp down')):
			with self.assertLogs('notifications.tasks', level='ERROR'):
				result = tasks.send_order_placed_email(self.order.pk)
		self.assertEqual(result['status'], 'error')

	def test_delivery_queues_status_and_review_emails(self):
		with mock.patch.object(tasks.send_order_status_email, 'delay') as status_delay, \
				mock.patch.object(tasks.send_review_request_email, 'delay') as review_delay:
			with self.captureOnCommitCallbacks(execute=True):
				transition(self.order, OrderStatus.DELIVERED)
		status_delay.assert_called_once_with(self.order.pk, 'Delivered')
		review_delay.assert_called_once_with(self.order.pk)

	def test_broker_failure_does_not_break_transition(self):
		with mock.patch.object(tasks.send_order_status_email, 'delay', side_effect=ConnectionError('broker down')):
			with self.assertLogs('notifications.signals', level='ERROR'):
				with self.captureOnCommitCallbacks(execute=True):
					order = transition(self.order, OrderStatus.PROCESSING)
		self.assertEqual(order.order_status, OrderStatus.PROCESSING)
