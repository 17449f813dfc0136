"""Order status transition tests."""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from orders.exceptions import InvalidTransition
from orders.models import Order, OrderStatus
from orders.pricing import place_order
from orders.signals import order_status_changed
from orders.state import cancel, confirm, transition
from products.models import ProductCategory, Product

ADDRESS = {
	'first_name': 'Ravi',
	'street': '4 Anna Salai',
	'city': 'Chennai',
	'state': 'Tamil Nadu',
	'zip': '600002',
	'phone': '+918123456789',
}


class TransitionTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.customer = User.objects.create_user(username='ravi', password='12345678')
		cls.admin = User.objects.create_user(username='ops', password='12345678', user_type='admin')
		category = ProductCategory.objects.create(category_name='Spices')
		cls.product = Product.objects.create(category=category, name='Pepper', slug='pepper', price='250.00', stock=10)

	def setUp(self):
		self.order = place_order(
			self.customer,
			[{'id': self.product.id, 'type': 'product', 'quantity': 2, 'price': Decimal('250.00')}],
			ADDRESS,
			'Cash on Delivery',
		)

	def steps(self, order):
		return {step.status: step for step in order.tracking_steps.all()}

	def test_skipped_steps_are_caught_up_without_note(self):
		order = transition(self.order, OrderStatus.SHIPPED, note='Handed to courier', actor=self.admin)

		self.assertEqual(order.order_status, OrderStatus.SHIPPED)
		steps = self.steps(order)
		self.assertTrue(steps['Processing'].completed)
		self.assertIsNotNone(steps['Processing'].timestamp)
		self.assertEqual(steps['Processing'].note, '')
		self.assertIsNone(steps['Processing'].updated_by)
		self.assertEqual(steps['Shipped'].note, 'Handed to courier')
		self.assertEqual(steps['Shipped'].updated_by, self.admin)
		self.assertFalse(steps['Out for Delivery'].completed)

	def test_completed_steps_keep_their_timestamp(self):
		ordered_at = self.steps(self.order)['Ordered'].timestamp
		order = transition(self.order, OrderStatus.PROCESSING)
		self.assertEqual(self.steps(order)['Ordered'].timestamp, ordered_at)

	def test_backward_move_is_rejected(self):
		transition(self.order, OrderStatus.SHIPPED)
		with self.assertRaises(InvalidTransition):
			transition(self.order, OrderStatus.PROCESSING)
		self.order.refresh_from_db()
		self.assertEqual(self.order.order_status, OrderStatus.SHIPPED)

	def test_same_status_is_a_no_op(self):
		order = transition(self.order, OrderStatus.PROCESSING, note='first')
		with self.captureOnCommitCallbacks() as callbacks:
			again = transition(order, OrderStatus.PROCESSING, note='second')
		self.assertEqual(callbacks, [])
		self.assertEqual(self.steps(again)['Processing'].note, 'first')

	def test_delivered_stamps_actual_delivery_date(self):
		order = transition(self.order, OrderStatus.DELIVERED)
		self.assertIsNotNone(order.actual_delivery_date)
		self.assertTrue(all(s.completed for s in order.tracking_steps.all()))

	def test_delivered_is_terminal(self):
		transition(self.order, OrderStatus.DELIVERED)
		with self.assertRaises(InvalidTransition):
			cancel(self.order, reason='Too late')

	def test_cancelled_is_irreversible(self):
		cancel(self.order, reason='Changed my mind', actor=self.customer)
		with self.assertRaises(InvalidTransition):
			transition(self.order, OrderStatus.PROCESSING)

	def test_unknown_status_is_a_validation_error(self):
		with self.assertRaises(ValidationError):
			transition(self.order, 'Lost')

	def test_customer_cancel_checks_the_current_row(self):
		stale = Order.objects.get(pk=self.order.pk)
		transition(self.order, OrderStatus.SHIPPED, actor=self.admin)
		with self.assertRaises(InvalidTransition):
			cancel(stale, reason='Changed my mind', actor=self.customer, by_customer=True)
		self.order.refresh_from_db()
		self.assertEqual(self.order.order_status, OrderStatus.SHIPPED)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 8)

	def test_customer_cancel_before_shipping(self):
		order = cancel(self.order, reason='Changed my mind', actor=self.customer, by_customer=True)
		self.assertEqual(order.order_status, OrderStatus.CANCELLED)

	def test_cancel_stamps_order_and_appends_step(self):
		order = cancel(self.order, reason='Changed my mind', actor=self.customer)

		self.assertEqual(order.order_status, OrderStatus.CANCELLED)
		self.assertEqual(order.cancellation_reason, 'Changed my mind')
		self.assertEqual(order.cancelled_by, self.customer)
		self.assertIsNotNone(order.cancelled_at)
		step = self.steps(order)['Cancelled']
		self.assertTrue(step.completed)
		self.assertEqual(step.note, 'Changed my mind')
		# Other steps are untouched.
		self.assertFalse(self.steps(order)['Processing'].completed)

	def test_cancel_via_transition_restores_stock_once(self):
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 8)

		transition(self.order, OrderStatus.CANCELLED, note='Out of area')
		cancel(self.order, reason='again')

		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 10)

	def test_confirm_sets_estimate_and_processing(self):
		before = timezone.now()
		order = confirm(self.order, actor=self.admin)
		self.assertEqual(order.order_status, OrderStatus.PROCESSING)
		self.assertGreaterEqual(order.estimated_delivery_date, before + timedelta(days=4))
		self.assertLess(order.estimated_delivery_date, before + timedelta(days=5))
		self.assertEqual(self.steps(order)['Processing'].note, 'Order confirmed')

	def test_confirm_uses_given_estimate(self):
		when = timezone.now() + timedelta(days=10)
		order = confirm(self.order, estimated_delivery_date=when)
		self.assertEqual(order.estimated_delivery_date, when)

	def test_confirm_requires_ordered_status(self):
		transition(self.order, OrderStatus.SHIPPED)
		with self.assertRaises(InvalidTransition):
			confirm(self.order)

	def test_event_is_sent_after_commit(self):
		calls = []

		def listener(**kwargs):
			calls.append(kwargs)

		order_status_changed.connect(listener, weak=False, dispatch_uid='test-listener')
		self.addCleanup(order_status_changed.disconnect, dispatch_uid='test-listener')

		with mock.patch('notifications.tasks.send_order_status_email.delay'), \
				mock.patch('notifications.tasks.send_review_request_email.delay'):
			with self.captureOnCommitCallbacks() as callbacks:
				transition(self.order, OrderStatus.SHIPPED, actor=self.admin)
				self.assertEqual(calls, [])
			for callback in callbacks:
				callback()

		self.assertEqual(len(calls), 1)
		kwargs = calls[0]
		self.assertEqual(kwargs['previous_status'], OrderStatus.ORDERED)
		self.assertEqual(kwargs['new_status'], OrderStatus.SHIPPED)
		self.assertEqual(kwargs['actor'], self.admin)

	def test_failing_receiver_does_not_fail_transition(self):
		def broken(**kwargs):
			raise RuntimeError('smtp down')

		order_status_changed.connect(broken, weak=False, dispatch_uid='broken-listener')
		self.addCleanup(order_status_changed.disconnect, dispatch_uid='broken-listener')

		with mock.patch('notifications.tasks.send_order_status_email.delay'):
			with self.assertLogs('orders.signals', level='ERROR'):
				with self.captureOnCommitCallbacks(execute=True):
					order = transition(self.order, OrderStatus.PROCESSING)
		self.assertEqual(order.order_status, OrderStatus.PROCESSING)
