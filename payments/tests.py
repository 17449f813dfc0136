"""Payment verification tests."""

import hashlib
import hmac

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from payments.exceptions import PaymentProofMissing, PaymentVerificationFailed
from payments.verification import verify, verify_payment_proof

SECRET = 's3cr3t'
EXPECTED = hmac.new(SECRET.encode(), b'order_1|pay_1', hashlib.sha256).hexdigest()


class VerifyTests(SimpleTestCase):
	def test_exact_signature_is_valid(self):
		self.assertTrue(verify('order_1', 'pay_1', EXPECTED, SECRET).valid)

	def test_any_single_character_mutation_is_invalid(self):
		for i, ch in enumerate(EXPECTED):
			replacement = '0' if ch != '0' else '1'
			mutated = EXPECTED[:i] + replacement + EXPECTED[i + 1:]
			with self.subTest(position=i):
				self.assertFalse(verify('order_1', 'pay_1', mutated, SECRET).valid)

	def test_ids_are_bound_together(self):
		self.assertFalse(verify('order_2', 'pay_1', EXPECTED, SECRET).valid)
		self.assertFalse(verify('order_1', 'pay_2', EXPECTED, SECRET).valid)

	def test_missing_secret_never_validates(self):
		self.assertFalse(verify('order_1', 'pay_1', EXPECTED, '').valid)


@override_settings(RAZORPAY_KEY_SECRET=SECRET)
class PaymentProofTests(SimpleTestCase):
	def test_cash_on_delivery_is_pending_without_proof(self):
		self.assertEqual(verify_payment_proof('Cash on Delivery', None), 'Pending')

	def test_online_payment_needs_all_three_fields(self):
		with self.assertRaises(PaymentProofMissing):
			verify_payment_proof('UPI', {'provider_order_id': 'order_1', 'payment_id': 'pay_1'})
		with self.assertRaises(PaymentProofMissing):
			verify_payment_proof('Card', None)

	def test_mismatch_fails(self):
		with self.assertRaises(PaymentVerificationFailed):
			verify_payment_proof('UPI', {'provider_order_id': 'order_1', 'payment_id': 'pay_1', 'signature': 'nope'})

	def test_match_is_paid(self):
		proof = {'provider_order_id': 'order_1', 'payment_id': 'pay_1', 'signature': EXPECTED}
		self.assertEqual(verify_payment_proof('Net Banking', proof), 'Paid')


@override_settings(ALLOWED_HOSTS=['testserver'], RAZORPAY_KEY_SECRET=SECRET)
class VerifyEndpointTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		cls.user = get_user_model().objects.create_user(username='payer', password='12345678')

	def test_verify_endpoint(self):
		client = APIClient()
		client.force_authenticate(user=self.user)
		data = {'provider_order_id': 'order_1', 'payment_id': 'pay_1', 'signature': EXPECTED}
		self.assertEqual(client.post('/api/payments/verify/', data, format='json').data, {'valid': True})
		data['signature'] = EXPECTED[:-1] + ('0' if EXPECTED[-1] != '0' else '1')
		self.assertEqual(client.post('/api/payments/verify/', data, format='json').data, {'valid': False})

	def test_requires_authentication(self):
		res = APIClient().post('/api/payments/verify/', {}, format='json')
		self.assertEqual(res.status_code, 401)
