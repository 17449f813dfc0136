"""Cart app tests."""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from cart.models import ShoppingCartItem
from products.models import ProductCategory, Product, ProductVariant, Combo


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class CartStockValidationTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.customer = User.objects.create_user(
			username='cart_customer',
			email='cart_customer@example.com',
			password='12345678',
			user_type='customer',
		)

		cls.category = ProductCategory.objects.create(category_name='TestCat')
		cls.product = Product.objects.create(
			category=cls.category,
			name='CartProduct',
			slug='cart-product',
			price='10.00',
			stock=2,
		)
		cls.variant_product = Product.objects.create(
			category=cls.category,
			name='Millet Podi',
			slug='millet-podi',
			price='150.00',
			stock=5,
		)
		cls.variant = ProductVariant.objects.create(product=cls.variant_product, weight='250g', price='150.00', stock=5)
		cls.combo = Combo.objects.create(name='Combo', slug='combo', price='300.00', stock=4)

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.customer)

	def test_cannot_add_more_than_stock(self):
		res = self.client.post('/api/cart/cart-items/', data={'type': 'product', 'item': self.product.id, 'quantity': 3}, format='json')
		self.assertEqual(res.status_code, 400)

	def test_cannot_update_quantity_more_than_stock(self):
		# add 1
		res1 = self.client.post('/api/cart/cart-items/', data={'type': 'product', 'item': self.product.id, 'quantity': 1}, format='json')
		self.assertEqual(res1.status_code, 201)
		item_id = res1.data.get('id')
		self.assertIsNotNone(item_id)

		# update to 3 (exceeds stock=2)
		res2 = self.client.patch(f'/api/cart/cart-items/{item_id}/', data={'quantity': 3}, format='json')
		self.assertEqual(res2.status_code, 400)

	def test_adding_same_item_merges_quantity(self):
		self.client.post('/api/cart/cart-items/', data={'type': 'combo', 'item': self.combo.id, 'quantity': 1}, format='json')
		res = self.client.post('/api/cart/cart-items/', data={'type': 'combo', 'item': self.combo.id, 'quantity': 2}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertEqual(res.data['quantity'], 3)
		self.assertEqual(ShoppingCartItem.objects.filter(cart__user=self.customer).count(), 1)

	def test_merged_quantity_is_checked_against_stock(self):
		self.client.post('/api/cart/cart-items/', data={'type': 'combo', 'item': self.combo.id, 'quantity': 3}, format='json')
		res = self.client.post('/api/cart/cart-items/', data={'type': 'combo', 'item': self.combo.id, 'quantity': 2}, format='json')
		self.assertEqual(res.status_code, 400)

	def test_adding_to_cart_does_not_reserve_stock(self):
		self.client.post('/api/cart/cart-items/', data={'type': 'product', 'item': self.product.id, 'quantity': 2}, format='json')
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 2)

	def test_product_with_variants_requires_variant(self):
		res = self.client.post('/api/cart/cart-items/', data={'type': 'product', 'item': self.variant_product.id, 'quantity': 1}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertIn('variant_id', res.data)

	def test_cart_total_uses_variant_price(self):
		self.client.post(
			'/api/cart/cart-items/',
			data={'type': 'product', 'item': self.variant_product.id, 'variant_id': self.variant.id, 'quantity': 2},
			format='json',
		)
		res = self.client.get('/api/cart/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(Decimal(str(res.data['total_price'])), Decimal('300.00'))
		self.assertEqual(res.data['items'][0]['variant_weight'], '250g')

	def test_clear_empties_cart(self):
		self.client.post('/api/cart/cart-items/', data={'type': 'product', 'item': self.product.id, 'quantity': 1}, format='json')
		res = self.client.delete('/api/cart/clear/')
		self.assertEqual(res.status_code, 204)
		self.assertFalse(ShoppingCartItem.objects.filter(cart__user=self.customer).exists())

	def test_unknown_item_is_not_found(self):
		res = self.client.post('/api/cart/cart-items/', data={'type': 'product', 'item': 9999, 'quantity': 1}, format='json')
		self.assertEqual(res.status_code, 404)
		self.assertEqual(res.data['code'], 'not_found')
