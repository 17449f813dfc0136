"""Catalog app tests."""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from products.exceptions import CatalogItemNotFound, InsufficientStock
from products.models import ProductCategory, Product, ProductVariant, Combo
from products.stock import SimpleStock, VariantStock, decrement_stock, get_catalog_item, increment_stock


class StockCounterTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		cls.category = ProductCategory.objects.create(category_name='Rice')
		cls.product = Product.objects.create(
			category=cls.category, name='Black Rice', slug='black-rice', price='200.00', stock=10,
		)
		cls.small = ProductVariant.objects.create(product=cls.product, weight='500g', price='120.00', stock=4, position=0)
		cls.large = ProductVariant.objects.create(product=cls.product, weight='1kg', price='200.00', offer_price='180.00', stock=6, position=1)
		cls.plain = Product.objects.create(
			category=cls.category, name='Urad Dal', slug='urad-dal', price='90.00', stock=3,
		)

	def test_stock_layout_is_tagged_by_variants(self):
		self.assertEqual(self.plain.stock_layout(), SimpleStock(stock=3))
		layout = self.product.stock_layout()
		self.assertIsInstance(layout, VariantStock)
		self.assertEqual(layout.aggregate_stock, 10)
		self.assertEqual([v.weight for v in layout.variants], ['500g', '1kg'])

	def test_variant_matches_list_or_offer_price(self):
		layout = self.product.stock_layout()
		self.assertEqual([s.variant_id for s in layout.slots_priced_at(Decimal('180.00'))], [self.large.id])
		self.assertEqual([s.variant_id for s in layout.slots_priced_at(Decimal('200.00'))], [self.large.id])
		self.assertEqual(layout.slots_priced_at(Decimal('150.00')), [])

	def test_offer_price_only_applies_when_lower(self):
		self.assertEqual(self.large.unit_price, Decimal('180.00'))
		self.plain.offer_price = Decimal('95.00')
		self.assertEqual(self.plain.unit_price, Decimal('90.00'))

	def test_decrement_moves_variant_and_aggregate_together(self):
		decrement_stock(self.product, 3, variant=self.small)
		self.product.refresh_from_db()
		self.small.refresh_from_db()
		self.assertEqual(self.product.stock, 7)
		self.assertEqual(self.small.stock, 1)

	def test_decrement_refuses_to_oversell(self):
		with self.assertRaises(InsufficientStock) as ctx:
			decrement_stock(self.plain, 4)
		self.assertEqual(ctx.exception.available, 3)
		self.plain.refresh_from_db()
		self.assertEqual(self.plain.stock, 3)

	def test_stale_instance_cannot_oversell(self):
		stale = Product.objects.get(pk=self.plain.pk)
		decrement_stock(self.plain, 2)
		# The stale copy still believes 3 units exist; the guarded update does not.
		with self.assertRaises(InsufficientStock):
			decrement_stock(stale, 2)
		self.plain.refresh_from_db()
		self.assertEqual(self.plain.stock, 1)

	def test_failed_aggregate_guard_rolls_back_variant(self):
		Product.objects.filter(pk=self.product.pk).update(stock=2)
		with self.assertRaises(InsufficientStock):
			decrement_stock(self.product, 3, variant=self.large)
		self.large.refresh_from_db()
		self.assertEqual(self.large.stock, 6)

	def test_increment_restores_both_counters(self):
		increment_stock(self.product, 2, variant=self.large)
		self.product.refresh_from_db()
		self.large.refresh_from_db()
		self.assertEqual(self.product.stock, 12)
		self.assertEqual(self.large.stock, 8)
		self.assertIsNotNone(self.product.last_restocked)

	def test_inactive_items_are_not_found(self):
		self.plain.is_active = False
		self.plain.save(update_fields=['is_active'])
		with self.assertRaises(CatalogItemNotFound):
			get_catalog_item('product', self.plain.pk)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class CatalogApiTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.admin = User.objects.create_user(username='shop_admin', password='12345678', user_type='admin')
		cls.customer = User.objects.create_user(username='shopper', password='12345678')
		cls.category = ProductCategory.objects.create(category_name='Snacks')
		cls.product = Product.objects.create(category=cls.category, name='Podi', slug='podi', price='80.00', stock=5)
		cls.hidden = Product.objects.create(category=cls.category, name='Old Podi', slug='old-podi', price='80.00', is_active=False)
		cls.combo = Combo.objects.create(name='Breakfast Box', slug='breakfast-box', price='250.00', stock=2)

	def test_public_list_hides_inactive_products(self):
		res = APIClient().get('/api/products/')
		self.assertEqual(res.status_code, 200)
		names = [p['name'] for p in res.data['results']]
		self.assertIn('Podi', names)
		self.assertNotIn('Old Podi', names)

	def test_admin_restocks_combo(self):
		client = APIClient()
		client.force_authenticate(user=self.admin)
		res = client.patch(f'/api/combos/{self.combo.id}/stock/', data={'quantity': 3}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['stock'], 5)

	def test_customer_cannot_restock(self):
		client = APIClient()
		client.force_authenticate(user=self.customer)
		res = client.patch(f'/api/products/{self.product.id}/stock/', data={'quantity': 3}, format='json')
		self.assertEqual(res.status_code, 403)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 5)
