"""Database models for the product catalog, variants and combos."""

from decimal import Decimal

from django.db import models
from django.db.models import Q

from .stock import SimpleStock, VariantStock, VariantSlot


def effective_price(price, offer_price) -> Decimal:
    """Selling price: the offer price when it undercuts the list price."""
    if offer_price is not None and offer_price < price:
        return offer_price
    return price


# 1. Categories
class ProductCategory(models.Model):
    """Product category with optional parent-child hierarchy."""

    parent_category = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='subcategories')
    category_name = models.CharField(max_length=255)

    def __str__(self):
        return self.category_name

    class Meta:
        verbose_name_plural = "Product Categories"


# 2. Products
class Product(models.Model):
    """Sellable catalog entry.

    A product is either stocked as a whole (``stock``) or split into priced
    :class:`ProductVariant` rows, in which case ``stock`` is the aggregate
    that moves together with the variant counters.
    """

    category = models.ForeignKey(ProductCategory, on_delete=models.PROTECT, related_name='products')
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    offer_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    weight = models.CharField(max_length=50, blank=True)
    product_image = models.ImageField(upload_to='products/', null=True, blank=True)
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    last_restocked = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']
        constraints = [
            models.CheckConstraint(condition=Q(stock__gte=0), name='product_stock_non_negative'),
        ]
        indexes = [
            models.Index(fields=['category', 'is_active'], name='products_pr_categor_9c2b1e_idx'),
            models.Index(fields=['is_active', 'stock'], name='products_pr_is_acti_4f0d7a_idx'),
        ]

    def __str__(self):
        return self.name

    @property
    def unit_price(self) -> Decimal:
        return effective_price(self.price, self.offer_price)

    def stock_layout(self):
        """Return how this product is stocked.

        ``SimpleStock`` when it has no variants, ``VariantStock`` otherwise.
        """
        variants = list(self.variants.all())
        if not variants:
            return SimpleStock(stock=self.stock)
        return VariantStock(
            aggregate_stock=self.stock,
            variants=tuple(
                VariantSlot(variant_id=v.id, weight=v.weight, price=v.price, unit_price=v.unit_price, stock=v.stock)
                for v in variants
            ),
        )


# 3. Variants (e.g. pack sizes)
class ProductVariant(models.Model):
    """Separately priced and stocked pack of a product."""

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    weight = models.CharField(max_length=50)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    offer_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    stock = models.IntegerField(default=0)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['position', 'id']
        constraints = [
            models.CheckConstraint(condition=Q(stock__gte=0), name='variant_stock_non_negative'),
        ]

    def __str__(self):
        return f"{self.product.name} - {self.weight}"

    @property
    def unit_price(self) -> Decimal:
        return effective_price(self.price, self.offer_price)


# 4. Combos (bundles of products, stocked as one unit)
class Combo(models.Model):
    """Bundle of products sold at a combo price."""

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    products = models.ManyToManyField(Product, related_name='combos', blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    original_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    weight = models.CharField(max_length=50, blank=True)
    image = models.ImageField(upload_to='combos/', null=True, blank=True)
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    last_restocked = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']
        constraints = [
            models.CheckConstraint(condition=Q(stock__gte=0), name='combo_stock_non_negative'),
        ]

    def __str__(self):
        return self.name

    @property
    def unit_price(self) -> Decimal:
        return self.price

    def stock_layout(self):
        return SimpleStock(stock=self.stock)
