"""Database models for server-side shopping carts."""

from django.db import models
from django.db.models import Q
from django.conf import settings
from products.models import Product, ProductVariant, Combo
from products.stock import COMBO, PRODUCT


class ShoppingCart(models.Model):
    """Shopping cart of an authenticated user."""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cart')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart of {self.user.username}"

    @property
    def total_price(self):
        return sum(item.subtotal for item in self.items.all())


class ShoppingCartItem(models.Model):
    """Line item inside a shopping cart: a product (optionally a variant) or a combo."""

    cart = models.ForeignKey(ShoppingCart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, null=True, blank=True)
    variant = models.ForeignKey(ProductVariant, on_delete=models.CASCADE, null=True, blank=True)
    combo = models.ForeignKey(Combo, on_delete=models.CASCADE, null=True, blank=True)
    qty = models.PositiveIntegerField(default=1)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(Q(product__isnull=False, combo__isnull=True) | Q(product__isnull=True, combo__isnull=False, variant__isnull=True)),
                name='cart_item_product_xor_combo',
            ),
        ]

    def __str__(self):
        return f"{self.qty} x {self.catalog_item.name}"

    @property
    def kind(self) -> str:
        return PRODUCT if self.product_id else COMBO

    @property
    def catalog_item(self):
        return self.product if self.product_id else self.combo

    @property
    def unit_price(self):
        if self.variant_id:
            return self.variant.unit_price
        return self.catalog_item.unit_price

    @property
    def available_stock(self) -> int:
        if self.variant_id:
            return self.variant.stock
        return self.catalog_item.stock

    @property
    def subtotal(self):
        return self.unit_price * self.qty
