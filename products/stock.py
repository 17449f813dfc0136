"""Stock layout of catalog items and their atomic stock counters.

Counters are only ever moved with conditional ``UPDATE`` statements
(``stock = stock - n WHERE stock >= n``), so two checkouts racing for the
last units cannot both succeed.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from .exceptions import CatalogItemNotFound, InsufficientStock

logger = logging.getLogger(__name__)

PRODUCT = 'product'
COMBO = 'combo'
CATALOG_KINDS = (PRODUCT, COMBO)


@dataclass(frozen=True)
class VariantSlot:
    variant_id: int
    weight: str
    price: Decimal
    unit_price: Decimal
    stock: int


@dataclass(frozen=True)
class SimpleStock:
    """Item stocked as a single counter."""

    stock: int


@dataclass(frozen=True)
class VariantStock:
    """Item whose variants carry their own counters next to the aggregate."""

    aggregate_stock: int
    variants: tuple[VariantSlot, ...]

    def slot(self, variant_id) -> VariantSlot | None:
        return next((v for v in self.variants if v.variant_id == variant_id), None)

    def slots_priced_at(self, claimed: Decimal) -> list[VariantSlot]:
        return [v for v in self.variants if claimed in (v.price, v.unit_price)]


def catalog_model(kind: str):
    from .models import Combo, Product

    models_by_kind = {PRODUCT: Product, COMBO: Combo}
    if kind not in models_by_kind:
        raise ValidationError({'type': f'Unknown item type "{kind}". Expected one of: {", ".join(CATALOG_KINDS)}.'})
    return models_by_kind[kind]


def get_catalog_item(kind: str, pk):
    """Look up an active product or combo by id."""
    model = catalog_model(kind)
    item = model.objects.filter(pk=pk, is_active=True).first()
    if item is None:
        raise CatalogItemNotFound(f'{kind.capitalize()} {pk} not found.')
    return item


def _current_stock(obj) -> int | None:
    return type(obj).objects.filter(pk=obj.pk).values_list('stock', flat=True).first()


def decrement_stock(item, quantity: int, variant=None) -> None:
    """Take ``quantity`` units from ``item`` (and its ``variant``) or raise.

    Both counters move together inside one savepoint: if the aggregate guard
    fails after the variant was decremented, the variant change is undone.
    """
    if quantity < 1:
        raise ValueError('quantity must be positive')

    with transaction.atomic():
        if variant is not None:
            updated = (
                type(variant).objects
                .filter(pk=variant.pk, product_id=item.pk, stock__gte=quantity)
                .update(stock=F('stock') - quantity)
            )
            if not updated:
                raise InsufficientStock(f'{item.name} ({variant.weight})', _current_stock(variant))

        updated = (
            type(item).objects
            .filter(pk=item.pk, stock__gte=quantity)
            .update(stock=F('stock') - quantity)
        )
        if not updated:
            raise InsufficientStock(item.name, _current_stock(item))


def increment_stock(item, quantity: int, variant=None) -> None:
    """Put ``quantity`` units back on ``item`` (and its ``variant``)."""
    if quantity < 1:
        raise ValueError('quantity must be positive')

    with transaction.atomic():
        if variant is not None:
            type(variant).objects.filter(pk=variant.pk).update(stock=F('stock') + quantity)
        type(item).objects.filter(pk=item.pk).update(
            stock=F('stock') + quantity,
            last_restocked=timezone.now(),
        )
    logger.info("Restocked %s x%s%s", item, quantity, f" ({variant.weight})" if variant is not None else "")
