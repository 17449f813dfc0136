"""Checkout: authoritative pricing, stock reservation and order creation.

``place_order`` never charges what the client claims. Every line is priced
from the catalog, stock is taken with guarded decrements, and the whole
checkout runs in one transaction so a failing line leaves no stock moved
and no order behind.
"""

import logging
import random
import time
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from cart.models import ShoppingCartItem
from payments.verification import verify_payment_proof
from products.stock import PRODUCT, VariantStock, decrement_stock, get_catalog_item, increment_stock
from .exceptions import CatalogItemNotFound, InsufficientStock, PaymentVerificationFailed, PriceMismatch
from .models import HAPPY_PATH, DeliveryAddress, Order, OrderItem, TrackingStep
from .signals import emit_order_placed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricedLine:
    kind: str
    item: object
    variant: object
    name: str
    unit_price: Decimal
    claimed_price: Decimal
    quantity: int
    weight: str
    image: str

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def shipping_charge_for(subtotal: Decimal) -> Decimal:
    """Flat shipping fee for carts below the free-shipping threshold."""
    if subtotal < settings.FREE_SHIPPING_THRESHOLD:
        return settings.SHIPPING_CHARGE
    return Decimal('0')


def generate_order_id() -> str:
    return f"ORD{int(time.time() * 1000)}{random.randint(0, 999):03d}"


def _image_path(field) -> str:
    return field.name if field else ''


def _match_variant(product, layout: VariantStock, line):
    variant_id = line.get('variant')
    if variant_id is not None:
        slot = layout.slot(variant_id)
        if slot is None:
            raise CatalogItemNotFound(f'Variant {variant_id} of {product.name} not found.')
        if line['price'] not in (slot.price, slot.unit_price):
            raise PriceMismatch(f'Price {line["price"]} does not match variant {slot.weight} of {product.name}.')
        return slot

    # Products with variants are sold only at a variant's price.
    slots = layout.slots_priced_at(line['price'])
    if not slots:
        raise PriceMismatch(f'Price {line["price"]} does not match any variant of {product.name}.')
    return slots[0]


def price_line(line) -> PricedLine:
    """Resolve one cart line against the live catalog."""
    kind = line['type']
    item = get_catalog_item(kind, line['id'])
    quantity = line['quantity']
    variant = None

    layout = item.stock_layout()
    if isinstance(layout, VariantStock):
        slot = _match_variant(item, layout, line)
        variant = item.variants.get(pk=slot.variant_id)
        name = f'{item.name} ({slot.weight})'
        unit_price, weight, available = slot.unit_price, slot.weight, slot.stock
    else:
        if line.get('variant') is not None:
            raise CatalogItemNotFound(f'Variant {line["variant"]} of {item.name} not found.')
        name = item.name
        unit_price, weight, available = item.unit_price, item.weight, layout.stock

    if quantity > available:
        raise InsufficientStock(name, available)

    image = item.product_image if kind == PRODUCT else item.image
    return PricedLine(
        kind=kind,
        item=item,
        variant=variant,
        name=name,
        unit_price=unit_price,
        claimed_price=line['price'],
        quantity=quantity,
        weight=weight or '',
        image=_image_path(image),
    )


def _warn_on_price_mismatch(user, claimed_total, total):
    if claimed_total is None:
        return
    if abs(Decimal(claimed_total) - total) > settings.PRICE_MISMATCH_TOLERANCE:
        logger.warning(
            "Price mismatch for user %s: client claimed %s, server computed %s",
            user.pk, claimed_total, total,
        )


def _create_order_row(**fields) -> Order:
    """Insert the order, retrying the display id on a collision."""
    payment_id = fields.get('payment_id')
    for attempt in range(1, settings.ORDER_ID_MAX_ATTEMPTS + 1):
        order_id = generate_order_id()
        try:
            with transaction.atomic():
                return Order.objects.create(order_id=order_id, **fields)
        except IntegrityError:
            if payment_id and Order.objects.filter(payment_id=payment_id).exists():
                raise PaymentVerificationFailed('This payment has already been used for another order.')
            if not Order.objects.filter(order_id=order_id).exists():
                raise
            logger.warning("Order id %s already taken (attempt %s)", order_id, attempt)
    raise IntegrityError('Could not allocate a unique order id.')


def _seed_tracking_steps(order, now):
    TrackingStep.objects.bulk_create([
        TrackingStep(
            order=order,
            status=status,
            position=position,
            completed=position == 0,
            timestamp=now if position == 0 else None,
        )
        for position, status in enumerate(HAPPY_PATH)
    ])


def place_order(user, items, delivery_address, payment_method, payment=None, claimed_total=None) -> Order:
    """Create an order from cart lines.

    ``items`` are dicts with ``id``, ``type``, ``quantity``, ``price`` and an
    optional ``variant``. ``payment`` carries ``provider_order_id``,
    ``payment_id`` and ``signature`` for online methods.
    """
    if not items:
        raise ValidationError({'items': 'An order needs at least one item.'})

    payment_status = verify_payment_proof(payment_method, payment)
    payment = payment or {}
    payment_id = payment.get('payment_id') if payment_status == 'Paid' else None
    if payment_id and Order.objects.filter(payment_id=payment_id).exists():
        raise PaymentVerificationFailed('This payment has already been used for another order.')

    with transaction.atomic():
        lines = [price_line(line) for line in items]
        for line in lines:
            decrement_stock(line.item, line.quantity, variant=line.variant)

        subtotal = sum((line.line_total for line in lines), Decimal('0'))
        shipping_charge = shipping_charge_for(subtotal)
        total = subtotal + shipping_charge
        if claimed_total is None:
            claimed_total = sum((line.claimed_price * line.quantity for line in lines), Decimal('0')) + shipping_charge
        _warn_on_price_mismatch(user, claimed_total, total)

        now = timezone.now()
        order = _create_order_row(
            user=user,
            subtotal=subtotal,
            shipping_charge=shipping_charge,
            total=total,
            claimed_total=claimed_total,
            payment_method=payment_method,
            payment_status=payment_status,
            provider_order_id=payment.get('provider_order_id', '') if payment_id else '',
            payment_id=payment_id,
            payment_signature=payment.get('signature', '') if payment_id else '',
            estimated_delivery_date=now + timedelta(days=settings.DEFAULT_DELIVERY_DAYS),
        )

        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                kind=line.kind,
                product=line.item if line.kind == PRODUCT else None,
                combo=None if line.kind == PRODUCT else line.item,
                variant=line.variant,
                name=line.name,
                price=line.unit_price,
                quantity=line.quantity,
                weight=line.weight,
                image=line.image,
            )
            for line in lines
        ])
        DeliveryAddress.objects.create(order=order, **delivery_address)
        _seed_tracking_steps(order, now)

        ShoppingCartItem.objects.filter(cart__user=user).delete()
        emit_order_placed(order)

    logger.info(
        "Order %s placed by user %s: %s item(s), total %s (%s, %s)",
        order.order_id, user.pk, len(lines), total, payment_method, payment_status,
    )
    return order


def restore_stock(order) -> list:
    """Put every item of ``order`` back into stock.

    Best-effort: a line that cannot be restored is logged and skipped. Runs at
    most once per order. Returns the items that could not be restored.
    """
    if order.stock_restored:
        return []

    failed = []
    for item in order.items.select_related('product', 'variant', 'combo'):
        catalog_item = item.catalog_item
        if catalog_item is None:
            logger.warning("Cannot restore %s x%s for order %s: item no longer exists", item.name, item.quantity, order.order_id)
            failed.append(item)
            continue
        try:
            increment_stock(catalog_item, item.quantity, variant=item.variant)
        except DatabaseError:
            logger.exception("Failed to restore stock for %s on order %s", item.name, order.order_id)
            failed.append(item)

    Order.objects.filter(pk=order.pk).update(stock_restored=True)
    order.stock_restored = True
    return failed
