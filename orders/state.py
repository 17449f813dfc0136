"""Order status transitions and the tracking-step audit trail.

Every change runs under a row lock on the order, and the
``order_status_changed`` event is sent only after the change commits.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from .exceptions import InvalidTransition
from .models import HAPPY_PATH, Order, OrderStatus, TrackingStep
from .pricing import restore_stock
from .signals import emit_status_changed

logger = logging.getLogger(__name__)


def _actor(user):
    return user if user is not None and user.is_authenticated else None


def _lock(order) -> Order:
    return Order.objects.select_for_update().get(pk=order.pk)


def transition(order, new_status, note='', actor=None) -> Order:
    """Move ``order`` to ``new_status``.

    Forward moves along the happy path mark every skipped step completed;
    only the target step gets ``note`` and ``actor``. Moving to the current
    status is a no-op.
    """
    if new_status not in OrderStatus.values:
        raise ValidationError({'status': f'"{new_status}" is not a valid order status.'})
    if new_status == OrderStatus.CANCELLED:
        return cancel(order, reason=note, actor=actor)

    actor = _actor(actor)
    with transaction.atomic():
        order = _lock(order)
        previous = order.order_status
        if previous == new_status:
            return order
        if previous == OrderStatus.CANCELLED:
            raise InvalidTransition(previous, new_status, 'Cancelled orders cannot be changed.')
        target = HAPPY_PATH.index(new_status)
        if target < HAPPY_PATH.index(previous):
            raise InvalidTransition(previous, new_status)

        now = timezone.now()
        steps = {step.status: step for step in order.tracking_steps.all()}
        for position, status in enumerate(HAPPY_PATH[:target + 1]):
            step = steps.get(status) or TrackingStep(order=order, status=status, position=position)
            if not step.completed:
                step.completed = True
                step.timestamp = now
            if status == new_status:
                step.note = note or ''
                step.updated_by = actor
            step.save()

        order.order_status = new_status
        update_fields = ['order_status', 'updated_at']
        if new_status == OrderStatus.DELIVERED:
            order.actual_delivery_date = now
            update_fields.append('actual_delivery_date')
        order.save(update_fields=update_fields)
        emit_status_changed(order, previous, new_status, actor)

    logger.info("Order %s: %s -> %s", order.order_id, previous, new_status)
    return order


def cancel(order, reason='', actor=None, by_customer=False) -> Order:
    """Cancel ``order`` and put its items back into stock.

    Allowed from any status except Delivered. With ``by_customer`` the order
    must not have shipped yet; that check runs on the locked row. Cancelling
    twice is a no-op.
    """
    actor = _actor(actor)
    with transaction.atomic():
        order = _lock(order)
        previous = order.order_status
        if previous == OrderStatus.CANCELLED:
            return order
        if previous == OrderStatus.DELIVERED:
            raise InvalidTransition(previous, OrderStatus.CANCELLED, 'Delivered orders cannot be cancelled.')
        if by_customer and not order.can_be_cancelled_by_customer:
            raise InvalidTransition(
                previous, OrderStatus.CANCELLED,
                f'Orders that are {previous} can no longer be cancelled.',
            )

        now = timezone.now()
        step = (
            order.tracking_steps.filter(status=OrderStatus.CANCELLED).first()
            or TrackingStep(order=order, status=OrderStatus.CANCELLED, position=len(HAPPY_PATH))
        )
        step.completed = True
        step.timestamp = now
        step.note = reason or ''
        step.updated_by = actor
        step.save()

        order.order_status = OrderStatus.CANCELLED
        order.cancellation_reason = reason or ''
        order.cancelled_by = actor
        order.cancelled_at = now
        order.save(update_fields=['order_status', 'cancellation_reason', 'cancelled_by', 'cancelled_at', 'updated_at'])

        failed = restore_stock(order)
        if failed:
            logger.warning("Order %s cancelled with %s item(s) not restocked", order.order_id, len(failed))
        emit_status_changed(order, previous, OrderStatus.CANCELLED, actor)

    logger.info("Order %s cancelled from %s", order.order_id, previous)
    return order


def confirm(order, estimated_delivery_date=None, actor=None) -> Order:
    """Accept a new order: Ordered -> Processing with a delivery estimate."""
    with transaction.atomic():
        order = _lock(order)
        if order.order_status != OrderStatus.ORDERED:
            raise InvalidTransition(
                order.order_status, OrderStatus.PROCESSING,
                'Only orders in Ordered status can be confirmed.',
            )
        order.estimated_delivery_date = (
            estimated_delivery_date
            or timezone.now() + timedelta(days=settings.CONFIRMATION_DELIVERY_DAYS)
        )
        order.save(update_fields=['estimated_delivery_date', 'updated_at'])
        return transition(order, OrderStatus.PROCESSING, note='Order confirmed', actor=actor)
