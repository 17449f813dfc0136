"""Receivers that turn order events into queued notification tasks."""

import logging

from django.dispatch import receiver

from orders.models import OrderStatus
from orders.signals import delivery_failed, order_placed, order_status_changed
from . import tasks

logger = logging.getLogger(__name__)


def _enqueue(task, *args):
    try:
        task.delay(*args)
    except Exception:
        logger.exception("Could not enqueue %s%s", task.name, args)


@receiver(order_placed)
def notify_order_placed(sender, order, **kwargs):
    _enqueue(tasks.send_order_placed_email, order.pk)


@receiver(order_status_changed)
def notify_status_changed(sender, order, new_status, **kwargs):
    _enqueue(tasks.send_order_status_email, order.pk, str(new_status))
    if new_status == OrderStatus.DELIVERED:
        _enqueue(tasks.send_review_request_email, order.pk)


@receiver(delivery_failed)
def notify_delivery_failed(sender, order, reason, attempt=None, **kwargs):
    _enqueue(tasks.send_ndr_alert_email, order.pk, reason, attempt)
