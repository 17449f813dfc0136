"""Order domain events.

All signals are sent from ``transaction.on_commit`` callbacks, so receivers
only ever observe state that is already durable.
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# sender=Order, order=<Order>
order_placed = Signal()

# sender=Order, order=<Order>, previous_status=str, new_status=str, actor=<User|None>
order_status_changed = Signal()

# sender=Order, order=<Order>, reason=str, attempt=str|None
delivery_failed = Signal()


def _send_robust(signal, **kwargs):
    for receiver, response in signal.send_robust(**kwargs):
        if isinstance(response, Exception):
            logger.error("Receiver %r failed for %s: %s", receiver, signal, response, exc_info=response)


def emit_order_placed(order):
    transaction.on_commit(lambda: _send_robust(order_placed, sender=type(order), order=order))


def emit_status_changed(order, previous_status, new_status, actor=None):
    transaction.on_commit(lambda: _send_robust(
        order_status_changed,
        sender=type(order),
        order=order,
        previous_status=previous_status,
        new_status=new_status,
        actor=actor,
    ))


def emit_delivery_failed(order, reason, attempt=None):
    transaction.on_commit(lambda: _send_robust(
        delivery_failed, sender=type(order), order=order, reason=reason, attempt=attempt,
    ))
