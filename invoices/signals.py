"""Signals for invoice generation."""

import logging

from django.dispatch import receiver

from orders.models import OrderStatus
from orders.signals import order_status_changed
from .models import Invoice

logger = logging.getLogger(__name__)


@receiver(order_status_changed)
def create_invoice_on_delivery(sender, order, new_status, **kwargs):
    """Issue the order's invoice once it has been delivered."""
    if new_status != OrderStatus.DELIVERED:
        return

    invoice, created = Invoice.objects.get_or_create(
        order=order,
        defaults={'invoice_number': Invoice.number_for(order)},
    )
    if created:
        logger.info("Invoice %s issued for order %s", invoice.invoice_number, order.order_id)
