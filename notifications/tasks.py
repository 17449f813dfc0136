"""Celery tasks that deliver order emails.

Tasks receive primary keys, never model instances, and reload the order
from the database. A failed delivery is logged and reported in the task
result; it never reaches the request that triggered it.
"""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from orders.models import Order

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    'Processing': 'Your order has been confirmed and is being prepared.',
    'Shipped': 'Your order is on its way.',
    'Out for Delivery': 'Your order is out for delivery and will reach you today.',
    'Delivered': 'Your order has been delivered. Thank you for shopping with us!',
    'Cancelled': 'Your order has been cancelled.',
}


def _load_order(order_pk):
    return (
        Order.objects.select_related('user', 'delivery_address')
        .prefetch_related('items')
        .filter(pk=order_pk)
        .first()
    )


def _deliver(subject, body, recipients, order_id):
    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, recipients)
    except Exception as e:
        logger.error(f"[Notification Task] Email for order {order_id} failed: {e}", exc_info=True)
        return {'status': 'error', 'order_id': order_id, 'message': str(e)}
    logger.info(f"[Notification Task] Email '{subject}' sent for order {order_id}")
    return {'status': 'success', 'order_id': order_id}


def _item_lines(order):
    return '\n'.join(
        f"  {item.name} x {item.quantity} = {item.line_total}"
        for item in order.items.all()
    )


@shared_task
def send_order_placed_email(order_pk):
    """Order confirmation to the customer with the invoice summary."""
    order = _load_order(order_pk)
    if order is None:
        logger.error(f"[Notification Task] Order {order_pk} not found")
        return {'status': 'error', 'message': 'Order not found'}
    if not order.user.email:
        logger.info(f"[Notification Task] No email address for order {order.order_id}")
        return {'status': 'skipped', 'order_id': order.order_id}

    body = (
        f"Hi {order.delivery_address.first_name},\n\n"
        f"We received your order {order.order_id}. It is waiting for confirmation.\n\n"
        f"{_item_lines(order)}\n"
        f"  Shipping: {order.shipping_charge}\n"
        f"  Total: {order.total} ({order.payment_method}, {order.payment_status})\n\n"
    )
    if order.estimated_delivery_date:
        body += f"Estimated delivery: {order.estimated_delivery_date:%A, %d %B %Y}\n"
    return _deliver(f"Order placed: {order.order_id}", body, [order.user.email], order.order_id)


@shared_task
def send_order_status_email(order_pk, new_status):
    order = _load_order(order_pk)
    if order is None:
        logger.error(f"[Notification Task] Order {order_pk} not found")
        return {'status': 'error', 'message': 'Order not found'}
    if not order.user.email:
        return {'status': 'skipped', 'order_id': order.order_id}

    lines = [f"Hi {order.user.get_username()},", "", STATUS_MESSAGES.get(new_status, f"Your order is now {new_status}.")]
    if order.tracking_number:
        lines.append(f"Tracking number: {order.tracking_number} ({order.courier})")
    if new_status == 'Cancelled' and order.cancellation_reason:
        lines.append(f"Reason: {order.cancellation_reason}")
    return _deliver(f"Order {order.order_id}: {new_status}", '\n'.join(lines), [order.user.email], order.order_id)


@shared_task
def send_review_request_email(order_pk):
    order = _load_order(order_pk)
    if order is None or not order.user.email:
        return {'status': 'skipped', 'order_pk': order_pk}

    body = (
        f"Hi {order.user.get_username()},\n\n"
        "We hope you are enjoying your purchase. Tell us what you think:\n\n"
        f"{_item_lines(order)}\n"
    )
    return _deliver(f"How was your order {order.order_id}?", body, [order.user.email], order.order_id)


@shared_task
def send_ndr_alert_email(order_pk, reason, attempt=None):
    """Alert the shop admin that a delivery attempt failed."""
    admin_email = settings.ADMIN_NOTIFICATION_EMAIL
    if not admin_email:
        logger.warning(f"[Notification Task] No admin email configured, NDR for order {order_pk} not sent")
        return {'status': 'skipped', 'order_pk': order_pk}
    order = _load_order(order_pk)
    if order is None:
        logger.error(f"[Notification Task] Order {order_pk} not found")
        return {'status': 'error', 'message': 'Order not found'}

    address = order.delivery_address
    body = (
        "Non-delivery report received.\n\n"
        f"Order: {order.order_id}\n"
        f"Customer: {address.first_name} {address.last_name} ({address.phone})\n"
        f"Reason: {reason or 'Not provided'}\n"
        f"Attempt: {attempt or 'N/A'}\n\n"
        "Please contact the customer or the courier partner."
    )
    return _deliver(f"NDR Alert: Order {order.order_id}", body, [admin_email], order.order_id)
