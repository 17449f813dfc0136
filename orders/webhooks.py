"""Shipping-partner webhooks.

The courier posts free-text statuses; they are mapped onto order statuses
here and applied through the regular state machine. Every processed or
rejected update is acknowledged with 200 so the courier stops retrying.
"""

import hmac
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import InvalidTransition
from .models import Order, OrderStatus
from .signals import emit_delivery_failed
from .state import transition

logger = logging.getLogger(__name__)

DEFAULT_COURIER = 'iCarry'


def map_courier_status(text):
    """Map a courier status string onto an order status, or ``None``."""
    incoming = str(text or '').lower()
    if 'shipped' in incoming or 'dispatch' in incoming:
        return OrderStatus.SHIPPED
    if 'out for delivery' in incoming:
        return OrderStatus.OUT_FOR_DELIVERY
    if 'delivered' in incoming:
        return OrderStatus.DELIVERED
    if 'cancel' in incoming or 'returned' in incoming:
        return OrderStatus.CANCELLED
    return None


class ShippingWebhookPermission(permissions.BasePermission):
    """Shared-token check; open when no token is configured."""

    def has_permission(self, request, view):
        expected = settings.SHIPPING_WEBHOOK_TOKEN
        if not expected:
            return True
        supplied = request.headers.get('X-Webhook-Token', '')
        if not hmac.compare_digest(supplied.encode(), expected.encode()):
            raise AuthenticationFailed('Invalid webhook token.')
        return True


class ShippingWebhookView(APIView):
    authentication_classes = []
    permission_classes = [ShippingWebhookPermission]

    def _find_order(self, ref):
        try:
            return Order.objects.get_by_reference(ref)
        except Order.DoesNotExist:
            logger.error("Webhook order not found: %s", ref)
            return None

    def _append_note(self, order, text):
        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            locked.notes = f"{locked.notes}\n{text}" if locked.notes else text
            locked.save(update_fields=['notes', 'updated_at'])
        order.notes = locked.notes


class ShipmentUpdateWebhook(ShippingWebhookView):
    """``POST {order_id, status, awb?, courier?, remark?}``"""

    def post(self, request):
        data = request.data
        logger.info("Shipment update received: %s", dict(data))
        ref, courier_status = data.get('order_id'), data.get('status')
        if not ref or not courier_status:
            return Response({'detail': 'Missing order_id or status.'}, status=status.HTTP_400_BAD_REQUEST)

        order = self._find_order(ref)
        if order is None:
            return Response({'detail': 'Order not found.'}, status=status.HTTP_404_NOT_FOUND)

        tracking_number = data.get('awb') or data.get('tracking_number') or data.get('awb_number')
        if tracking_number and not order.tracking_number:
            Order.objects.filter(pk=order.pk, tracking_number='').update(
                tracking_number=tracking_number,
                courier=data.get('courier') or data.get('courier_name') or DEFAULT_COURIER,
                updated_at=timezone.now(),
            )

        remark = data.get('remark') or ''
        new_status = map_courier_status(courier_status)
        if new_status is None or new_status == order.order_status:
            logger.info("Order %s: courier status %r needs no transition", order.order_id, courier_status)
            if remark:
                self._append_note(order, f"[{timezone.now().isoformat()}] {courier_status}: {remark}")
            return Response({'success': True, 'message': 'Update processed'})

        try:
            transition(order, new_status, note=remark or f'Update via webhook: {courier_status}')
        except InvalidTransition as exc:
            logger.warning("Order %s: courier update %r rejected: %s", order.order_id, courier_status, exc.detail)
            return Response({'success': True, 'message': 'Update ignored'})

        logger.info("Order %s: courier moved order to %s", order.order_id, new_status)
        return Response({'success': True, 'message': 'Update processed'})


class NdrWebhook(ShippingWebhookView):
    """Non-delivery report: ``POST {order_id, reason?, attempt_count?, timestamp?}``"""

    def post(self, request):
        data = request.data
        logger.info("NDR received: %s", dict(data))
        ref = data.get('order_id')
        if not ref:
            return Response({'detail': 'Missing order_id.'}, status=status.HTTP_400_BAD_REQUEST)

        order = self._find_order(ref)
        if order is None:
            return Response({'detail': 'Order not found.'}, status=status.HTTP_404_NOT_FOUND)

        reason = data.get('reason') or 'Unknown'
        when = data.get('timestamp') or timezone.now().isoformat()
        with transaction.atomic():
            self._append_note(order, f"[NDR ALERT] Delivery attempt failed ({when}). Reason: {reason}")
            emit_delivery_failed(order, reason, data.get('attempt_count'))

        return Response({'success': True, 'message': 'NDR logged'})
