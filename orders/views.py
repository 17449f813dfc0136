"""Orders API views.

Customers place, list and cancel their own orders; shop admins see every
order and drive it through fulfilment.
"""

import logging

import django_filters
from django.db import transaction
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import IsShopAdmin, is_shop_admin
from products.views import StandardResultsSetPagination
from .exceptions import OrderNotFound
from .models import Order, OrderStatus, PaymentStatus
from .pricing import place_order, restore_stock
from .serializers import (
    CancelOrderSerializer,
    ConfirmOrderSerializer,
    OrderSerializer,
    PlaceOrderSerializer,
    StatusUpdateSerializer,
)
from .state import cancel, confirm, transition

logger = logging.getLogger(__name__)


class OrderFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(field_name='order_status', choices=OrderStatus.choices)
    payment_status = django_filters.ChoiceFilter(choices=PaymentStatus.choices)
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Order
        fields = ['status', 'payment_status', 'payment_method']


class OrderViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   mixins.DestroyModelMixin,
                   viewsets.GenericViewSet):
    """Order API endpoints.

    Detail routes accept either the numeric id or the display id
    (``ORD...``).
    """

    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated]
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = OrderFilter
    search_fields = ['order_id', 'delivery_address__first_name', 'delivery_address__phone']
    ordering_fields = ['created_at', 'total']
    ordering = ['-created_at']
    lookup_url_kwarg = 'ref'

    def get_permissions(self):
        if self.action in ('update_status', 'confirm_order', 'destroy'):
            return [IsShopAdmin()]
        return super().get_permissions()

    def get_queryset(self):
        qs = (
            Order.objects.select_related('user', 'delivery_address', 'cancelled_by')
            .prefetch_related('items', 'tracking_steps__updated_by')
        )
        if is_shop_admin(self.request.user):
            return qs
        return qs.filter(user=self.request.user)

    def get_object(self):
        try:
            order = self.get_queryset().get_by_reference(self.kwargs[self.lookup_url_kwarg])
        except Order.DoesNotExist:
            raise OrderNotFound()
        self.check_object_permissions(self.request, order)
        return order

    def _respond(self, order, status_code=status.HTTP_200_OK):
        order = self.get_queryset().get(pk=order.pk)
        return Response(self.get_serializer(order).data, status=status_code)

    def create(self, request, *args, **kwargs):
        """Place an order from the submitted cart lines."""
        payload = PlaceOrderSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data

        order = place_order(
            user=request.user,
            items=data['items'],
            delivery_address=data['delivery_address'],
            payment_method=data['payment_method'],
            payment=data.get('payment'),
            claimed_total=data.get('total'),
        )
        return self._respond(order, status.HTTP_201_CREATED)

    @action(detail=True, methods=['put'], url_path='status')
    def update_status(self, request, ref=None):
        """Admin: move the order to another status."""
        order = self.get_object()
        payload = StatusUpdateSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        order = transition(order, payload.validated_data['status'], payload.validated_data['note'], actor=request.user)
        return self._respond(order)

    @action(detail=True, methods=['put'], url_path='cancel')
    def cancel_order(self, request, ref=None):
        """Cancel the order. Customers may only cancel before it ships."""
        order = self.get_object()
        payload = CancelOrderSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        order = cancel(
            order,
            reason=payload.validated_data['reason'],
            actor=request.user,
            by_customer=not is_shop_admin(request.user),
        )
        return self._respond(order)

    @action(detail=True, methods=['put'], url_path='confirm')
    def confirm_order(self, request, ref=None):
        """Admin: accept the order and set the delivery estimate."""
        order = self.get_object()
        payload = ConfirmOrderSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        order = confirm(order, payload.validated_data.get('estimated_delivery_date'), actor=request.user)
        return self._respond(order)

    @action(detail=False, methods=['get'], url_path='statuses')
    def statuses(self, request):
        """List order status values for dropdowns."""
        return Response([{'value': value, 'label': label} for value, label in OrderStatus.choices])

    def destroy(self, request, *args, **kwargs):
        """Admin: put the order's stock back, then delete it."""
        order = self.get_object()
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            failed = restore_stock(order)
            order_id = order.order_id
            order.delete()
        logger.info("Order %s deleted by %s (%s item(s) not restocked)", order_id, request.user.pk, len(failed))
        return Response(status=status.HTTP_204_NO_CONTENT)
