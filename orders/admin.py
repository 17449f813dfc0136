"""Django admin configuration for orders and related models."""

from django.contrib import admin
from .models import Order, OrderItem, DeliveryAddress, TrackingStep


# 1. Purchased lines are snapshots, never edited
class OrderItemInline(admin.TabularInline):
    """Inline display of order line items."""

    model = OrderItem
    extra = 0
    readonly_fields = ('kind', 'product', 'combo', 'variant', 'name', 'price', 'quantity', 'weight')
    exclude = ('image',)
    can_delete = False


class DeliveryAddressInline(admin.StackedInline):
    model = DeliveryAddress
    extra = 0
    can_delete = False


# 2. Tracking history is written by status changes only
class TrackingStepInline(admin.TabularInline):
    """Read-only view of the order's tracking steps."""

    model = TrackingStep
    extra = 0
    max_num = 0
    can_delete = False

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin configuration for customer orders."""

    list_display = ('order_id', 'user', 'total', 'payment_method', 'payment_status', 'order_status', 'created_at')
    list_filter = ('order_status', 'payment_status', 'payment_method', 'created_at')
    search_fields = ('order_id', 'user__username', 'payment_id', 'tracking_number')
    readonly_fields = (
        'order_id', 'subtotal', 'shipping_charge', 'total', 'claimed_total',
        'payment_status', 'provider_order_id', 'payment_id', 'payment_signature',
        'order_status', 'actual_delivery_date', 'cancelled_by', 'cancelled_at', 'stock_restored',
    )
    inlines = [OrderItemInline, DeliveryAddressInline, TrackingStepInline]
