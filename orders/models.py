"""Database models for orders, their item snapshots and tracking history."""

from django.db import models
from django.db.models import Q
from django.conf import settings
from products.models import Product, ProductVariant, Combo
from products.stock import CATALOG_KINDS, PRODUCT


class OrderStatus(models.TextChoices):
    ORDERED = 'Ordered'
    PROCESSING = 'Processing'
    SHIPPED = 'Shipped'
    OUT_FOR_DELIVERY = 'Out for Delivery'
    DELIVERED = 'Delivered'
    CANCELLED = 'Cancelled'


# Linear fulfilment path; Cancelled sits outside it.
HAPPY_PATH = (
    OrderStatus.ORDERED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)
TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class PaymentStatus(models.TextChoices):
    PENDING = 'Pending'
    PAID = 'Paid'
    FAILED = 'Failed'


class PaymentMethod(models.TextChoices):
    CASH_ON_DELIVERY = 'Cash on Delivery'
    UPI = 'UPI'
    CARD = 'Card'
    NET_BANKING = 'Net Banking'
    ONLINE = 'Online'


class OrderQuerySet(models.QuerySet):

    def get_by_reference(self, ref):
        """Find an order by its display id (``ORD...``) or primary key."""
        ref = str(ref or '').strip()
        order = self.filter(order_id=ref).first()
        if order is None and ref.isdigit():
            order = self.filter(pk=int(ref)).first()
        if order is None:
            raise self.model.DoesNotExist(f'Order {ref} not found.')
        return order


class Order(models.Model):
    """A customer's order: authoritative totals, payment proof and fulfilment state."""

    order_id = models.CharField(max_length=32, unique=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    shipping_charge = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    claimed_total = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CASH_ON_DELIVERY)
    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    provider_order_id = models.CharField(max_length=100, blank=True)
    payment_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    payment_signature = models.CharField(max_length=128, blank=True)

    order_status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.ORDERED)
    estimated_delivery_date = models.DateTimeField(null=True, blank=True)
    actual_delivery_date = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True)
    cancelled_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    cancelled_at = models.DateTimeField(null=True, blank=True)
    stock_restored = models.BooleanField(default=False)

    tracking_number = models.CharField(max_length=120, blank=True)
    courier = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='orders_orde_user_id_5b7a21_idx'),
            models.Index(fields=['order_status', 'created_at'], name='orders_orde_order_s_1c9e43_idx'),
            models.Index(fields=['payment_status', 'order_status'], name='orders_orde_payment_8d2f10_idx'),
        ]

    def __str__(self):
        return f"Order {self.order_id} - {self.user.username}"

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items.all())

    @property
    def is_cancelled(self) -> bool:
        return self.order_status == OrderStatus.CANCELLED

    @property
    def is_delivered(self) -> bool:
        return self.order_status == OrderStatus.DELIVERED

    @property
    def can_be_cancelled_by_customer(self) -> bool:
        return self.order_status in (OrderStatus.ORDERED, OrderStatus.PROCESSING)


class OrderItem(models.Model):
    """Snapshot of one purchased line, decoupled from the live catalog."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    kind = models.CharField(max_length=10, choices=[(k, k.capitalize()) for k in CATALOG_KINDS], default=PRODUCT)
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    variant = models.ForeignKey(ProductVariant, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    combo = models.ForeignKey(Combo, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField()
    weight = models.CharField(max_length=50, blank=True)
    image = models.CharField(max_length=500, blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=1), name='order_item_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.name} ({self.order.order_id})"

    @property
    def line_total(self):
        return self.price * self.quantity

    @property
    def catalog_item(self):
        return self.product if self.kind == PRODUCT else self.combo


class DeliveryAddress(models.Model):
    """Shipping address captured with the order."""

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name='delivery_address')
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    street = models.CharField(max_length=255)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    zip = models.CharField(max_length=20)
    phone = models.CharField(max_length=20)
    whatsapp = models.CharField(max_length=20, blank=True)

    class Meta:
        verbose_name_plural = "Delivery Addresses"

    def __str__(self):
        return f"{self.first_name}, {self.street}, {self.city}"


class TrackingStep(models.Model):
    """One entry of an order's status audit trail."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='tracking_steps')
    status = models.CharField(max_length=20, choices=OrderStatus.choices)
    position = models.PositiveSmallIntegerField()
    timestamp = models.DateTimeField(null=True, blank=True)
    completed = models.BooleanField(default=False)
    note = models.TextField(blank=True)
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    class Meta:
        ordering = ['position']
        constraints = [
            models.UniqueConstraint(fields=['order', 'status'], name='tracking_step_unique_status'),
        ]

    def __str__(self):
        mark = 'x' if self.completed else ' '
        return f"[{mark}] {self.status}"
