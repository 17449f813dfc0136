"""DRF serializers for orders APIs."""

import re

import phonenumbers
from django.conf import settings
from rest_framework import serializers

from products.stock import CATALOG_KINDS, COMBO, PRODUCT
from .models import DeliveryAddress, Order, OrderItem, OrderStatus, PaymentMethod, TrackingStep


def normalize_phone(value, field_name='phone'):
    """Validate a phone number and return it in E.164 form.

    Numbers without a country code are read in ``PHONE_DEFAULT_REGION``.
    """
    phone_input = str(value).strip()
    clean_phone = re.sub(r'(?<!^)\+|[^\d+]', '', phone_input)
    if clean_phone.startswith('00'):
        clean_phone = '+' + clean_phone[2:]

    try:
        parsed_phone = phonenumbers.parse(clean_phone, settings.PHONE_DEFAULT_REGION)
        if not phonenumbers.is_valid_number(parsed_phone):
            raise ValueError
    except (phonenumbers.NumberParseException, ValueError):
        raise serializers.ValidationError(f'Phone number {phone_input} is not valid.')
    return phonenumbers.format_number(parsed_phone, phonenumbers.PhoneNumberFormat.E164)


class DeliveryAddressSerializer(serializers.ModelSerializer):

    class Meta:
        model = DeliveryAddress
        fields = ['first_name', 'last_name', 'street', 'city', 'state', 'zip', 'phone', 'whatsapp']
        extra_kwargs = {
            'last_name': {'required': False},
            'whatsapp': {'required': False},
        }

    def validate_phone(self, value):
        return normalize_phone(value)

    def validate_whatsapp(self, value):
        return normalize_phone(value) if value else ''


class OrderLineInputSerializer(serializers.Serializer):
    """One cart line as submitted by the client. ``price`` is only a claim."""

    id = serializers.IntegerField(min_value=1)
    type = serializers.ChoiceField(choices=CATALOG_KINDS, default=PRODUCT)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    variant = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs['type'] == COMBO and attrs.get('variant') is not None:
            raise serializers.ValidationError({'variant': 'Combos have no variants.'})
        return attrs


class PaymentProofInputSerializer(serializers.Serializer):
    # Completeness is checked by the payment verifier, not here.
    provider_order_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    payment_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    signature = serializers.CharField(max_length=128, required=False, allow_blank=True)


class PlaceOrderSerializer(serializers.Serializer):
    items = OrderLineInputSerializer(many=True, allow_empty=False)
    delivery_address = DeliveryAddressSerializer()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH_ON_DELIVERY)
    total = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    payment = PaymentProofInputSerializer(required=False, allow_null=True)


class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'kind', 'product', 'combo', 'variant', 'name', 'price', 'quantity', 'weight', 'image', 'line_total']


class TrackingStepSerializer(serializers.ModelSerializer):
    updated_by = serializers.ReadOnlyField(source='updated_by.username', default=None)

    class Meta:
        model = TrackingStep
        fields = ['status', 'timestamp', 'completed', 'note', 'updated_by']


class OrderSerializer(serializers.ModelSerializer):
    """Read representation of an order with its items, address and tracking."""

    items = OrderItemSerializer(many=True, read_only=True)
    delivery_address = DeliveryAddressSerializer(read_only=True)
    tracking_steps = TrackingStepSerializer(many=True, read_only=True)
    customer_username = serializers.ReadOnlyField(source='user.username')
    cancelled_by = serializers.ReadOnlyField(source='cancelled_by.username', default=None)
    item_count = serializers.IntegerField(read_only=True)
    can_cancel = serializers.BooleanField(source='can_be_cancelled_by_customer', read_only=True)
    invoice_number = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_id', 'customer_username',
            'items', 'item_count', 'delivery_address',
            'subtotal', 'shipping_charge', 'total',
            'payment_method', 'payment_status', 'payment_id',
            'order_status', 'tracking_steps',
            'estimated_delivery_date', 'actual_delivery_date',
            'tracking_number', 'courier', 'notes',
            'cancellation_reason', 'cancelled_by', 'cancelled_at', 'can_cancel',
            'invoice_number',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_invoice_number(self, obj):
        invoice = getattr(obj, 'invoice', None)
        return invoice.invoice_number if invoice else None


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ConfirmOrderSerializer(serializers.Serializer):
    estimated_delivery_date = serializers.DateTimeField(required=False, allow_null=True)
