"""DRF serializers for cart APIs."""

from rest_framework import serializers

from products.stock import CATALOG_KINDS, PRODUCT, get_catalog_item
from .models import ShoppingCart, ShoppingCartItem


class ShoppingCartItemSerializer(serializers.ModelSerializer):
    """Serializer for cart line items.

    Writes take ``type`` + ``item`` (+ optional ``variant``) and ``quantity``;
    reads expose the resolved name, unit price, stock and subtotal.
    """

    type = serializers.ChoiceField(choices=CATALOG_KINDS, write_only=True, required=False)
    item = serializers.IntegerField(write_only=True, required=False)
    variant_id = serializers.IntegerField(write_only=True, required=False, allow_null=True)

    kind = serializers.ReadOnlyField()
    product_name = serializers.SerializerMethodField()
    variant_weight = serializers.SerializerMethodField()
    price = serializers.DecimalField(source='unit_price', max_digits=10, decimal_places=2, read_only=True)
    stock = serializers.IntegerField(source='available_stock', read_only=True)
    quantity = serializers.IntegerField(source='qty', min_value=1)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = ShoppingCartItem
        fields = [
            'id',
            'type', 'item', 'variant_id',
            'kind', 'product', 'combo', 'variant',
            'product_name', 'variant_weight',
            'price', 'stock', 'quantity', 'subtotal',
        ]
        read_only_fields = ['product', 'combo', 'variant']

    def validate(self, attrs):
        """Resolve the catalog item and validate quantity against its stock."""
        if self.instance is None:
            if 'type' not in attrs or 'item' not in attrs:
                raise serializers.ValidationError({'item': 'Both type and item are required.'})
            kind = attrs.pop('type')
            catalog_item = get_catalog_item(kind, attrs.pop('item'))
            variant_id = attrs.pop('variant_id', None)
            variant = None
            if variant_id is not None:
                if kind != PRODUCT:
                    raise serializers.ValidationError({'variant_id': 'Combos have no variants.'})
                variant = catalog_item.variants.filter(pk=variant_id).first()
                if variant is None:
                    raise serializers.ValidationError({'variant_id': 'Variant does not belong to this product.'})
            elif kind == PRODUCT and catalog_item.variants.exists():
                raise serializers.ValidationError({'variant_id': 'Choose a variant for this product.'})

            attrs['product'] = catalog_item if kind == PRODUCT else None
            attrs['combo'] = None if kind == PRODUCT else catalog_item
            attrs['variant'] = variant
            stock = variant.stock if variant is not None else catalog_item.stock
        else:
            for key in ('type', 'item', 'variant_id'):
                if key in attrs:
                    raise serializers.ValidationError({key: 'Changing the cart item is not allowed.'})
            stock = self.instance.available_stock

        desired_qty = attrs.get('qty')
        if desired_qty is not None and desired_qty > stock:
            raise serializers.ValidationError({'quantity': f'Only {stock} item(s) available in stock.'})
        return attrs

    def get_product_name(self, obj):
        return obj.catalog_item.name

    def get_variant_weight(self, obj):
        return obj.variant.weight if obj.variant_id else None


class ShoppingCartSerializer(serializers.ModelSerializer):
    """Serializer for the shopping cart including nested items."""

    items = ShoppingCartItemSerializer(many=True, read_only=True)
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = ShoppingCart
        fields = ['id', 'user', 'items', 'total_price']
