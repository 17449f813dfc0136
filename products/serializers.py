"""Serializers for the product catalog, variants and combos."""

from rest_framework import serializers

from .models import ProductCategory, Product, ProductVariant, Combo


def _image_value_to_url(value, *, request=None):
    """Return a usable URL for an ImageField value.

    Seeded rows may store absolute URLs (CDN links). Django's ImageField
    ``url`` property would prefix MEDIA_URL in that case, so absolute URLs
    are returned as-is and ``.url`` is used for real media files.
    """

    if not value:
        return None

    raw = str(value)
    if raw.startswith('http://') or raw.startswith('https://'):
        return raw

    try:
        url = value.url
    except ValueError:
        return raw

    if request is not None:
        return request.build_absolute_uri(url)
    return url


class ProductCategorySerializer(serializers.ModelSerializer):
    """Product category serializer."""

    class Meta:
        model = ProductCategory
        fields = '__all__'


class ProductVariantSerializer(serializers.ModelSerializer):
    """Variant (pack size) with its own price and stock."""

    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = ProductVariant
        fields = ['id', 'weight', 'price', 'offer_price', 'unit_price', 'stock', 'position']


class ProductSerializer(serializers.ModelSerializer):
    """Product serializer with nested variants."""

    category_name = serializers.ReadOnlyField(source='category.category_name')
    product_image = serializers.SerializerMethodField()
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    variants = ProductVariantSerializer(many=True, read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'slug', 'description', 'product_image',
            'category', 'category_name',
            'price', 'offer_price', 'unit_price', 'weight',
            'stock', 'is_active', 'last_restocked', 'variants',
        ]
        read_only_fields = ['stock', 'last_restocked']

    def get_product_image(self, obj):
        request = self.context.get('request')
        return _image_value_to_url(obj.product_image, request=request)


class ComboSerializer(serializers.ModelSerializer):
    """Combo serializer; ``products`` is written as a list of ids."""

    image = serializers.SerializerMethodField()
    product_names = serializers.SerializerMethodField()

    class Meta:
        model = Combo
        fields = [
            'id', 'name', 'slug', 'description', 'image',
            'products', 'product_names',
            'price', 'original_price', 'weight',
            'stock', 'is_active', 'last_restocked',
        ]
        read_only_fields = ['stock', 'last_restocked']

    def get_image(self, obj):
        request = self.context.get('request')
        return _image_value_to_url(obj.image, request=request)

    def get_product_names(self, obj):
        return [p.name for p in obj.products.all()]


class RestockSerializer(serializers.Serializer):
    """Payload of the admin restock action."""

    quantity = serializers.IntegerField(min_value=1)
    variant = serializers.IntegerField(required=False, allow_null=True)
