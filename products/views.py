"""Catalog API views.

Public reads of active products and combos, admin-only writes and restock.
Filtering/search/ordering/pagination are provided for list endpoints.
"""

from rest_framework import viewsets, filters, status
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from accounts.permissions import IsShopAdmin, IsShopAdminOrReadOnly, is_shop_admin
from .models import Product, ProductCategory, Combo
from .serializers import (
    ProductSerializer,
    ProductCategorySerializer,
    ComboSerializer,
    RestockSerializer,
)
from .stock import increment_stock


class StandardResultsSetPagination(PageNumberPagination):
    """Default pagination used by most API endpoints."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class RestockMixin:
    """Admin-only ``PATCH {id}/stock/`` that adds units back to an item."""

    @action(detail=True, methods=['patch'], url_path='stock', permission_classes=[IsShopAdmin])
    def restock(self, request, pk=None):
        item = self.get_object()
        payload = RestockSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        variant = None
        variant_id = payload.validated_data.get('variant')
        if variant_id is not None:
            variants = getattr(item, 'variants', None)
            variant = variants.filter(pk=variant_id).first() if variants is not None else None
            if variant is None:
                raise NotFound('Variant not found.')

        increment_stock(item, payload.validated_data['quantity'], variant=variant)
        item.refresh_from_db()
        return Response(self.get_serializer(item).data, status=status.HTTP_200_OK)


class ProductViewSet(RestockMixin, viewsets.ModelViewSet):
    """Products CRUD.

    - Public users: can read active products only.
    - Shop admins: full CRUD, including inactive products.
    """

    serializer_class = ProductSerializer
    pagination_class = StandardResultsSetPagination
    permission_classes = [IsShopAdminOrReadOnly]

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['category', 'is_active']
    search_fields = ['name', 'description', 'slug']
    ordering_fields = ['name', 'price', 'stock', 'created_at']

    def get_queryset(self):
        qs = Product.objects.select_related('category').prefetch_related('variants')
        if is_shop_admin(self.request.user):
            return qs
        return qs.filter(is_active=True)


class ComboViewSet(RestockMixin, viewsets.ModelViewSet):
    """Combos CRUD with the same visibility rules as products."""

    serializer_class = ComboSerializer
    pagination_class = StandardResultsSetPagination
    permission_classes = [IsShopAdminOrReadOnly]

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active']
    search_fields = ['name', 'description', 'slug']
    ordering_fields = ['name', 'price', 'stock', 'created_at']

    def get_queryset(self):
        qs = Combo.objects.prefetch_related('products')
        if is_shop_admin(self.request.user):
            return qs
        return qs.filter(is_active=True)


class ProductCategoryViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only product categories."""
    queryset = ProductCategory.objects.order_by('category_name')
    serializer_class = ProductCategorySerializer
