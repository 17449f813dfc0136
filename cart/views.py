"""Cart APIs.

The cart only records what the customer intends to buy; stock is reserved
when the order is placed.
"""

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.db import transaction
from .models import ShoppingCart, ShoppingCartItem
from .serializers import ShoppingCartSerializer, ShoppingCartItemSerializer


def get_user_cart(user):
    cart, _ = ShoppingCart.objects.get_or_create(user=user)
    return cart


class CartViewSet(viewsets.GenericViewSet):
    """Cart API for the authenticated user."""

    serializer_class = ShoppingCartSerializer
    permission_classes = [IsAuthenticated]

    def list(self, request, *args, **kwargs):
        """Return a single cart representation (create if missing)."""
        cart = get_user_cart(request.user)
        serializer = self.get_serializer(cart)
        return Response(serializer.data)

    @action(detail=False, methods=['delete'], url_path='clear')
    def clear(self, request):
        """Remove every item from the cart."""
        get_user_cart(request.user).items.all().delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartItemViewSet(viewsets.ModelViewSet):
    """Cart item API for adding/updating/removing items from the cart."""

    serializer_class = ShoppingCartItemSerializer
    permission_classes = [IsAuthenticated]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        """Return cart items scoped to the current user."""
        return (
            ShoppingCartItem.objects.filter(cart__user=self.request.user)
            .select_related('product', 'variant', 'combo')
        )

    def create(self, request, *args, **kwargs):
        """Add an item to the cart, merging quantity if it already exists."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = get_user_cart(request.user)
        data = serializer.validated_data

        with transaction.atomic():
            cart_item = (
                ShoppingCartItem.objects.select_for_update()
                .filter(cart=cart, product=data['product'], variant=data['variant'], combo=data['combo'])
                .first()
            )
            if cart_item is None:
                cart_item = serializer.save(cart=cart)
            else:
                # Re-run stock validation against the merged quantity.
                merged = self.get_serializer(cart_item, data={'quantity': cart_item.qty + data['qty']}, partial=True)
                merged.is_valid(raise_exception=True)
                cart_item = merged.save()

        return Response(self.get_serializer(cart_item).data, status=status.HTTP_201_CREATED)
