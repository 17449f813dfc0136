"""Order workflow errors surfaced to API callers."""

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound

from products.exceptions import CatalogItemNotFound, InsufficientStock  # noqa: F401
from payments.exceptions import PaymentProofMissing, PaymentVerificationFailed  # noqa: F401


class OrderNotFound(NotFound):
    default_detail = 'Order not found.'
    default_code = 'not_found'


class InvalidTransition(APIException):
    """Requested status change is not allowed from the order's current status."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid status transition.'
    default_code = 'invalid_transition'

    def __init__(self, current, target, detail=None):
        self.current = current
        self.target = target
        super().__init__(detail or f'Cannot change order status from {current} to {target}.')


class PriceMismatch(APIException):
    """A variant line's unit price matches none of the product's variants."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Price does not match any variant of this product.'
    default_code = 'price_mismatch'
