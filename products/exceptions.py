"""Catalog errors surfaced to API callers."""

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound


class CatalogItemNotFound(NotFound):
    default_detail = 'Product not found.'
    default_code = 'not_found'


class InsufficientStock(APIException):
    """Requested quantity exceeds the available stock of one line."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Insufficient stock.'
    default_code = 'insufficient_stock'

    def __init__(self, item_name, available=None):
        self.item_name = item_name
        self.available = available
        message = f'Insufficient stock for {item_name}.'
        if available is not None:
            message = f'{message} Available: {available}.'
        super().__init__(message)
