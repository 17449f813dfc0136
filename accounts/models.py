"""Database models for users."""

from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Custom user model.

    Extends Django's :class:`~django.contrib.auth.models.AbstractUser` with:
    - ``user_type`` to separate customer vs shop-admin flows
    - optional ``phone_number`` / ``whatsapp_number`` used for order updates
    """

    USER_TYPE_CHOICES = (
        ('customer', 'Customer'),
        ('admin', 'Admin'),
    )
    phone_number = models.CharField(max_length=20, null=True, blank=True)
    whatsapp_number = models.CharField(max_length=20, null=True, blank=True)
    user_type = models.CharField(max_length=10, choices=USER_TYPE_CHOICES, default='customer')

    @property
    def is_shop_admin(self) -> bool:
        return self.user_type == 'admin' or self.is_staff or self.is_superuser

    def __str__(self):
        return self.username
