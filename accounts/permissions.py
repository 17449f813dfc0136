"""Role-based DRF permissions shared by the catalog and order APIs."""

from rest_framework import permissions


def is_shop_admin(user) -> bool:
    return bool(user and user.is_authenticated and getattr(user, 'is_shop_admin', False))


class IsShopAdmin(permissions.BasePermission):
    """Allow access only to shop administrators."""

    def has_permission(self, request, view):
        return is_shop_admin(request.user)


class IsShopAdminOrReadOnly(permissions.BasePermission):
    """Allow public reads; writes only for shop administrators."""

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return is_shop_admin(request.user)
