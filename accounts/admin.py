"""Django admin configuration for users."""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User

# 1. Avoid double registration
if admin.site.is_registered(User):
    admin.site.unregister(User)


# 2. Custom user admin with role and contact fields
class CustomUserAdmin(UserAdmin):
    model = User
    list_display = ['username', 'email', 'user_type', 'is_staff', 'phone_number']
    list_filter = UserAdmin.list_filter + ('user_type',)

    fieldsets = UserAdmin.fieldsets + (
        ('Role & Contact', {'fields': ('user_type', 'phone_number', 'whatsapp_number')}),
    )


admin.site.register(User, CustomUserAdmin)
