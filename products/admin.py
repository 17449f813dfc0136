"""Django admin configuration for catalog models."""

import csv
from django.contrib import admin
from django.utils.html import format_html
from django.http import HttpResponse
from .models import ProductCategory, Product, ProductVariant, Combo


def _stock_badge(stock):
    if stock <= 3:
        color = 'red'
    elif stock <= 10:
        color = 'orange'
    else:
        color = 'green'
    return format_html('<b style="color: {};">{}</b>', color, stock)


# 1. Variants edited inline on the product page
class ProductVariantInline(admin.TabularInline):
    """Inline editor for a product's variants."""

    model = ProductVariant
    extra = 1


@admin.register(ProductCategory)
class ProductCategoryAdmin(admin.ModelAdmin):
    """Admin configuration for product categories."""

    list_display = ('category_name', 'parent_category')


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin configuration for products and inventory."""

    list_display = ('name', 'slug', 'category', 'price', 'offer_price', 'colored_stock', 'is_active')
    list_filter = ('category', 'is_active')
    search_fields = ('name', 'slug')
    prepopulated_fields = {'slug': ('name',)}
    inlines = [ProductVariantInline]
    actions = ['export_to_csv']

    def export_to_csv(self, request, queryset):
        """Export selected products as a CSV inventory report."""
        response = HttpResponse(content_type='text/csv; charset=utf-8-sig')
        response['Content-Disposition'] = 'attachment; filename="inventory_report.csv"'

        writer = csv.writer(response)
        writer.writerow(['Slug', 'Product', 'Variant', 'Price', 'Stock'])

        for product in queryset.prefetch_related('variants'):
            writer.writerow([product.slug, product.name, '', product.unit_price, product.stock])
            for variant in product.variants.all():
                writer.writerow([product.slug, product.name, variant.weight, variant.unit_price, variant.stock])

        return response
    export_to_csv.short_description = "Export selected products to CSV"

    def colored_stock(self, obj):
        """Render stock in color to highlight low inventory."""
        return _stock_badge(obj.stock)
    colored_stock.short_description = 'Stock'
    colored_stock.admin_order_field = 'stock'


@admin.register(Combo)
class ComboAdmin(admin.ModelAdmin):
    """Admin configuration for combos."""

    list_display = ('name', 'slug', 'price', 'colored_stock', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('name', 'slug')
    prepopulated_fields = {'slug': ('name',)}
    filter_horizontal = ('products',)

    def colored_stock(self, obj):
        return _stock_badge(obj.stock)
    colored_stock.short_description = 'Stock'
    colored_stock.admin_order_field = 'stock'
