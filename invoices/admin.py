"""Django admin configuration for invoices."""

from django.contrib import admin
from django.utils.html import format_html, format_html_join

from .models import Invoice


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    """Admin configuration for invoices."""

    list_display = ('invoice_number', 'get_order_id', 'get_customer', 'get_total', 'issued_at')
    list_filter = ('issued_at',)
    search_fields = ('invoice_number', 'order__order_id', 'order__user__username')
    readonly_fields = ('invoice_number', 'order', 'issued_at', 'get_order_details')

    @admin.display(description='Order')
    def get_order_id(self, obj):
        return obj.order.order_id

    @admin.display(description='Customer')
    def get_customer(self, obj):
        return obj.order.user.username

    @admin.display(description='Total')
    def get_total(self, obj):
        return obj.order.total

    # Render order lines safely (escape all dynamic values).
    @admin.display(description='Invoice lines')
    def get_order_details(self, obj):
        rows = format_html_join(
            '',
            '<tr>'
            '<td style="padding: 8px; border: 1px solid #ddd;">{}</td>'
            '<td style="padding: 8px; border: 1px solid #ddd; text-align: center;">{}</td>'
            '<td style="padding: 8px; border: 1px solid #ddd; text-align: right;">{}</td>'
            '</tr>',
            ((item.name, item.quantity, item.line_total) for item in obj.order.items.all()),
        )
        return format_html(
            '<table style="width:100%; border-collapse: collapse; border:1px solid #ccc;">'
            '<thead style="background: #f4f4f4;">'
            '<tr>'
            '<th style="padding: 8px; border: 1px solid #ddd; text-align: left;">Item</th>'
            '<th style="padding: 8px; border: 1px solid #ddd; text-align: center;">Qty</th>'
            '<th style="padding: 8px; border: 1px solid #ddd; text-align: right;">Amount</th>'
            '</tr>'
            '</thead>'
            '<tbody>{}</tbody>'
            '<tfoot><tr><td colspan="2">Shipping</td><td style="text-align: right;">{}</td></tr>'
            '<tr><td colspan="2"><b>Total</b></td><td style="text-align: right;"><b>{}</b></td></tr></tfoot>'
            '</table>',
            rows,
            obj.order.shipping_charge,
            obj.order.total,
        )
