"""Database models for invoices."""

from django.db import models


class Invoice(models.Model):
    """Invoice issued for a delivered order."""

    order = models.OneToOneField('orders.Order', on_delete=models.CASCADE, related_name='invoice')
    invoice_number = models.CharField(max_length=100, unique=True)
    issued_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        ordering = ['-issued_at']

    def __str__(self):
        return f"Invoice {self.invoice_number} for Order {self.order.order_id}"

    @staticmethod
    def number_for(order) -> str:
        return f"INV-{order.created_at:%Y%m}-{order.order_id}"
