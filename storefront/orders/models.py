from django.db import models
from decimal import Decimal
from storefront.catalog.models import Product
from .status import STATUS_CHOICES, STATUS_LABELS, STATUS_VARIANTS, PENDING


class Order(models.Model):
    """Customer order. ``total`` is frozen when the order is created."""
    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField(max_length=255)
    customer_phone = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING, db_index=True)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Order {self.pk} - {self.customer_name}"

    @property
    def status_label(self):
        return STATUS_LABELS.get(self.status, self.status)

    @property
    def status_variant(self):
        return STATUS_VARIANTS.get(self.status, 'default')

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at', '-id']


class OrderItem(models.Model):
    """Order line. ``unit_price`` is captured at creation and never recomputed."""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    # Soft reference: deleting a product keeps the historical line
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='order_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)

    def get_line_total(self):
        return self.unit_price * self.quantity

    class Meta:
        db_table = 'order_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['order', 'product'], name='idx_orderitem_order_product'),
        ]
