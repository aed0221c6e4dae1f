"""
Purchase Models - Supplier purchases and their line items.

Stock for every line item is added to its product when the purchase is
written and taken back when the line or the purchase is removed.
"""
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from inventory.models import Product, Supplier


class Purchase(models.Model):
    """
    Purchase entity representing a supplier document (invoice, receipt...).

    ``total`` is the sum of the line subtotals at the time of the last write.
    """
    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.PROTECT,
        related_name='purchases',
        help_text="Supplier the goods were bought from"
    )
    date = models.DateField(db_index=True, help_text="Document date")
    document_type = models.CharField(max_length=50, null=True, blank=True)
    series = models.CharField(max_length=20, null=True, blank=True)
    number = models.CharField(max_length=30, null=True, blank=True, db_index=True)
    currency = models.CharField(max_length=10, null=True, blank=True)
    payment_method = models.CharField(max_length=50, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    total = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sum of line subtotals"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Purchase'
        verbose_name_plural = 'Purchases'
        ordering = ['-date', '-id']
        indexes = [
            models.Index(fields=['supplier', 'date'], name='purchase_supplier_date_idx'),
        ]

    def __str__(self):
        document = '-'.join(part for part in (self.series, self.number) if part)
        return f"Purchase #{self.id} - {self.supplier.name} {document}".rstrip()


class PurchaseItem(models.Model):
    """
    PurchaseItem entity: one product line of a purchase.
    """
    purchase = models.ForeignKey(
        Purchase,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Parent purchase"
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='purchase_items',
        help_text="Purchased product"
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Units received"
    )
    unit_cost = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Cost per unit paid to the supplier"
    )
    subtotal = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        verbose_name = 'Purchase Item'
        verbose_name_plural = 'Purchase Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity}x {self.product.name} @ {self.unit_cost}"

    @staticmethod
    def compute_subtotal(quantity: int, unit_cost: Decimal) -> Decimal:
        return Decimal(unit_cost) * quantity
