"""
Sale Models - Customer sales and their line items.

Stock for every line item is taken from its product when the sale is
written and given back when the line or the sale is removed.
"""
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from inventory.models import Product


class Sale(models.Model):
    """
    Sale entity for a walk-in or registered customer.

    ``created_at`` is editable so a sale can be moved to another day.
    """
    customer_name = models.CharField(max_length=200, db_index=True)
    customer_document = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        help_text="Customer identity document number"
    )
    payment_method = models.CharField(max_length=50, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    total = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sum of line subtotals"
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Sale'
        verbose_name_plural = 'Sales'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Sale #{self.id} - {self.customer_name} ({self.total})"


class SaleItem(models.Model):
    """
    SaleItem entity: one product line of a sale.

    ``discount`` is per unit; a discount above the unit price makes the line
    free, never negative.
    """
    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Parent sale"
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='sale_items',
        help_text="Sold product"
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Units sold"
    )
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Price per unit at time of sale"
    )
    discount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Discount per unit"
    )
    subtotal = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        verbose_name = 'Sale Item'
        verbose_name_plural = 'Sale Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity}x {self.product.name} @ {self.unit_price}"

    @staticmethod
    def compute_subtotal(quantity: int, unit_price: Decimal, discount: Decimal = Decimal('0.00')) -> Decimal:
        return max(Decimal('0.00'), Decimal(unit_price) - Decimal(discount)) * quantity
