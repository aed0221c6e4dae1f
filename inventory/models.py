"""
Catalog Models - Products and the suppliers they are bought from.

Models:
    - Product: Items bought from suppliers and sold to customers, with stock
    - Supplier: Companies purchases are registered against
"""
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class Product(models.Model):
    """
    Product entity with pricing and current stock.

    ``stock`` is only changed by purchase and sale writes (see
    ``inventory.stock``); it is not constrained to be non-negative.
    """
    sku = models.CharField(
        max_length=64,
        unique=True,
        help_text="Unique stock keeping unit"
    )
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display and search"
    )
    category = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Free-text product category"
    )
    brand = models.CharField(max_length=100, null=True, blank=True)
    presentation = models.CharField(max_length=100, null=True, blank=True)
    specification = models.CharField(max_length=200, null=True, blank=True)
    oem_code = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Original equipment manufacturer code"
    )
    purchase_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Last unit cost paid to a supplier"
    )
    sale_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Unit price charged to customers"
    )
    stock = models.IntegerField(
        default=0,
        help_text="Current stock quantity"
    )
    min_stock = models.PositiveIntegerField(
        default=0,
        help_text="Threshold for low stock alerts"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['category', 'name'], name='product_category_name_idx'),
            models.Index(fields=['stock'], name='product_stock_idx'),
            models.Index(fields=['sale_price'], name='product_sale_price_idx'),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name}"

    @property
    def is_low_stock(self) -> bool:
        """Check if stock is at or below the minimum threshold."""
        return self.stock <= self.min_stock


class Supplier(models.Model):
    """
    Supplier entity, created standalone or inline while registering a purchase.
    """
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Supplier business name"
    )
    tax_id = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        db_index=True,
        help_text="Taxpayer identification number"
    )
    phone = models.CharField(max_length=50, null=True, blank=True)
    email = models.EmailField(null=True, blank=True)
    city = models.CharField(max_length=100, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Supplier'
        verbose_name_plural = 'Suppliers'
        ordering = ['name']

    def __str__(self):
        if self.tax_id:
            return f"{self.name} ({self.tax_id})"
        return self.name
