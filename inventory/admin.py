"""
Django Admin configuration for catalog models.
"""
from django.contrib import admin
from .models import Product, Supplier


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'sku', 'name', 'category', 'sale_price', 'stock', 'min_stock', 'is_low_stock', 'updated_at']
    list_filter = ['category', 'updated_at']
    search_fields = ['sku', 'name', 'brand', 'oem_code']
    ordering = ['sku']
    # Stock only moves through purchases and sales
    readonly_fields = ['stock', 'created_at', 'updated_at']

    def is_low_stock(self, obj):
        return obj.is_low_stock
    is_low_stock.boolean = True
    is_low_stock.short_description = 'Low Stock'


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'tax_id', 'city', 'purchase_count', 'created_at']
    search_fields = ['name', 'tax_id']
    ordering = ['name']

    def purchase_count(self, obj):
        return obj.purchases.count()
    purchase_count.short_description = 'Purchases'
