"""
Django Admin configuration for sale models.

Sales are view-only here; deletions go through the service layer so stock
is restored.
"""
from django.contrib import admin
from .models import Sale, SaleItem
from .services import delete_sale


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    readonly_fields = ['product', 'quantity', 'unit_price', 'discount', 'subtotal']
    can_delete = False


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ['id', 'created_at', 'customer_name', 'payment_method', 'total', 'item_count']
    list_filter = ['payment_method', 'created_at']
    search_fields = ['customer_name', 'customer_document']
    ordering = ['-created_at']
    inlines = [SaleItemInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def delete_model(self, request, obj):
        delete_sale(obj.pk)

    def delete_queryset(self, request, queryset):
        for sale_id in list(queryset.values_list('pk', flat=True)):
            delete_sale(sale_id)

    def item_count(self, obj):
        return obj.items.count()
    item_count.short_description = 'Items'
