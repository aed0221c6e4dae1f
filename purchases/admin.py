"""
Django Admin configuration for purchase models.

Purchases are view-only here; deletions go through the service layer so
stock is reversed.
"""
from django.contrib import admin
from .models import Purchase, PurchaseItem
from .services import delete_purchase


class PurchaseItemInline(admin.TabularInline):
    model = PurchaseItem
    extra = 0
    readonly_fields = ['product', 'quantity', 'unit_cost', 'subtotal']
    can_delete = False


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = ['id', 'date', 'supplier', 'document_type', 'series', 'number', 'total', 'item_count']
    list_filter = ['date', 'document_type', 'currency']
    search_fields = ['supplier__name', 'supplier__tax_id', 'series', 'number']
    ordering = ['-date']
    inlines = [PurchaseItemInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def delete_model(self, request, obj):
        delete_purchase(obj.pk)

    def delete_queryset(self, request, queryset):
        for purchase_id in list(queryset.values_list('pk', flat=True)):
            delete_purchase(purchase_id)

    def item_count(self, obj):
        return obj.items.count()
    item_count.short_description = 'Items'
