"""
Serializers for purchase models.
"""
from rest_framework import serializers

from inventory.models import Product, Supplier
from inventory.serializers import SupplierMinimalSerializer, SupplierSerializer
from inventory.stock import MAX_QUANTITY
from .models import Purchase, PurchaseItem


class PurchaseItemSerializer(serializers.ModelSerializer):
    """Serializer for PurchaseItem with product details."""
    product_id = serializers.IntegerField(read_only=True)
    sku = serializers.CharField(source='product.sku', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = PurchaseItem
        fields = ['id', 'product_id', 'sku', 'product_name', 'quantity', 'unit_cost', 'subtotal']


class PurchaseItemInputSerializer(serializers.Serializer):
    """One submitted line. ``detail_id`` refers to an existing line when editing."""
    detail_id = serializers.IntegerField(required=False, allow_null=True)
    product_id = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.all(),
        source='product'
    )
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class PurchaseWriteSerializer(serializers.Serializer):
    """
    Header and lines for editing a purchase via PUT /purchases/{id}/

    Request format:
    {
        "date": "2025-03-14",
        "document_type": "invoice", "series": "F001", "number": "123",
        "currency": "PEN", "payment_method": "cash", "notes": null,
        "items": [
            {"detail_id": 7, "product_id": 1, "quantity": 5, "unit_cost": "12.50"},
            {"product_id": 3, "quantity": 2, "unit_cost": "4.00"}
        ]
    }
    """
    text_fields = ('document_type', 'series', 'number', 'currency', 'payment_method', 'notes')

    date = serializers.DateField(input_formats=['%Y-%m-%d'])
    supplier_id = serializers.PrimaryKeyRelatedField(
        queryset=Supplier.objects.all(),
        source='supplier',
        required=False,
        allow_null=True
    )
    document_type = serializers.CharField(max_length=50, required=False, allow_null=True, allow_blank=True)
    series = serializers.CharField(max_length=20, required=False, allow_null=True, allow_blank=True)
    number = serializers.CharField(max_length=30, required=False, allow_null=True, allow_blank=True)
    currency = serializers.CharField(max_length=10, required=False, allow_null=True, allow_blank=True)
    payment_method = serializers.CharField(max_length=50, required=False, allow_null=True, allow_blank=True)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    items = PurchaseItemInputSerializer(many=True, allow_empty=False)

    def validate_items(self, value):
        detail_ids = [item['detail_id'] for item in value if item.get('detail_id') is not None]
        if len(detail_ids) != len(set(detail_ids)):
            raise serializers.ValidationError("Duplicate detail_id in items")
        return value

    def validate(self, attrs):
        for field in self.text_fields:
            if attrs.get(field) == '':
                attrs[field] = None
        return attrs


class PurchaseCreateSerializer(PurchaseWriteSerializer):
    """
    Serializer for creating purchases via POST /purchases/

    The supplier is either an existing ``supplier_id`` or a ``new_supplier``
    object created together with the purchase.
    """
    new_supplier = SupplierSerializer(required=False, allow_null=True)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if attrs.get('supplier') is None and not attrs.get('new_supplier'):
            raise serializers.ValidationError("Select or create a supplier.")
        return attrs


class PurchaseSerializer(serializers.ModelSerializer):
    """
    Full purchase with supplier and lines.
    Uses select_related/prefetch_related in the service loader.
    """
    supplier = SupplierMinimalSerializer(read_only=True)
    items = PurchaseItemSerializer(many=True, read_only=True)

    class Meta:
        model = Purchase
        fields = [
            'id', 'date', 'supplier', 'document_type', 'series', 'number',
            'currency', 'payment_method', 'notes', 'total', 'items',
            'created_at', 'updated_at'
        ]


class PurchaseListSerializer(serializers.ModelSerializer):
    """
    Optimized serializer for listing purchases.
    Expects ``num_items`` annotated by the view.
    """
    supplier = SupplierMinimalSerializer(read_only=True)
    item_count = serializers.IntegerField(source='num_items', read_only=True)

    class Meta:
        model = Purchase
        fields = [
            'id', 'date', 'supplier', 'document_type', 'series', 'number',
            'currency', 'payment_method', 'total', 'notes', 'item_count'
        ]


class PurchaseSummarySerializer(serializers.ModelSerializer):
    """Projection returned after creating a purchase."""
    supplier_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Purchase
        fields = [
            'id', 'date', 'supplier_id', 'document_type', 'series', 'number',
            'currency', 'payment_method', 'notes', 'total'
        ]
