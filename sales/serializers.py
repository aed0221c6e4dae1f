"""
Serializers for sale models.
"""
from decimal import Decimal

from rest_framework import serializers

from inventory.models import Product
from inventory.stock import MAX_QUANTITY
from .models import Sale, SaleItem


class SaleItemSerializer(serializers.ModelSerializer):
    """Serializer for SaleItem with product details."""
    product_id = serializers.IntegerField(read_only=True)
    sku = serializers.CharField(source='product.sku', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = SaleItem
        fields = [
            'id', 'product_id', 'sku', 'product_name', 'quantity',
            'unit_price', 'discount', 'subtotal'
        ]


class SaleItemInputSerializer(serializers.Serializer):
    """One submitted line. ``detail_id`` refers to an existing line when editing."""
    detail_id = serializers.IntegerField(required=False, allow_null=True)
    product_id = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.all(),
        source='product'
    )
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    discount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=0,
        required=False,
        default=Decimal('0.00')
    )


class SaleCreateSerializer(serializers.Serializer):
    """
    Serializer for creating sales via POST /sales/

    Request format:
    {
        "customer_name": "Walk-in customer",
        "customer_document": "45879632",
        "payment_method": "cash",
        "notes": null,
        "items": [
            {"product_id": 1, "quantity": 2, "unit_price": "35.00", "discount": "5.00"}
        ]
    }
    """
    text_fields = ('customer_document', 'payment_method', 'notes')

    customer_name = serializers.CharField(max_length=200)
    customer_document = serializers.CharField(max_length=20, required=False, allow_null=True, allow_blank=True)
    payment_method = serializers.CharField(max_length=50, required=False, allow_null=True, allow_blank=True)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    items = SaleItemInputSerializer(many=True, allow_empty=False)

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


class SaleUpdateSerializer(SaleCreateSerializer):
    """
    Serializer for editing sales via PUT /sales/{id}/

    Accepts an optional ``date`` (YYYY-MM-DD) that moves the sale to that day.
    """
    date = serializers.DateField(input_formats=['%Y-%m-%d'], required=False, allow_null=True)


class SaleSerializer(serializers.ModelSerializer):
    """Full sale with lines."""
    items = SaleItemSerializer(many=True, read_only=True)

    class Meta:
        model = Sale
        fields = [
            'id', 'created_at', 'customer_name', 'customer_document',
            'payment_method', 'notes', 'total', 'items', 'updated_at'
        ]


class SaleListSerializer(serializers.ModelSerializer):
    """
    Optimized serializer for listing sales.
    Expects ``num_items`` annotated by the view.
    """
    item_count = serializers.IntegerField(source='num_items', read_only=True)

    class Meta:
        model = Sale
        fields = [
            'id', 'created_at', 'customer_name', 'customer_document',
            'payment_method', 'total', 'notes', 'item_count'
        ]


class SaleSummarySerializer(serializers.ModelSerializer):
    """Projection returned after creating a sale."""

    class Meta:
        model = Sale
        fields = [
            'id', 'created_at', 'customer_name', 'customer_document',
            'payment_method', 'notes', 'total'
        ]
