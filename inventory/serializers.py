"""
Serializers for catalog models.
Provides data validation and JSON conversion for API endpoints.
"""
from rest_framework import serializers
from rest_framework.validators import UniqueValidator

from .models import Product, Supplier


class ProductSerializer(serializers.ModelSerializer):
    """
    Serializer for creating and reading products.

    ``stock`` is read-only: it only moves through purchases and sales.
    """
    sku = serializers.CharField(
        max_length=64,
        validators=[UniqueValidator(queryset=Product.objects.all(), message='SKU already registered.')]
    )
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'sku', 'name', 'category', 'brand', 'presentation',
            'specification', 'oem_code', 'purchase_price', 'sale_price',
            'stock', 'min_stock', 'is_low_stock', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'stock', 'created_at', 'updated_at']


class ProductUpdateSerializer(serializers.ModelSerializer):
    """Fields editable on an existing product. Stock and cost are excluded."""

    class Meta:
        model = Product
        fields = ['name', 'brand', 'category', 'oem_code', 'sale_price', 'min_stock']
        extra_kwargs = {
            'name': {'required': True},
            'category': {'required': True},
            'sale_price': {'required': True},
            'min_stock': {'required': True},
        }


class ProductListSerializer(serializers.ModelSerializer):
    """Columns shown in the product listing."""
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'sku', 'name', 'brand', 'category', 'oem_code',
            'purchase_price', 'sale_price', 'stock', 'min_stock',
            'is_low_stock', 'updated_at'
        ]


class SupplierSerializer(serializers.ModelSerializer):
    """Serializer for Supplier model."""
    purchase_count = serializers.SerializerMethodField()

    class Meta:
        model = Supplier
        fields = [
            'id', 'name', 'tax_id', 'phone', 'email', 'city', 'notes',
            'purchase_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_tax_id(self, value):
        if value and not 8 <= len(value) <= 15:
            raise serializers.ValidationError("Tax id must have between 8 and 15 characters.")
        return value or None

    def get_purchase_count(self, obj):
        # Use the list view's annotation when present
        annotated = getattr(obj, 'num_purchases', None)
        if annotated is not None:
            return annotated
        return obj.purchases.count()


class SupplierMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested supplier representation."""
    class Meta:
        model = Supplier
        fields = ['id', 'name', 'tax_id']
