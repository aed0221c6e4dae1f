"""
Catalog API Views.

Implements:
- CRUD operations for Product and Supplier
- Filtered, sorted, paginated listings (core.listing)
- Dashboard summary of stock and monthly totals
"""
import logging

from django.db.models import Count, F, ProtectedError, Q, Sum
from django.utils import timezone
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BusinessRuleError
from core.listing import CATALOG_FILTER_BACKENDS
from purchases.models import Purchase
from purchases.serializers import PurchaseListSerializer
from sales.models import Sale
from sales.serializers import SaleListSerializer
from .models import Product, Supplier
from .serializers import (
    ProductListSerializer,
    ProductSerializer,
    ProductUpdateSerializer,
    SupplierSerializer,
)

logger = logging.getLogger(__name__)


class ProtectedDestroyMixin:
    """
    DELETE returning ``{"ok": true}``; records still referenced by purchases
    or sales are reported as a business rule error.
    """
    protected_message = "Record is referenced by other records"

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        try:
            instance.delete()
        except ProtectedError:
            raise BusinessRuleError(self.protected_message)
        logger.info(f"Deleted {instance.__class__.__name__} {instance}")
        return Response({'ok': True})


# =============================================================================
# Product Views
# =============================================================================

class ProductListCreateView(generics.ListCreateAPIView):
    """
    GET: List products
    POST: Create a new product

    Query Parameters (GET):
        - q: Keyword matched against sku, name, brand, category and OEM code
        - low_stock: Only products at or below their minimum (true/false)
        - sort: sku | name | price | stock | updated (default updated)
        - dir: asc | desc (default desc)
        - page / page_size: Pagination (page size 1-50, default 10)
    """
    filter_backends = CATALOG_FILTER_BACKENDS
    search_fields = ('sku', 'name', 'brand', 'category', 'oem_code')
    sort_fields = {
        'sku': 'sku',
        'name': 'name',
        'price': 'sale_price',
        'stock': 'stock',
        'updated': 'updated_at',
    }
    default_sort = 'updated'
    default_dir = 'desc'
    max_page_size = 50

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return ProductSerializer
        return ProductListSerializer

    def get_queryset(self):
        queryset = Product.objects.all()

        low_stock = self.request.query_params.get('low_stock', '').lower()
        if low_stock == 'true':
            queryset = queryset.filter(stock__lte=F('min_stock'))

        return queryset


class ProductDetailView(ProtectedDestroyMixin, generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a product
    PUT: Update name, brand, category, OEM code, sale price and minimum stock
    DELETE: Delete a product without purchase or sale lines
    """
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    http_method_names = ['get', 'put', 'delete', 'head', 'options']
    protected_message = "Product has purchase or sale records and cannot be deleted."

    def update(self, request, *args, **kwargs):
        product = self.get_object()
        serializer = ProductUpdateSerializer(product, data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info(f"Product #{product.id} updated")
        return Response(ProductSerializer(product).data)


# =============================================================================
# Supplier Views
# =============================================================================

class SupplierListCreateView(generics.ListCreateAPIView):
    """
    GET: List suppliers
    POST: Create a new supplier

    Query Parameters (GET):
        - q: Keyword matched against name and tax id
        - sort: name | tax_id (default name)
        - dir: asc | desc (default asc)
        - page / page_size: Pagination (page size 1-20, default 20)
    """
    serializer_class = SupplierSerializer
    filter_backends = CATALOG_FILTER_BACKENDS
    search_fields = ('name', 'tax_id')
    sort_fields = {
        'name': 'name',
        'tax_id': 'tax_id',
    }
    default_sort = 'name'
    default_dir = 'asc'
    default_page_size = 20
    max_page_size = 20

    def get_queryset(self):
        return Supplier.objects.annotate(num_purchases=Count('purchases'))


class SupplierDetailView(ProtectedDestroyMixin, generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a supplier
    PUT: Update a supplier
    DELETE: Delete a supplier without purchases
    """
    queryset = Supplier.objects.all()
    serializer_class = SupplierSerializer
    http_method_names = ['get', 'put', 'delete', 'head', 'options']
    protected_message = "Supplier has purchases and cannot be deleted."


# =============================================================================
# Dashboard
# =============================================================================

class DashboardView(APIView):
    """
    GET: Stock figures, current month totals and the latest purchases and sales.
    """

    def get(self, request):
        month_start = timezone.localdate().replace(day=1)

        product_stats = Product.objects.aggregate(
            product_count=Count('id'),
            low_stock_count=Count('id', filter=Q(stock__lte=F('min_stock'))),
        )

        purchases_total = Purchase.objects.filter(
            date__gte=month_start
        ).aggregate(total=Sum('total'))['total']
        sales_total = Sale.objects.filter(
            created_at__date__gte=month_start
        ).aggregate(total=Sum('total'))['total']

        recent_purchases = Purchase.objects.select_related('supplier').annotate(
            num_items=Count('items')
        ).order_by('-date', '-id')[:5]
        recent_sales = Sale.objects.annotate(
            num_items=Count('items')
        ).order_by('-created_at', '-id')[:5]

        return Response({
            **product_stats,
            'month_start': month_start.isoformat(),
            'month_purchases_total': str(purchases_total or '0.00'),
            'month_sales_total': str(sales_total or '0.00'),
            'recent_purchases': PurchaseListSerializer(recent_purchases, many=True).data,
            'recent_sales': SaleListSerializer(recent_sales, many=True).data,
        }, status=status.HTTP_200_OK)
