"""
Sale API Views.

Implements:
- GET /sales/ - Filtered, sorted, paginated listing
- POST /sales/ - Create sale with all-or-nothing stock deduction
- GET/PUT/DELETE /sales/{id}/ - Detail, reconciled edit, restoring delete
"""
from django.db.models import Count
from rest_framework import generics, status
from rest_framework.response import Response

from core.listing import CATALOG_FILTER_BACKENDS
from .models import Sale
from .serializers import (
    SaleCreateSerializer,
    SaleListSerializer,
    SaleSerializer,
    SaleSummarySerializer,
    SaleUpdateSerializer,
)
from .services import create_sale, delete_sale, get_sale, update_sale


class SaleListCreateView(generics.ListCreateAPIView):
    """
    GET: List sales
    POST: Register a sale; rejected with 400 if any product lacks stock

    Query Parameters (GET):
        - q: Customer name, customer document or payment method
        - from / to: Inclusive date range (YYYY-MM-DD)
        - sort: date | total | customer (default date)
        - dir: asc | desc (default desc)
        - page / page_size: Pagination (page size 1-100, default 10)
    """
    filter_backends = CATALOG_FILTER_BACKENDS
    search_fields = ('customer_name', 'customer_document', 'payment_method')
    date_lookup = 'created_at__date'
    sort_fields = {
        'date': 'created_at',
        'total': 'total',
        'customer': 'customer_name',
    }
    default_sort = 'date'
    default_dir = 'desc'
    max_page_size = 100

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return SaleCreateSerializer
        return SaleListSerializer

    def get_queryset(self):
        return Sale.objects.annotate(num_items=Count('items'))

    def create(self, request, *args, **kwargs):
        """
        Returns:
            - 201: Sale created
            - 400: Validation error or insufficient stock
        """
        serializer = SaleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        sale = create_sale(serializer.validated_data)

        return Response(
            SaleSummarySerializer(sale).data,
            status=status.HTTP_201_CREATED
        )

class SaleDetailView(generics.GenericAPIView):
    """
    GET: Sale with lines
    PUT: Replace header and lines, reconciling stock
    DELETE: Remove the sale and return its quantities to stock
    """
    serializer_class = SaleSerializer

    def get(self, request, pk):
        return Response(SaleSerializer(get_sale(pk)).data)

    def put(self, request, pk):
        serializer = SaleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        sale = update_sale(pk, serializer.validated_data)

        return Response(SaleSerializer(sale).data)

    def delete(self, request, pk):
        delete_sale(pk)
        return Response({'ok': True})
