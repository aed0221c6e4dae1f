"""
Purchase API Views.

Implements:
- GET /purchases/ - Filtered, sorted, paginated listing
- POST /purchases/ - Create purchase with atomic stock update
- GET/PUT/DELETE /purchases/{id}/ - Detail, reconciled edit, reversing delete
"""
from django.db.models import Count
from rest_framework import generics, status
from rest_framework.response import Response

from core.listing import CATALOG_FILTER_BACKENDS
from .models import Purchase
from .serializers import (
    PurchaseCreateSerializer,
    PurchaseListSerializer,
    PurchaseSerializer,
    PurchaseSummarySerializer,
    PurchaseWriteSerializer,
)
from .services import create_purchase, delete_purchase, get_purchase, update_purchase


class PurchaseListCreateView(generics.ListCreateAPIView):
    """
    GET: List purchases
    POST: Register a purchase and add its quantities to stock

    Query Parameters (GET):
        - q: Supplier name or tax id, document type, series or number
        - from / to: Inclusive date range (YYYY-MM-DD)
        - sort: date | total | supplier | number (default date)
        - dir: asc | desc (default desc)
        - page / page_size: Pagination (page size 1-50, default 10)
    """
    filter_backends = CATALOG_FILTER_BACKENDS
    search_fields = (
        'supplier__name', 'supplier__tax_id', 'document_type', 'series', 'number'
    )
    date_lookup = 'date'
    sort_fields = {
        'date': 'date',
        'total': 'total',
        'supplier': 'supplier__name',
        'number': 'number',
    }
    default_sort = 'date'
    default_dir = 'desc'
    max_page_size = 50

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return PurchaseCreateSerializer
        return PurchaseListSerializer

    def get_queryset(self):
        return Purchase.objects.select_related('supplier').annotate(
            num_items=Count('items')
        )

    def create(self, request, *args, **kwargs):
        """
        Returns:
            - 201: Purchase created
            - 400: Validation error
        """
        serializer = PurchaseCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        purchase = create_purchase(serializer.validated_data)

        return Response(
            PurchaseSummarySerializer(purchase).data,
            status=status.HTTP_201_CREATED
        )

class PurchaseDetailView(generics.GenericAPIView):
    """
    GET: Purchase with supplier and lines
    PUT: Replace header and lines, reconciling stock
    DELETE: Remove the purchase and take its quantities out of stock
    """
    serializer_class = PurchaseSerializer

    def get(self, request, pk):
        return Response(PurchaseSerializer(get_purchase(pk)).data)

    def put(self, request, pk):
        serializer = PurchaseWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        purchase = update_purchase(pk, serializer.validated_data)

        return Response(PurchaseSerializer(purchase).data)

    def delete(self, request, pk):
        delete_purchase(pk)
        return Response({'ok': True})
