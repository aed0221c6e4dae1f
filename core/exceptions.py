"""
Domain exceptions shared by the catalog, purchases and sales apps.

Services raise these inside ``transaction.atomic()`` blocks so that any
failure rolls the whole write back; ``api_exception_handler`` translates
them into responses.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Base class for errors raised by the inventory services."""


class InventoryValidationError(InventoryError):
    """Raised when a payload is well-formed JSON but not a valid record."""
    pass


class RecordNotFoundError(InventoryError):
    """Raised when a purchase, sale or supplier id does not exist."""

    def __init__(self, model_name: str, pk):
        self.model_name = model_name
        self.pk = pk
        super().__init__(f"{model_name} {pk} not found")


class BusinessRuleError(InventoryError):
    """Raised when a write would break a stock or reference rule."""
    pass


class InsufficientStockError(BusinessRuleError):
    """Raised when a product does not hold enough stock for a sale."""

    def __init__(self, product_id: int, sku: str, requested: int, available: int):
        self.product_id = product_id
        self.sku = sku
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {sku}: "
            f"requested {requested}, available {available}"
        )


def api_exception_handler(exc, context):
    """
    DRF exception handler that maps domain errors onto client errors.

    Validation and business-rule errors become 400, missing records 404, and
    anything unexpected is logged and reported as a generic 500.
    """
    response = exception_handler(exc, context)
    if response is not None:
        return response

    if isinstance(exc, RecordNotFoundError):
        return Response(
            {'error': 'Not Found', 'detail': str(exc)},
            status=status.HTTP_404_NOT_FOUND
        )
    if isinstance(exc, InventoryValidationError):
        logger.warning(f"Validation failed: {exc}")
        return Response(
            {'error': 'Validation Error', 'detail': str(exc)},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(exc, BusinessRuleError):
        logger.warning(f"Business rule rejected write: {exc}")
        return Response(
            {'error': 'Business Rule Error', 'detail': str(exc)},
            status=status.HTTP_400_BAD_REQUEST
        )

    view = context.get('view')
    logger.exception(f"Unexpected error in {view.__class__.__name__}: {exc}")
    return Response(
        {'error': 'Server Error', 'detail': 'An unexpected error occurred'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
