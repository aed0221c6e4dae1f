"""
Sale Service Layer - Atomic sale writes with stock reconciliation.

Implements fail-fast creation:
1. Lock the referenced product rows
2. Validate ALL items have sufficient stock
3. If ANY fails: raise, nothing is written
4. If ALL pass: write the sale and its lines, deduct stock

Edits and deletions reconcile stock the same way purchases do, with the
opposite sign. After a write commits, a low stock check is queued.
"""
import logging
from datetime import date, datetime, time, timezone as dt_timezone
from decimal import Decimal
from typing import Dict, List

from django.conf import settings
from django.db import transaction

from core.exceptions import RecordNotFoundError
from inventory.stock import SALE, StockReconciler, validate_line_items
from inventory.tasks import notify_low_stock
from .models import Sale, SaleItem

logger = logging.getLogger(__name__)

HEADER_FIELDS = ('customer_document', 'payment_method', 'notes')

sale_stock = StockReconciler(
    SaleItem,
    parent_field='sale',
    direction=SALE,
    price_fields={'unit_price': Decimal('0.00'), 'discount': Decimal('0.00')},
)


def sale_timestamp(day: date) -> datetime:
    """Timestamp stored for a sale moved to ``day``: noon UTC, so it stays on that day."""
    return datetime.combine(day, time(12, 0), tzinfo=dt_timezone.utc)


def queue_low_stock_check(product_ids: List[int]) -> None:
    """Queue ``notify_low_stock`` once the current transaction commits."""
    if not product_ids:
        return

    def queue():
        try:
            notify_low_stock.delay(product_ids)
        except Exception as e:
            # A broker outage must not fail a committed sale
            logger.error(f"Failed to queue low stock check: {e}")

    transaction.on_commit(queue)


def create_sale(data: Dict) -> Sale:
    """
    Register a sale and deduct its quantities from stock.

    Args:
        data: Validated payload with 'customer_name', 'items' and the
            optional header fields

    Returns:
        The created Sale

    Raises:
        InventoryValidationError: If the payload is invalid
        InsufficientStockError: If any product lacks stock; nothing is written
    """
    items = data.get('items') or []
    validate_line_items(items, sale_stock.price_fields)
    total = sale_stock.total(items)

    with transaction.atomic():
        sale = Sale.objects.create(
            customer_name=data['customer_name'],
            total=total,
            **{field: data.get(field) for field in HEADER_FIELDS}
        )
        changed = sale_stock.create(sale, items)
        queue_low_stock_check(changed)

    logger.info(f"Sale #{sale.id} created: {len(items)} items, total {total}")
    return sale


def get_sale(sale_id: int) -> Sale:
    """Load a sale with its line items."""
    try:
        return Sale.objects.prefetch_related('items__product').get(pk=sale_id)
    except Sale.DoesNotExist:
        raise RecordNotFoundError('Sale', sale_id)


def update_sale(sale_id: int, data: Dict) -> Sale:
    """
    Replace a sale's header and line items, reconciling stock.

    Stock is not re-checked for increased quantities unless
    ``SALES_ENFORCE_STOCK_ON_UPDATE`` is enabled.

    Raises:
        RecordNotFoundError: If the sale does not exist
        InventoryValidationError: If the payload is invalid
        InsufficientStockError: If enforcement is enabled and stock would go negative
    """
    items = data.get('items') or []
    validate_line_items(items, sale_stock.price_fields)
    total = sale_stock.total(items)
    enforce_stock = getattr(settings, 'SALES_ENFORCE_STOCK_ON_UPDATE', False)

    with transaction.atomic():
        try:
            sale = Sale.objects.select_for_update().get(pk=sale_id)
        except Sale.DoesNotExist:
            raise RecordNotFoundError('Sale', sale_id)

        changed = sale_stock.update(sale, items, enforce_stock=enforce_stock)

        sale.customer_name = data['customer_name']
        for field in HEADER_FIELDS:
            setattr(sale, field, data.get(field))
        if data.get('date'):
            sale.created_at = sale_timestamp(data['date'])
        sale.total = total
        sale.save()
        queue_low_stock_check(changed)

    logger.info(
        f"Sale #{sale_id} updated: {len(items)} items, total {total}, "
        f"stock changed for {len(changed)} products"
    )
    return get_sale(sale_id)


def delete_sale(sale_id: int) -> None:
    """
    Delete a sale and return its quantities to stock.

    Raises:
        RecordNotFoundError: If the sale does not exist
    """
    with transaction.atomic():
        try:
            sale = Sale.objects.select_for_update().get(pk=sale_id)
        except Sale.DoesNotExist:
            raise RecordNotFoundError('Sale', sale_id)

        changed = sale_stock.delete(sale)

    logger.info(f"Sale #{sale_id} deleted, stock restored for {len(changed)} products")
