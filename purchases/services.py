"""
Purchase Service Layer - Atomic purchase writes with stock reconciliation.

Each operation runs in a single transaction:
1. Lock the purchase row (update/delete)
2. Diff line items and move product stock (inventory.stock)
3. Write the header and total
Any failure rolls everything back.
"""
import logging
from decimal import Decimal
from typing import Dict

from django.db import transaction

from core.exceptions import InventoryValidationError, RecordNotFoundError
from inventory.models import Product, Supplier
from inventory.stock import PURCHASE, StockReconciler, validate_line_items
from .models import Purchase, PurchaseItem

logger = logging.getLogger(__name__)

HEADER_FIELDS = ('document_type', 'series', 'number', 'currency', 'payment_method', 'notes')

purchase_stock = StockReconciler(
    PurchaseItem,
    parent_field='purchase',
    direction=PURCHASE,
    price_fields={'unit_cost': Decimal('0.00')},
)


def _resolve_supplier(data: Dict) -> Supplier:
    supplier = data.get('supplier')
    if supplier is not None:
        return supplier

    new_supplier = data.get('new_supplier')
    if new_supplier:
        supplier = Supplier.objects.create(**new_supplier)
        logger.info(f"Created supplier #{supplier.id} ({supplier.name}) with purchase")
        return supplier

    raise InventoryValidationError("Select or create a supplier.")


def _record_unit_costs(items) -> None:
    """Store the cost just paid as each product's purchase price."""
    for item in items:
        Product.objects.filter(pk=item['product'].pk).update(purchase_price=item['unit_cost'])


def create_purchase(data: Dict) -> Purchase:
    """
    Register a purchase and add its quantities to stock.

    Args:
        data: Validated payload with 'date', 'items', either 'supplier' or
            'new_supplier', and the optional header fields

    Returns:
        The created Purchase

    Raises:
        InventoryValidationError: If the payload is invalid
    """
    items = data.get('items') or []
    validate_line_items(items, purchase_stock.price_fields)
    total = purchase_stock.total(items)

    with transaction.atomic():
        supplier = _resolve_supplier(data)
        purchase = Purchase.objects.create(
            supplier=supplier,
            date=data['date'],
            total=total,
            **{field: data.get(field) for field in HEADER_FIELDS}
        )
        purchase_stock.create(purchase, items)
        _record_unit_costs(items)

    logger.info(
        f"Purchase #{purchase.id} created: {len(items)} items, total {total}"
    )
    return purchase


def get_purchase(purchase_id: int) -> Purchase:
    """Load a purchase with its supplier and line items."""
    try:
        return Purchase.objects.select_related('supplier').prefetch_related(
            'items__product'
        ).get(pk=purchase_id)
    except Purchase.DoesNotExist:
        raise RecordNotFoundError('Purchase', purchase_id)


def update_purchase(purchase_id: int, data: Dict) -> Purchase:
    """
    Replace a purchase's header and line items, reconciling stock.

    Lines submitted with a 'detail_id' of this purchase are edited in place,
    others are added, and persisted lines left out are removed.

    Raises:
        RecordNotFoundError: If the purchase does not exist
        InventoryValidationError: If the payload is invalid
    """
    items = data.get('items') or []
    validate_line_items(items, purchase_stock.price_fields)
    total = purchase_stock.total(items)

    with transaction.atomic():
        try:
            purchase = Purchase.objects.select_for_update().get(pk=purchase_id)
        except Purchase.DoesNotExist:
            raise RecordNotFoundError('Purchase', purchase_id)

        changed = purchase_stock.update(purchase, items)

        purchase.date = data['date']
        if data.get('supplier') is not None:
            purchase.supplier = data['supplier']
        for field in HEADER_FIELDS:
            setattr(purchase, field, data.get(field))
        purchase.total = total
        purchase.save()

    logger.info(
        f"Purchase #{purchase_id} updated: {len(items)} items, total {total}, "
        f"stock changed for {len(changed)} products"
    )
    return get_purchase(purchase_id)


def delete_purchase(purchase_id: int) -> None:
    """
    Delete a purchase and take its quantities back out of stock.

    Raises:
        RecordNotFoundError: If the purchase does not exist
    """
    with transaction.atomic():
        try:
            purchase = Purchase.objects.select_for_update().get(pk=purchase_id)
        except Purchase.DoesNotExist:
            raise RecordNotFoundError('Purchase', purchase_id)

        changed = purchase_stock.delete(purchase)

    logger.info(f"Purchase #{purchase_id} deleted, stock reversed for {len(changed)} products")
