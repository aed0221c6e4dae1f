"""
Stock reconciliation for purchase and sale line items.

Every write to a purchase or sale goes through a ``StockReconciler`` which
persists the line items and moves ``Product.stock`` by the same quantities:

    create: persist every item, apply its effect
    update: diff submitted items against persisted ones by line id
            (kept / added / removed) and apply the net delta per product
    delete: reverse every item's effect, remove the items and the record

The reconciler never opens a transaction itself; callers wrap each operation
in ``transaction.atomic()`` so a failure at any step leaves no partial write.
"""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List

from django.db.models import F
from django.utils import timezone

from core.exceptions import BusinessRuleError, InsufficientStockError, InventoryValidationError
from .models import Product

logger = logging.getLogger(__name__)

PURCHASE = 1
SALE = -1

# Largest quantity the integer stock and quantity columns can hold
MAX_QUANTITY = 2_147_483_647


def validate_line_items(items: List[dict], price_fields: Iterable[str]) -> None:
    """
    Validate submitted line items before any write.

    Args:
        items: Dicts with 'product', 'quantity', the price fields and an
            optional 'detail_id'
        price_fields: Names of the price fields that must be non-negative

    Raises:
        InventoryValidationError: If validation fails
    """
    if not items:
        raise InventoryValidationError("At least one item is required")

    seen_details = set()
    for idx, item in enumerate(items):
        if not isinstance(item.get('product'), Product):
            raise InventoryValidationError(f"Item {idx}: missing product")

        quantity = item.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InventoryValidationError(f"Item {idx}: quantity must be a positive integer")
        if quantity > MAX_QUANTITY:
            raise InventoryValidationError(f"Item {idx}: quantity must not exceed {MAX_QUANTITY}")

        for name in price_fields:
            value = item.get(name)
            if value is not None and Decimal(value) < 0:
                raise InventoryValidationError(f"Item {idx}: {name} must not be negative")

        detail_id = item.get('detail_id')
        if detail_id is not None:
            if detail_id in seen_details:
                raise InventoryValidationError(f"Item {idx}: duplicate detail_id {detail_id}")
            seen_details.add(detail_id)


class StockReconciler:
    """
    Keeps product stock consistent with the line items of one record type.

    Args:
        item_model: Line item model (``PurchaseItem`` or ``SaleItem``). It must
            have ``product``, ``quantity`` and ``subtotal`` fields and a
            ``compute_subtotal(quantity, **prices)`` static method.
        parent_field: Name of the line item's foreign key to its record.
        direction: ``PURCHASE`` (+1) adds stock, ``SALE`` (-1) removes it.
        price_fields: Mapping of price field name to its default value.

    Submitted items are dicts with ``product`` (a Product instance),
    ``quantity``, the price fields and optionally ``detail_id``.
    """

    def __init__(self, item_model, parent_field: str, direction: int, price_fields: Dict[str, Decimal]):
        self.item_model = item_model
        self.parent_field = parent_field
        self.direction = direction
        self.price_fields = price_fields

    def effect(self, quantity: int) -> int:
        """Signed stock change caused by ``quantity`` units of this record type."""
        return self.direction * quantity

    def prices(self, item: dict) -> dict:
        prices = {}
        for name, default in self.price_fields.items():
            value = item.get(name)
            prices[name] = default if value is None else value
        return prices

    def subtotal(self, item: dict) -> Decimal:
        return self.item_model.compute_subtotal(item['quantity'], **self.prices(item))

    def total(self, items: Iterable[dict]) -> Decimal:
        """Sum of subtotals of the submitted items, as they will be persisted."""
        return sum((self.subtotal(item) for item in items), Decimal('0.00'))

    def line_fields(self, item: dict) -> dict:
        return {
            'product': item['product'],
            'quantity': item['quantity'],
            'subtotal': self.subtotal(item),
            **self.prices(item),
        }

    def lines_for(self, record):
        return self.item_model.objects.filter(**{self.parent_field: record})

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self, record, items: List[dict]) -> List[int]:
        """
        Persist ``items`` for a new ``record`` and apply their stock effect.

        Sales check availability for the whole batch first and raise
        ``InsufficientStockError`` before anything is written.

        Returns:
            IDs of the products whose stock changed.
        """
        if self.direction == SALE:
            self.check_availability(items)

        deltas = defaultdict(int)
        lines = []
        for item in items:
            lines.append(self.item_model(**{self.parent_field: record}, **self.line_fields(item)))
            deltas[item['product'].pk] += self.effect(item['quantity'])

        self.item_model.objects.bulk_create(lines)
        return self.apply(deltas)

    def update(self, record, items: List[dict], enforce_stock: bool = False) -> List[int]:
        """
        Replace the line items of ``record`` with ``items``.

        Items whose ``detail_id`` matches a persisted line are kept and
        updated in place; the rest are added. Persisted lines missing from
        ``items`` are removed. The stock delta of all three groups is netted
        per product before it is applied.

        Args:
            enforce_stock: Reject the update when it would leave a product
                with negative stock.

        Returns:
            IDs of the products whose stock changed.
        """
        current = {
            line.pk: line
            for line in self.lines_for(record).select_for_update().order_by('pk')
        }
        deltas = defaultdict(int)
        kept = set()
        added = []

        for item in items:
            product_id = item['product'].pk
            previous = current.get(item.get('detail_id'))

            if previous is None or previous.pk in kept:
                added.append(self.item_model(**{self.parent_field: record}, **self.line_fields(item)))
                deltas[product_id] += self.effect(item['quantity'])
                continue

            if previous.product_id != product_id:
                deltas[previous.product_id] -= self.effect(previous.quantity)
                deltas[product_id] += self.effect(item['quantity'])
            else:
                deltas[product_id] += self.effect(item['quantity'] - previous.quantity)

            for name, value in self.line_fields(item).items():
                setattr(previous, name, value)
            previous.save()
            kept.add(previous.pk)

        removed = [line for pk, line in current.items() if pk not in kept]
        for line in removed:
            deltas[line.product_id] -= self.effect(line.quantity)

        if removed:
            self.item_model.objects.filter(pk__in=[line.pk for line in removed]).delete()
        if added:
            self.item_model.objects.bulk_create(added)

        logger.debug(
            f"{record.__class__.__name__} #{record.pk}: kept {len(kept)}, "
            f"added {len(added)}, removed {len(removed)} lines"
        )
        return self.apply(deltas, enforce_stock=enforce_stock)

    def delete(self, record) -> List[int]:
        """
        Reverse the stock effect of every line of ``record``, then delete the
        lines and the record itself.

        Returns:
            IDs of the products whose stock changed.
        """
        deltas = defaultdict(int)
        for line in self.lines_for(record).select_for_update():
            deltas[line.product_id] -= self.effect(line.quantity)

        changed = self.apply(deltas)
        self.lines_for(record).delete()
        record.delete()
        return changed

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def check_availability(self, items: List[dict]) -> None:
        """
        Lock the referenced products and confirm each holds at least the
        quantity requested across the whole batch.

        Raises:
            InsufficientStockError: For the first product that falls short
        """
        requested = defaultdict(int)
        for item in items:
            requested[item['product'].pk] += item['quantity']

        # Lock in id order to avoid deadlocks between concurrent writers
        products = {
            product.pk: product
            for product in Product.objects.select_for_update().filter(pk__in=requested).order_by('pk')
        }
        missing = set(requested) - set(products)
        if missing:
            raise BusinessRuleError(f"Products not found: {sorted(missing)}")

        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.stock < quantity:
                raise InsufficientStockError(product.pk, product.sku, quantity, product.stock)

    def apply(self, deltas: Dict[int, int], enforce_stock: bool = False) -> List[int]:
        """
        Apply the net stock delta of each product with a relative update.

        Args:
            deltas: Product ID to signed quantity
            enforce_stock: Raise instead of letting stock drop below zero

        Returns:
            IDs of the products whose stock changed, ascending.
        """
        changed = {product_id: delta for product_id, delta in deltas.items() if delta}
        if not changed:
            return []

        if enforce_stock:
            decreasing = [product_id for product_id, delta in changed.items() if delta < 0]
            products = Product.objects.select_for_update().filter(pk__in=decreasing).order_by('pk')
            for product in products:
                if product.stock + changed[product.pk] < 0:
                    raise InsufficientStockError(
                        product.pk, product.sku, -changed[product.pk], product.stock
                    )

        now = timezone.now()
        for product_id in sorted(changed):
            updated = Product.objects.filter(pk=product_id).update(
                stock=F('stock') + changed[product_id],
                updated_at=now
            )
            if not updated:
                raise BusinessRuleError(f"Product {product_id} not found")
            logger.debug(f"Product #{product_id}: stock {changed[product_id]:+d}")

        return sorted(changed)
