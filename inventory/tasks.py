"""
Celery tasks for inventory monitoring.

Tasks:
    - notify_low_stock: Warn about products at or below their minimum stock
    - generate_daily_report: Daily purchase and sale totals (Celery Beat)
"""
import logging
from datetime import timedelta

from celery import shared_task
from django.db.models import Count, F, Sum
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def notify_low_stock(self, product_ids):
    """
    Async task queued after a sale changes stock.

    Args:
        product_ids: IDs of the products whose stock just changed

    Returns:
        Dict with the SKUs found at or below their minimum stock
    """
    from inventory.models import Product

    low_stock = list(
        Product.objects.filter(pk__in=product_ids, stock__lte=F('min_stock'))
        .order_by('sku')
        .values('id', 'sku', 'name', 'stock', 'min_stock')
    )

    for product in low_stock:
        logger.warning(
            f"[CELERY] Low stock: {product['sku']} {product['name']} "
            f"has {product['stock']} units (minimum {product['min_stock']})"
        )

    return {
        'status': 'success',
        'checked': len(product_ids),
        'low_stock': [product['sku'] for product in low_stock],
    }


@shared_task
def generate_daily_report():
    """
    Generate yesterday's purchase and sale statistics.

    Scheduled via Celery Beat (see CELERY_BEAT_SCHEDULE).
    """
    from inventory.models import Product
    from purchases.models import Purchase
    from sales.models import Sale

    yesterday = timezone.localdate() - timedelta(days=1)

    purchases = Purchase.objects.filter(date=yesterday).aggregate(
        count=Count('id'),
        total=Sum('total')
    )
    sales = Sale.objects.filter(created_at__date=yesterday).aggregate(
        count=Count('id'),
        total=Sum('total')
    )
    low_stock_count = Product.objects.filter(stock__lte=F('min_stock')).count()

    stats = {
        'date': yesterday.isoformat(),
        'purchase_count': purchases['count'],
        'purchase_total': str(purchases['total'] or '0.00'),
        'sale_count': sales['count'],
        'sale_total': str(sales['total'] or '0.00'),
        'low_stock_count': low_stock_count,
    }

    report = f"""
    ===============================================
    DAILY INVENTORY REPORT - {yesterday}
    ===============================================
    Purchases: {stats['purchase_count']} (total {stats['purchase_total']})
    Sales: {stats['sale_count']} (total {stats['sale_total']})
    Products at or below minimum stock: {low_stock_count}
    ===============================================
    """

    logger.info(report)

    return stats
