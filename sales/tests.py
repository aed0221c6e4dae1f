"""
Tests for sale stock deduction and the sale API.

Test Cases:
1. Successful sale deducts stock
2. Insufficient stock rejects the whole sale (all-or-nothing)
3. Discounts never make a line negative
4. Edits apply only the quantity delta, optionally re-checking stock
5. Deleting a sale returns its quantities to stock
6. Low stock check is queued after commit
"""
import threading
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from rest_framework.test import APITestCase

from core.exceptions import InsufficientStockError, InventoryValidationError, RecordNotFoundError
from inventory.models import Product
from sales.models import Sale, SaleItem
from sales.services import create_sale, delete_sale, get_sale, sale_timestamp, update_sale


def make_product(sku, stock, **kwargs):
    defaults = {
        'name': f'Product {sku}',
        'category': 'Brakes',
        'sale_price': Decimal('20.00'),
    }
    defaults.update(kwargs)
    return Product.objects.create(sku=sku, stock=stock, **defaults)


def line(product, quantity, unit_price='20.00', discount=None, detail_id=None):
    item = {'product': product, 'quantity': quantity, 'unit_price': Decimal(unit_price)}
    if discount is not None:
        item['discount'] = Decimal(discount)
    if detail_id is not None:
        item['detail_id'] = detail_id
    return item


class SaleStockTestCase(TestCase):
    """Test cases for sale stock bookkeeping."""

    def setUp(self):
        self.product_a = make_product('A-1', stock=10)
        self.product_b = make_product('B-1', stock=5)

    def sale_data(self, items, **kwargs):
        data = {'customer_name': 'Walk-in customer', 'items': items}
        data.update(kwargs)
        return data

    def assertStock(self, product, expected):
        product.refresh_from_db()
        self.assertEqual(product.stock, expected)

    def test_successful_sale(self):
        """
        Given: A with 10 units and B with 5 units
        When: Selling 3 of A at 20.00 less 5.00 and 1 of B at 8.00
        Then: Stock is deducted and total is 53.00
        """
        sale = create_sale(self.sale_data([
            line(self.product_a, 3, '20.00', discount='5.00'),
            line(self.product_b, 1, '8.00'),
        ]))

        self.assertEqual(sale.total, Decimal('53.00'))
        self.assertEqual(sale.items.count(), 2)
        self.assertStock(self.product_a, 7)
        self.assertStock(self.product_b, 4)

    def test_sale_of_exact_stock(self):
        create_sale(self.sale_data([line(self.product_b, 5)]))

        self.assertStock(self.product_b, 0)

    def test_discount_above_price_makes_line_free(self):
        sale = create_sale(self.sale_data([line(self.product_a, 2, '5.00', discount='8.00')]))

        item = sale.items.get()
        self.assertEqual(item.subtotal, Decimal('0.00'))
        self.assertEqual(sale.total, Decimal('0.00'))

    def test_insufficient_stock_rejects_whole_sale(self):
        """
        Given: A with 10 units and B with 5 units
        When: Selling 3 of A and 6 of B
        Then: The sale is rejected naming B, and nothing is written
        """
        with self.assertRaises(InsufficientStockError) as context:
            create_sale(self.sale_data([
                line(self.product_a, 3),
                line(self.product_b, 6),
            ]))

        error = context.exception
        self.assertEqual(error.sku, 'B-1')
        self.assertEqual(error.requested, 6)
        self.assertEqual(error.available, 5)
        self.assertIn('B-1', str(error))
        self.assertStock(self.product_a, 10)
        self.assertStock(self.product_b, 5)
        self.assertEqual(Sale.objects.count(), 0)
        self.assertEqual(SaleItem.objects.count(), 0)

    def test_repeated_product_quantities_are_checked_together(self):
        """Two lines of 6 and 5 against 10 units fail although each line alone fits."""
        with self.assertRaises(InsufficientStockError):
            create_sale(self.sale_data([
                line(self.product_a, 6),
                line(self.product_a, 5),
            ]))

        self.assertStock(self.product_a, 10)

    def test_validation_error_empty_items(self):
        with self.assertRaises(InventoryValidationError):
            create_sale(self.sale_data([]))

        self.assertEqual(Sale.objects.count(), 0)

    def test_update_applies_quantity_delta(self):
        sale = create_sale(self.sale_data([line(self.product_a, 3)]))
        item = sale.items.get()
        self.assertStock(self.product_a, 7)

        update_sale(sale.id, self.sale_data([line(self.product_a, 5, detail_id=item.id)]))
        self.assertStock(self.product_a, 5)

        update_sale(sale.id, self.sale_data([line(self.product_a, 1, detail_id=item.id)]))
        self.assertStock(self.product_a, 9)

    def test_update_moves_stock_between_products(self):
        sale = create_sale(self.sale_data([line(self.product_a, 2)]))
        item = sale.items.get()

        update_sale(sale.id, self.sale_data([line(self.product_b, 2, detail_id=item.id)]))

        self.assertStock(self.product_a, 10)
        self.assertStock(self.product_b, 3)

    def test_update_removes_and_adds_lines(self):
        sale = create_sale(self.sale_data([line(self.product_a, 4), line(self.product_b, 1)]))
        item_a = sale.items.get(product=self.product_a)

        updated = update_sale(sale.id, self.sale_data([
            line(self.product_a, 4, '10.00', detail_id=item_a.id),
        ]))

        self.assertStock(self.product_a, 6)
        self.assertStock(self.product_b, 5)
        self.assertEqual(updated.items.count(), 1)
        self.assertEqual(updated.total, Decimal('40.00'))

    def test_update_does_not_recheck_stock_by_default(self):
        """Increasing a sold quantity past the remaining stock is accepted and stock goes negative."""
        sale = create_sale(self.sale_data([line(self.product_a, 8)]))
        item = sale.items.get()

        update_sale(sale.id, self.sale_data([line(self.product_a, 15, detail_id=item.id)]))

        self.assertStock(self.product_a, -5)

    @override_settings(SALES_ENFORCE_STOCK_ON_UPDATE=True)
    def test_update_rechecks_stock_when_enabled(self):
        sale = create_sale(self.sale_data([line(self.product_a, 8)]))
        item = sale.items.get()

        with self.assertRaises(InsufficientStockError):
            update_sale(sale.id, self.sale_data([line(self.product_a, 15, detail_id=item.id)]))

        self.assertStock(self.product_a, 2)
        item.refresh_from_db()
        self.assertEqual(item.quantity, 8)

    def test_update_moves_sale_to_another_day(self):
        sale = create_sale(self.sale_data([line(self.product_a, 1)]))

        updated = update_sale(sale.id, self.sale_data(
            [line(self.product_a, 1, detail_id=sale.items.get().id)],
            date=date(2025, 1, 15)
        ))

        self.assertEqual(updated.created_at, datetime(2025, 1, 15, 12, 0, tzinfo=dt_timezone.utc))
        self.assertEqual(sale_timestamp(date(2025, 1, 15)).date(), date(2025, 1, 15))

    def test_update_unknown_sale(self):
        with self.assertRaises(RecordNotFoundError):
            update_sale(99999, self.sale_data([line(self.product_a, 1)]))

        self.assertStock(self.product_a, 10)

    def test_delete_restores_stock(self):
        sale = create_sale(self.sale_data([line(self.product_a, 4), line(self.product_b, 2)]))

        delete_sale(sale.id)

        self.assertStock(self.product_a, 10)
        self.assertStock(self.product_b, 5)
        self.assertFalse(Sale.objects.filter(pk=sale.id).exists())
        self.assertEqual(SaleItem.objects.count(), 0)

    def test_delete_unknown_sale(self):
        with self.assertRaises(RecordNotFoundError):
            delete_sale(99999)

    def test_get_sale_loads_lines(self):
        sale = create_sale(self.sale_data([line(self.product_b, 2)]))

        loaded = get_sale(sale.id)

        self.assertEqual([item.product.sku for item in loaded.items.all()], ['B-1'])

    @patch('sales.services.notify_low_stock')
    def test_low_stock_check_queued_after_commit(self, mock_task):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            create_sale(self.sale_data([line(self.product_a, 2), line(self.product_b, 1)]))

        self.assertEqual(len(callbacks), 1)
        mock_task.delay.assert_called_once_with(
            sorted([self.product_a.id, self.product_b.id])
        )

    @patch('sales.services.notify_low_stock')
    def test_failed_sale_queues_nothing(self, mock_task):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(InsufficientStockError):
                create_sale(self.sale_data([line(self.product_b, 50)]))

        self.assertEqual(callbacks, [])
        mock_task.delay.assert_not_called()


class SaleAPITestCase(APITestCase):
    """Test cases for the sale endpoints."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='cashier', password='s3cret-pass')
        self.client.force_login(self.user)
        self.product_a = make_product('A-1', stock=10)
        self.product_b = make_product('B-1', stock=5)

    def create(self, customer_name='Walk-in customer', created_at=None, items=None, **kwargs):
        sale = create_sale({
            'customer_name': customer_name,
            'items': items or [line(self.product_a, 1)],
            **kwargs,
        })
        if created_at is not None:
            Sale.objects.filter(pk=sale.pk).update(created_at=created_at)
        return sale

    def test_create_sale(self):
        response = self.client.post('/api/sales/', {
            'customer_name': 'Taller Quispe',
            'customer_document': '45879632',
            'payment_method': 'cash',
            'items': [
                {'product_id': self.product_a.id, 'quantity': 2, 'unit_price': '35.00', 'discount': '5.00'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['total'], '60.00')
        self.assertEqual(response.data['customer_name'], 'Taller Quispe')
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock, 8)

    def test_create_insufficient_stock(self):
        response = self.client.post('/api/sales/', {
            'customer_name': 'Taller Quispe',
            'items': [
                {'product_id': self.product_a.id, 'quantity': 1, 'unit_price': '10.00'},
                {'product_id': self.product_b.id, 'quantity': 6, 'unit_price': '10.00'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Business Rule Error')
        self.assertIn('B-1', response.data['detail'])
        self.assertEqual(Sale.objects.count(), 0)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock, 10)

    def test_create_requires_customer_and_items(self):
        response = self.client.post('/api/sales/', {
            'items': [{'product_id': self.product_a.id, 'quantity': 1, 'unit_price': '10.00'}],
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('customer_name', response.data)

        response = self.client.post('/api/sales/', {
            'customer_name': 'Taller Quispe',
            'items': [],
        }, format='json')
        self.assertEqual(response.status_code, 400)

        response = self.client.post('/api/sales/', {
            'customer_name': 'Taller Quispe',
            'items': [{'product_id': self.product_a.id, 'quantity': -2, 'unit_price': '10.00'}],
        }, format='json')
        self.assertEqual(response.status_code, 400)

        self.assertEqual(Sale.objects.count(), 0)

    def test_detail_total_matches_lines(self):
        sale = self.create(items=[
            line(self.product_a, 3, '12.40', discount='0.40'),
            line(self.product_b, 2, '7.00', discount='9.00'),
        ])

        response = self.client.get(f'/api/sales/{sale.id}/')

        self.assertEqual(response.status_code, 200)
        for item in response.data['items']:
            net = max(Decimal('0.00'), Decimal(item['unit_price']) - Decimal(item['discount']))
            self.assertEqual(Decimal(item['subtotal']), net * item['quantity'])
        self.assertEqual(
            Decimal(response.data['total']),
            sum(Decimal(item['subtotal']) for item in response.data['items'])
        )
        self.assertEqual(response.data['total'], '36.00')

    def test_put_reconciles_lines(self):
        sale = self.create(items=[line(self.product_a, 3)])
        item = sale.items.get()

        response = self.client.put(f'/api/sales/{sale.id}/', {
            'customer_name': 'Taller Quispe',
            'date': '2025-02-01',
            'items': [
                {'detail_id': item.id, 'product_id': self.product_a.id, 'quantity': 1, 'unit_price': '20.00'},
                {'product_id': self.product_b.id, 'quantity': 2, 'unit_price': '5.00'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['customer_name'], 'Taller Quispe')
        self.assertEqual(response.data['total'], '30.00')
        self.assertTrue(response.data['created_at'].startswith('2025-02-01'))
        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_a.stock, 9)
        self.assertEqual(self.product_b.stock, 3)

    def test_delete_sale(self):
        sale = self.create(items=[line(self.product_b, 5)])

        response = self.client.delete(f'/api/sales/{sale.id}/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {'ok': True})
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_b.stock, 5)
        self.assertEqual(self.client.get(f'/api/sales/{sale.id}/').status_code, 404)

    def test_unknown_sale_is_not_found(self):
        response = self.client.get('/api/sales/99999/')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['error'], 'Not Found')

    def test_list_date_range_covers_whole_days(self):
        self.create(created_at=datetime(2025, 3, 1, 15, 0, tzinfo=dt_timezone.utc))
        self.create(created_at=datetime(2025, 3, 10, 22, 30, tzinfo=dt_timezone.utc))
        self.create(created_at=datetime(2025, 3, 20, 15, 0, tzinfo=dt_timezone.utc))

        response = self.client.get('/api/sales/', {'from': '2025-03-01', 'to': '2025-03-10'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total'], 2)

    def test_list_search_by_customer_document(self):
        self.create(customer_name='Taller Quispe', customer_document='45879632')
        self.create(customer_name='Mecanica Rojas', customer_document='10203040')

        response = self.client.get('/api/sales/', {'q': '4587'})

        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['data'][0]['customer_name'], 'Taller Quispe')
        self.assertEqual(response.data['data'][0]['item_count'], 1)

    def test_list_sort_by_customer(self):
        self.create(customer_name='Carlos')
        self.create(customer_name='Ana')
        self.create(customer_name='Beatriz')

        response = self.client.get('/api/sales/', {'sort': 'customer', 'dir': 'desc'})

        self.assertEqual(
            [row['customer_name'] for row in response.data['data']],
            ['Carlos', 'Beatriz', 'Ana']
        )

    def test_create_rejects_quantity_beyond_column_range(self):
        response = self.client.post('/api/sales/', {
            'customer_name': 'Taller Quispe',
            'items': [{'product_id': self.product_a.id, 'quantity': 2 ** 31, 'unit_price': '10.00'}],
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('items', response.data)
        self.assertEqual(Sale.objects.count(), 0)

    def test_list_page_size_allows_up_to_100(self):
        response = self.client.get('/api/sales/', {'page_size': 80})
        self.assertEqual(response.data['page_size'], 80)

        response = self.client.get('/api/sales/', {'page_size': 500})
        self.assertEqual(response.data['page_size'], 100)


class SaleAdminTestCase(TestCase):
    """The sale changelist shows the line count of each sale."""

    def setUp(self):
        admin_user = get_user_model().objects.create_superuser(
            username='admin', email='admin@example.com', password='s3cret-pass'
        )
        self.client.force_login(admin_user)
        create_sale({
            'customer_name': 'Walk-in customer',
            'items': [line(make_product('A-1', stock=5), 1)],
        })

    def test_changelist_shows_item_count(self):
        response = self.client.get('/admin/sales/sale/')

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, '<td class="field-item_count">1</td>', html=True)


@skipUnlessDBFeature('has_select_for_update')
class ConcurrentSaleTestCase(TransactionTestCase):
    """
    Concurrent sales of the same product must not oversell.
    Uses TransactionTestCase for proper multi-threading support.
    """

    def setUp(self):
        self.product = make_product('LIM-1', stock=10)

    @patch('sales.services.notify_low_stock')
    def test_concurrent_sales_no_overselling(self, mock_task):
        """
        Given: 10 units in stock
        When: Two concurrent sales of 8 units each
        Then: At most one succeeds and stock matches the sales written
        """
        results = {}

        def sell(key):
            try:
                create_sale({
                    'customer_name': key,
                    'items': [line(self.product, 8)],
                })
                results[key] = 'sold'
            except InsufficientStockError:
                results[key] = 'rejected'
            except Exception as e:
                results[key] = f'failed: {e}'
            finally:
                connection.close()

        threads = [threading.Thread(target=sell, args=(key,)) for key in ('sale1', 'sale2')]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        sold = sum(1 for result in results.values() if result == 'sold')
        self.assertLessEqual(sold, 1)
        self.assertEqual(Sale.objects.count(), sold)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10 - 8 * sold)
