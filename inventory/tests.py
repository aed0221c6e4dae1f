"""
Tests for the catalog API, dashboard and inventory tasks.

Test Cases:
1. Product create, edit and delete rules
2. Product listing search, filters, sorting and pagination
3. Supplier CRUD and listing
4. Dashboard figures
5. Low stock notification and daily report tasks
6. Seed command
7. Migrations match the models
"""
from datetime import datetime, time, timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from inventory.models import Product, Supplier
from inventory.tasks import generate_daily_report, notify_low_stock
from purchases.models import Purchase
from purchases.services import create_purchase
from sales.models import Sale
from sales.services import create_sale


def make_product(sku, **kwargs):
    defaults = {
        'name': f'Product {sku}',
        'category': 'Filters',
        'sale_price': Decimal('20.00'),
    }
    defaults.update(kwargs)
    return Product.objects.create(sku=sku, **defaults)


class SignedInTestCase(APITestCase):

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='clerk', password='s3cret-pass')
        self.client.force_login(self.user)


class ProductAPITestCase(SignedInTestCase):
    """Test cases for product endpoints."""

    def product_payload(self, **kwargs):
        payload = {
            'sku': 'FIL-00001',
            'name': 'Oil Filter Bosch',
            'category': 'Filters',
            'brand': 'Bosch',
            'oem_code': 'OEM12345',
            'purchase_price': '8.50',
            'sale_price': '12.90',
            'min_stock': 3,
        }
        payload.update(kwargs)
        return payload

    def test_create_product(self):
        response = self.client.post('/api/products/', self.product_payload(), format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['sku'], 'FIL-00001')
        self.assertEqual(response.data['sale_price'], '12.90')
        self.assertEqual(response.data['stock'], 0)

    def test_create_ignores_submitted_stock(self):
        response = self.client.post('/api/products/', self.product_payload(stock=500), format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Product.objects.get(sku='FIL-00001').stock, 0)

    def test_duplicate_sku_is_rejected(self):
        make_product('FIL-00001')

        response = self.client.post('/api/products/', self.product_payload(), format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['sku'], ['SKU already registered.'])
        self.assertEqual(Product.objects.count(), 1)

    def test_create_validates_fields(self):
        response = self.client.post('/api/products/', self.product_payload(name='', sale_price='-1.00'), format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('name', response.data)
        self.assertIn('sale_price', response.data)

    def test_update_changes_editable_fields_only(self):
        """
        Given: A product with 7 units and cost 8.50
        When: PUT with a new name, sale price and a stock value
        Then: Name and price change; stock and cost are untouched
        """
        product = make_product('FIL-00001', stock=7, purchase_price=Decimal('8.50'))

        response = self.client.put(f'/api/products/{product.id}/', {
            'name': 'Oil Filter Mann',
            'category': 'Filters',
            'brand': 'Mann',
            'sale_price': '15.00',
            'min_stock': 2,
            'stock': 999,
            'purchase_price': '1.00',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['name'], 'Oil Filter Mann')
        product.refresh_from_db()
        self.assertEqual(product.sale_price, Decimal('15.00'))
        self.assertEqual(product.stock, 7)
        self.assertEqual(product.purchase_price, Decimal('8.50'))

    def test_update_requires_name(self):
        product = make_product('FIL-00001')

        response = self.client.put(f'/api/products/{product.id}/', {
            'category': 'Filters', 'sale_price': '15.00', 'min_stock': 2,
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('name', response.data)

    def test_delete_unused_product(self):
        product = make_product('FIL-00001')

        response = self.client.delete(f'/api/products/{product.id}/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {'ok': True})
        self.assertFalse(Product.objects.filter(pk=product.id).exists())

    def test_delete_product_with_purchases_is_refused(self):
        product = make_product('FIL-00001')
        supplier = Supplier.objects.create(name='Distribuidora Andina')
        create_purchase({
            'supplier': supplier,
            'date': timezone.localdate(),
            'items': [{'product': product, 'quantity': 2, 'unit_cost': Decimal('5.00')}],
        })

        response = self.client.delete(f'/api/products/{product.id}/')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Business Rule Error')
        self.assertTrue(Product.objects.filter(pk=product.id).exists())

    def test_unknown_product(self):
        response = self.client.get('/api/products/99999/')

        self.assertEqual(response.status_code, 404)

    def test_patch_is_not_allowed(self):
        product = make_product('FIL-00001')

        response = self.client.patch(f'/api/products/{product.id}/', {'name': 'x'}, format='json')

        self.assertEqual(response.status_code, 405)


class ProductListTestCase(SignedInTestCase):
    """Test cases for the product listing."""

    def test_search_is_case_insensitive_across_fields(self):
        make_product('FIL-00001', name='Oil Filter', brand='Bosch')
        make_product('BRA-00002', name='Brake Pad', brand='Valeo', oem_code='OEM-BOSCHX')
        make_product('ELE-00003', name='Spark Plug', brand='NGK')

        response = self.client.get('/api/products/', {'q': 'bosch'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            sorted(row['sku'] for row in response.data['data']),
            ['BRA-00002', 'FIL-00001']
        )

    def test_low_stock_filter(self):
        make_product('FIL-00001', stock=2, min_stock=5)
        make_product('FIL-00002', stock=5, min_stock=5)
        make_product('FIL-00003', stock=9, min_stock=5)

        response = self.client.get('/api/products/', {'low_stock': 'true'})

        self.assertEqual(
            sorted(row['sku'] for row in response.data['data']),
            ['FIL-00001', 'FIL-00002']
        )
        self.assertTrue(all(row['is_low_stock'] for row in response.data['data']))

    def test_default_order_is_most_recently_updated(self):
        make_product('FIL-00001')
        make_product('FIL-00002')
        newest = make_product('FIL-00003')

        response = self.client.get('/api/products/')

        self.assertEqual(response.data['data'][0]['id'], newest.id)

    def test_sort_by_price(self):
        make_product('FIL-00001', sale_price=Decimal('30.00'))
        make_product('FIL-00002', sale_price=Decimal('10.00'))
        make_product('FIL-00003', sale_price=Decimal('20.00'))

        response = self.client.get('/api/products/', {'sort': 'price', 'dir': 'asc'})

        self.assertEqual(
            [row['sku'] for row in response.data['data']],
            ['FIL-00002', 'FIL-00003', 'FIL-00001']
        )

    def test_second_page_of_fifteen(self):
        """15 matching products, page 2 of size 10: 5 rows and 2 pages."""
        for index in range(15):
            make_product(f'FIL-{index:05d}')

        response = self.client.get('/api/products/', {'page': 2, 'page_size': 10, 'sort': 'sku'})

        self.assertEqual(response.data['total'], 15)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(len(response.data['data']), 5)

    def test_page_past_the_end_is_empty(self):
        make_product('FIL-00001')

        response = self.client.get('/api/products/', {'page': 7})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data'], [])
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['page'], 7)
        self.assertEqual(response.data['total_pages'], 1)

    def test_empty_listing_has_one_page(self):
        response = self.client.get('/api/products/')

        self.assertEqual(response.data, {
            'data': [], 'total': 0, 'page': 1, 'page_size': 10, 'total_pages': 1,
        })


class SupplierAPITestCase(SignedInTestCase):
    """Test cases for supplier endpoints."""

    def test_create_supplier(self):
        response = self.client.post('/api/suppliers/', {
            'name': 'Importaciones Lima',
            'tax_id': '20456789123',
            'city': 'Lima',
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['purchase_count'], 0)

    def test_create_rejects_bad_tax_id(self):
        response = self.client.post('/api/suppliers/', {'name': 'Short Id', 'tax_id': '123'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('tax_id', response.data)

    def test_list_search_and_order(self):
        Supplier.objects.create(name='Suministros Sur', tax_id='20111111111')
        Supplier.objects.create(name='Autopartes Central', tax_id='20222222222')
        Supplier.objects.create(name='Repuestos del Norte', tax_id='20333333333')

        response = self.client.get('/api/suppliers/')
        self.assertEqual(response.data['page_size'], 20)
        self.assertEqual(
            [row['name'] for row in response.data['data']],
            ['Autopartes Central', 'Repuestos del Norte', 'Suministros Sur']
        )

        response = self.client.get('/api/suppliers/', {'q': '2033'})
        self.assertEqual([row['name'] for row in response.data['data']], ['Repuestos del Norte'])

    def test_page_size_capped_at_twenty(self):
        response = self.client.get('/api/suppliers/', {'page_size': 50})

        self.assertEqual(response.data['page_size'], 20)

    def test_update_supplier(self):
        supplier = Supplier.objects.create(name='Suministros Sur')

        response = self.client.put(f'/api/suppliers/{supplier.id}/', {
            'name': 'Suministros del Sur', 'phone': '054-123456',
        }, format='json')

        self.assertEqual(response.status_code, 200)
        supplier.refresh_from_db()
        self.assertEqual(supplier.name, 'Suministros del Sur')

    def test_delete_supplier_with_purchases_is_refused(self):
        supplier = Supplier.objects.create(name='Suministros Sur')
        create_purchase({
            'supplier': supplier,
            'date': timezone.localdate(),
            'items': [{'product': make_product('FIL-00001'), 'quantity': 1, 'unit_cost': Decimal('1.00')}],
        })

        response = self.client.delete(f'/api/suppliers/{supplier.id}/')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Business Rule Error')

        response = self.client.get(f'/api/suppliers/{supplier.id}/')
        self.assertEqual(response.data['purchase_count'], 1)


class DashboardTestCase(SignedInTestCase):
    """Test cases for the dashboard summary."""

    def test_dashboard_figures(self):
        supplier = Supplier.objects.create(name='Distribuidora Andina')
        filter_ = make_product('FIL-00001', min_stock=2)
        make_product('FIL-00002', min_stock=2)
        create_purchase({
            'supplier': supplier,
            'date': timezone.localdate(),
            'items': [{'product': filter_, 'quantity': 10, 'unit_cost': Decimal('2.50')}],
        })
        create_sale({
            'customer_name': 'Walk-in customer',
            'items': [{'product': filter_, 'quantity': 3, 'unit_price': Decimal('6.00')}],
        })

        response = self.client.get('/api/dashboard/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['product_count'], 2)
        self.assertEqual(response.data['low_stock_count'], 1)
        self.assertEqual(Decimal(response.data['month_purchases_total']), Decimal('25.00'))
        self.assertEqual(Decimal(response.data['month_sales_total']), Decimal('18.00'))
        self.assertEqual(len(response.data['recent_purchases']), 1)
        self.assertEqual(response.data['recent_sales'][0]['item_count'], 1)


class InventoryTaskTestCase(TestCase):
    """Test cases for Celery tasks, run eagerly."""

    def test_notify_low_stock(self):
        low = make_product('FIL-00001', stock=1, min_stock=3)
        fine = make_product('FIL-00002', stock=10, min_stock=3)

        result = notify_low_stock.apply(args=[[low.id, fine.id]]).get()

        self.assertEqual(result['status'], 'success')
        self.assertEqual(result['checked'], 2)
        self.assertEqual(result['low_stock'], ['FIL-00001'])

    def test_generate_daily_report(self):
        """
        Given: One purchase and one sale dated yesterday and one sale today
        When: The daily report runs
        Then: Only yesterday's records are counted
        """
        yesterday = timezone.localdate() - timedelta(days=1)
        product = make_product('FIL-00001', min_stock=0)
        supplier = Supplier.objects.create(name='Distribuidora Andina')
        create_purchase({
            'supplier': supplier,
            'date': yesterday,
            'items': [{'product': product, 'quantity': 4, 'unit_cost': Decimal('5.00')}],
        })
        old_sale = create_sale({
            'customer_name': 'Walk-in customer',
            'items': [{'product': product, 'quantity': 1, 'unit_price': Decimal('9.00')}],
        })
        Sale.objects.filter(pk=old_sale.pk).update(
            created_at=timezone.make_aware(datetime.combine(yesterday, time(12, 0)))
        )
        create_sale({
            'customer_name': 'Walk-in customer',
            'items': [{'product': product, 'quantity': 1, 'unit_price': Decimal('9.00')}],
        })

        stats = generate_daily_report()

        self.assertEqual(stats['date'], yesterday.isoformat())
        self.assertEqual(stats['purchase_count'], 1)
        self.assertEqual(Decimal(stats['purchase_total']), Decimal('20.00'))
        self.assertEqual(stats['sale_count'], 1)
        self.assertEqual(Decimal(stats['sale_total']), Decimal('9.00'))
        self.assertEqual(stats['low_stock_count'], 0)


class SeedDataTestCase(TestCase):
    """Test cases for the seed_data management command."""

    def test_seed_gives_every_product_opening_stock(self):
        """
        Given: An empty database
        When: Seeding 50 products across 7 suppliers (50 is not a multiple of 7)
        Then: The demo user exists and every product was bought at least once
        """
        call_command('seed_data', products=50, suppliers=7, stdout=StringIO())

        demo = get_user_model().objects.get(username='demo123')
        self.assertTrue(demo.check_password('Prueba12#'))
        self.assertEqual(Supplier.objects.count(), 7)
        self.assertEqual(Product.objects.count(), 50)
        self.assertEqual(Purchase.objects.count(), 7)
        self.assertFalse(Product.objects.filter(stock__lte=0).exists())
        self.assertFalse(Product.objects.filter(purchase_items__isnull=True).exists())

    def test_clear_removes_previous_data(self):
        call_command('seed_data', products=10, suppliers=2, stdout=StringIO())
        create_sale({
            'customer_name': 'Walk-in customer',
            'items': [{'product': Product.objects.first(), 'quantity': 1, 'unit_price': Decimal('1.00')}],
        })

        call_command('seed_data', '--clear', products=5, suppliers=1, stdout=StringIO())

        self.assertEqual(Sale.objects.count(), 0)
        self.assertEqual(Product.objects.count(), 5)
        self.assertEqual(Purchase.objects.count(), 1)
        self.assertEqual(get_user_model().objects.filter(username='demo123').count(), 1)


class MigrationsTestCase(TestCase):
    """The shipped migrations match the current models."""

    def test_no_pending_model_changes(self):
        out = StringIO()

        try:
            call_command('makemigrations', '--check', '--dry-run', stdout=out, stderr=out)
        except SystemExit:
            self.fail(f"Models have changes without a migration:\n{out.getvalue()}")
