"""
Tests for purchase stock reconciliation and the purchase API.

Test Cases:
1. Creating a purchase adds stock and records the unit cost
2. Editing lines applies only the quantity delta
3. Changing a line's product moves stock between products
4. Removed lines are reversed, unknown line ids are added
5. Deleting a purchase reverses all its lines
6. Failures roll the whole write back
7. Listing filters, sorting and pagination
"""
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db.models import Sum
from django.test import TestCase
from rest_framework.test import APITestCase

from core.exceptions import InventoryValidationError, RecordNotFoundError
from inventory.models import Product, Supplier
from purchases.models import Purchase, PurchaseItem
from purchases.services import create_purchase, delete_purchase, get_purchase, update_purchase


def make_product(sku, stock=0, **kwargs):
    defaults = {
        'name': f'Product {sku}',
        'category': 'Filters',
        'sale_price': Decimal('20.00'),
    }
    defaults.update(kwargs)
    return Product.objects.create(sku=sku, stock=stock, **defaults)


def line(product, quantity, unit_cost='10.00', detail_id=None):
    item = {'product': product, 'quantity': quantity, 'unit_cost': Decimal(unit_cost)}
    if detail_id is not None:
        item['detail_id'] = detail_id
    return item


class PurchaseStockTestCase(TestCase):
    """Test cases for purchase stock bookkeeping."""

    def setUp(self):
        self.supplier = Supplier.objects.create(name='Distribuidora Andina', tax_id='20123456789')
        self.product_a = make_product('A-1')
        self.product_b = make_product('B-1', stock=10)
        self.product_c = make_product('C-1')

    def purchase_data(self, items, **kwargs):
        data = {'supplier': self.supplier, 'date': date(2025, 3, 14), 'items': items}
        data.update(kwargs)
        return data

    def assertStock(self, product, expected):
        product.refresh_from_db()
        self.assertEqual(product.stock, expected)

    def test_create_adds_stock_and_total(self):
        """
        Given: Product A with no stock and product B with 10 units
        When: Purchasing 5 of A at 10.00 and 2 of B at 4.50
        Then: Stock rises by the purchased quantities and total is 59.00
        """
        purchase = create_purchase(self.purchase_data([
            line(self.product_a, 5, '10.00'),
            line(self.product_b, 2, '4.50'),
        ]))

        self.assertEqual(purchase.total, Decimal('59.00'))
        self.assertEqual(purchase.items.count(), 2)
        self.assertStock(self.product_a, 5)
        self.assertStock(self.product_b, 12)

    def test_create_records_last_unit_cost(self):
        create_purchase(self.purchase_data([line(self.product_a, 1, '7.25')]))

        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.purchase_price, Decimal('7.25'))

    def test_edit_quantity_up_adds_difference(self):
        """Editing a line from 5 to 8 units adds exactly 3 to stock."""
        purchase = create_purchase(self.purchase_data([line(self.product_b, 5)]))
        item = purchase.items.get()
        self.assertStock(self.product_b, 15)

        update_purchase(purchase.id, self.purchase_data([
            line(self.product_b, 8, detail_id=item.id)
        ]))

        self.assertStock(self.product_b, 18)
        item.refresh_from_db()
        self.assertEqual(item.quantity, 8)

    def test_edit_quantity_down_removes_difference(self):
        """Editing a line from 5 to 2 units removes exactly 3 from stock."""
        purchase = create_purchase(self.purchase_data([line(self.product_b, 5)]))
        item = purchase.items.get()

        update_purchase(purchase.id, self.purchase_data([
            line(self.product_b, 2, detail_id=item.id)
        ]))

        self.assertStock(self.product_b, 12)

    def test_edit_product_change_moves_stock(self):
        """
        Given: A purchase line of 4 units of A
        When: The same line is switched to product B
        Then: A loses 4, B gains 4, and the line row is kept
        """
        purchase = create_purchase(self.purchase_data([line(self.product_a, 4)]))
        item = purchase.items.get()

        update_purchase(purchase.id, self.purchase_data([
            line(self.product_b, 4, detail_id=item.id)
        ]))

        self.assertStock(self.product_a, 0)
        self.assertStock(self.product_b, 14)
        item.refresh_from_db()
        self.assertEqual(item.product_id, self.product_b.id)

    def test_edit_adds_and_removes_lines(self):
        purchase = create_purchase(self.purchase_data([
            line(self.product_a, 3),
            line(self.product_b, 2),
        ]))
        item_a = purchase.items.get(product=self.product_a)
        item_b = purchase.items.get(product=self.product_b)

        updated = update_purchase(purchase.id, self.purchase_data([
            line(self.product_a, 3, '10.00', detail_id=item_a.id),
            line(self.product_c, 6, '2.00'),
        ]))

        self.assertStock(self.product_a, 3)
        self.assertStock(self.product_b, 10)
        self.assertStock(self.product_c, 6)
        self.assertFalse(PurchaseItem.objects.filter(pk=item_b.pk).exists())
        self.assertEqual(updated.items.count(), 2)
        self.assertEqual(updated.total, Decimal('42.00'))

    def test_unknown_detail_id_is_treated_as_new_line(self):
        purchase = create_purchase(self.purchase_data([line(self.product_a, 3)]))
        old_item = purchase.items.get()

        update_purchase(purchase.id, self.purchase_data([
            line(self.product_a, 3, detail_id=99999)
        ]))

        self.assertStock(self.product_a, 3)
        new_item = purchase.items.get()
        self.assertNotEqual(new_item.pk, old_item.pk)

    def test_delete_reverses_every_line(self):
        """
        Given: A purchase of 4 units of A and 2 units of B
        When: The purchase is deleted
        Then: A drops by 4, B by 2, and the purchase and its lines are gone
        """
        purchase = create_purchase(self.purchase_data([
            line(self.product_a, 4),
            line(self.product_b, 2),
        ]))

        delete_purchase(purchase.id)

        self.assertStock(self.product_a, 0)
        self.assertStock(self.product_b, 10)
        self.assertFalse(Purchase.objects.filter(pk=purchase.id).exists())
        self.assertEqual(PurchaseItem.objects.count(), 0)

    def test_stock_follows_persisted_lines(self):
        """Stock always equals the quantity held by the persisted lines of a fresh product."""

        def persisted_quantity():
            total = PurchaseItem.objects.filter(product=self.product_c).aggregate(q=Sum('quantity'))['q']
            return total or 0

        first = create_purchase(self.purchase_data([line(self.product_c, 7)]))
        second = create_purchase(self.purchase_data([line(self.product_c, 2), line(self.product_a, 1)]))
        self.assertStock(self.product_c, persisted_quantity())

        first_item = first.items.get()
        update_purchase(first.id, self.purchase_data([
            line(self.product_c, 3, detail_id=first_item.id),
            line(self.product_c, 4),
        ]))
        self.assertStock(self.product_c, persisted_quantity())

        update_purchase(second.id, self.purchase_data([line(self.product_a, 1)]))
        self.assertStock(self.product_c, persisted_quantity())

        delete_purchase(first.id)
        self.assertStock(self.product_c, persisted_quantity())
        self.assertStock(self.product_c, 0)

    def test_update_rolls_back_on_failure(self):
        """A failure after stock was moved leaves stock and lines untouched."""
        purchase = create_purchase(self.purchase_data([line(self.product_a, 5)]))
        item = purchase.items.get()

        with patch.object(Purchase, 'save', side_effect=RuntimeError('write failed')):
            with self.assertRaises(RuntimeError):
                update_purchase(purchase.id, self.purchase_data([
                    line(self.product_a, 9, detail_id=item.id),
                    line(self.product_b, 3),
                ]))

        self.assertStock(self.product_a, 5)
        self.assertStock(self.product_b, 10)
        item.refresh_from_db()
        self.assertEqual(item.quantity, 5)
        self.assertEqual(purchase.items.count(), 1)

    def test_update_unknown_purchase(self):
        with self.assertRaises(RecordNotFoundError):
            update_purchase(99999, self.purchase_data([line(self.product_a, 1)]))

    def test_delete_unknown_purchase(self):
        with self.assertRaises(RecordNotFoundError):
            delete_purchase(99999)

    def test_get_purchase_loads_lines(self):
        purchase = create_purchase(self.purchase_data([line(self.product_a, 2)]))

        loaded = get_purchase(purchase.id)

        self.assertEqual(loaded.supplier, self.supplier)
        self.assertEqual([item.quantity for item in loaded.items.all()], [2])

    def test_validation_error_empty_items(self):
        with self.assertRaises(InventoryValidationError) as context:
            create_purchase(self.purchase_data([]))

        self.assertIn('at least one item', str(context.exception).lower())

    def test_validation_error_invalid_quantity(self):
        with self.assertRaises(InventoryValidationError):
            create_purchase(self.purchase_data([line(self.product_a, 0)]))
        with self.assertRaises(InventoryValidationError):
            create_purchase(self.purchase_data([line(self.product_a, 2 ** 31)]))

        self.assertEqual(Purchase.objects.count(), 0)
        self.assertStock(self.product_a, 0)

    def test_create_with_new_supplier(self):
        data = self.purchase_data([line(self.product_a, 1)])
        del data['supplier']
        data['new_supplier'] = {'name': 'Repuestos del Norte', 'tax_id': '20555555555'}

        purchase = create_purchase(data)

        self.assertEqual(purchase.supplier.name, 'Repuestos del Norte')
        self.assertTrue(Supplier.objects.filter(tax_id='20555555555').exists())

    def test_create_without_supplier(self):
        data = self.purchase_data([line(self.product_a, 1)])
        del data['supplier']

        with self.assertRaises(InventoryValidationError):
            create_purchase(data)

        self.assertEqual(Purchase.objects.count(), 0)
        self.assertStock(self.product_a, 0)


class PurchaseAPITestCase(APITestCase):
    """Test cases for the purchase endpoints."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='clerk', password='s3cret-pass')
        self.client.force_login(self.user)
        self.supplier = Supplier.objects.create(name='Distribuidora Andina', tax_id='20123456789')
        self.other_supplier = Supplier.objects.create(name='Comercial Pacifico', tax_id='20987654321')
        self.product_a = make_product('A-1')
        self.product_b = make_product('B-1', stock=10)

    def create(self, items, supplier=None, **kwargs):
        data = {
            'supplier': supplier or self.supplier,
            'date': kwargs.pop('purchase_date', date(2025, 3, 14)),
            'items': items,
        }
        data.update(kwargs)
        return create_purchase(data)

    def test_create_purchase(self):
        response = self.client.post('/api/purchases/', {
            'supplier_id': self.supplier.id,
            'date': '2025-03-14',
            'document_type': 'invoice',
            'series': 'F001',
            'number': '000123',
            'items': [
                {'product_id': self.product_a.id, 'quantity': 5, 'unit_cost': '12.50'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['total'], '62.50')
        self.assertEqual(response.data['supplier_id'], self.supplier.id)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock, 5)

    def test_create_purchase_with_new_supplier(self):
        response = self.client.post('/api/purchases/', {
            'new_supplier': {'name': 'Suministros Sur', 'tax_id': '20111111111'},
            'date': '2025-03-14',
            'items': [{'product_id': self.product_a.id, 'quantity': 1, 'unit_cost': '3.00'}],
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertTrue(Supplier.objects.filter(name='Suministros Sur').exists())

    def test_create_requires_supplier(self):
        response = self.client.post('/api/purchases/', {
            'date': '2025-03-14',
            'items': [{'product_id': self.product_a.id, 'quantity': 1, 'unit_cost': '3.00'}],
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(Purchase.objects.count(), 0)

    def test_create_rejects_bad_date(self):
        response = self.client.post('/api/purchases/', {
            'supplier_id': self.supplier.id,
            'date': '14/03/2025',
            'items': [{'product_id': self.product_a.id, 'quantity': 1, 'unit_cost': '3.00'}],
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('date', response.data)

    def test_create_rejects_invalid_items(self):
        for item in (
            {'product_id': self.product_a.id, 'quantity': 0, 'unit_cost': '3.00'},
            {'product_id': self.product_a.id, 'quantity': 2 ** 31, 'unit_cost': '3.00'},
            {'product_id': self.product_a.id, 'quantity': 1, 'unit_cost': '-1.00'},
            {'product_id': 99999, 'quantity': 1, 'unit_cost': '3.00'},
        ):
            response = self.client.post('/api/purchases/', {
                'supplier_id': self.supplier.id,
                'date': '2025-03-14',
                'items': [item],
            }, format='json')
            self.assertEqual(response.status_code, 400, item)

        response = self.client.post('/api/purchases/', {
            'supplier_id': self.supplier.id,
            'date': '2025-03-14',
            'items': [],
        }, format='json')
        self.assertEqual(response.status_code, 400)

        self.assertEqual(Purchase.objects.count(), 0)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock, 0)

    def test_detail_total_matches_lines(self):
        purchase = self.create([line(self.product_a, 3, '2.35'), line(self.product_b, 4, '10.10')])

        response = self.client.get(f'/api/purchases/{purchase.id}/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['supplier']['tax_id'], '20123456789')
        subtotals = [Decimal(item['subtotal']) for item in response.data['items']]
        for item in response.data['items']:
            self.assertEqual(
                Decimal(item['subtotal']),
                Decimal(item['unit_cost']) * item['quantity']
            )
        self.assertEqual(Decimal(response.data['total']), sum(subtotals))
        self.assertEqual(response.data['total'], '47.45')

    def test_put_reconciles_lines(self):
        purchase = self.create([line(self.product_a, 5)])
        item = purchase.items.get()

        response = self.client.put(f'/api/purchases/{purchase.id}/', {
            'date': '2025-03-15',
            'notes': 'corrected quantities',
            'items': [
                {'detail_id': item.id, 'product_id': self.product_a.id, 'quantity': 8, 'unit_cost': '10.00'},
                {'product_id': self.product_b.id, 'quantity': 1, 'unit_cost': '1.00'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['date'], '2025-03-15')
        self.assertEqual(response.data['notes'], 'corrected quantities')
        self.assertEqual(response.data['total'], '81.00')
        self.assertEqual(len(response.data['items']), 2)
        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_a.stock, 8)
        self.assertEqual(self.product_b.stock, 11)

    def test_put_rejects_duplicate_detail_ids(self):
        purchase = self.create([line(self.product_a, 5)])
        item = purchase.items.get()

        response = self.client.put(f'/api/purchases/{purchase.id}/', {
            'date': '2025-03-15',
            'items': [
                {'detail_id': item.id, 'product_id': self.product_a.id, 'quantity': 1, 'unit_cost': '1.00'},
                {'detail_id': item.id, 'product_id': self.product_a.id, 'quantity': 2, 'unit_cost': '1.00'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock, 5)

    def test_delete_purchase(self):
        purchase = self.create([line(self.product_a, 4), line(self.product_b, 2)])

        response = self.client.delete(f'/api/purchases/{purchase.id}/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {'ok': True})
        self.assertEqual(self.client.get(f'/api/purchases/{purchase.id}/').status_code, 404)
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_b.stock, 10)

    def test_unknown_purchase_is_not_found(self):
        self.assertEqual(self.client.get('/api/purchases/99999/').status_code, 404)
        self.assertEqual(self.client.delete('/api/purchases/99999/').status_code, 404)

    def test_list_second_page(self):
        """15 matching purchases, page 2 of size 10: 5 rows and 2 pages."""
        for number in range(15):
            self.create([line(self.product_a, 1)], number=f'{number:04d}')

        response = self.client.get('/api/purchases/', {'page': 2, 'page_size': 10})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total'], 15)
        self.assertEqual(response.data['page'], 2)
        self.assertEqual(response.data['page_size'], 10)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(len(response.data['data']), 5)

    def test_list_date_range_is_inclusive(self):
        self.create([line(self.product_a, 1)], purchase_date=date(2025, 3, 1))
        self.create([line(self.product_a, 1)], purchase_date=date(2025, 3, 10))
        self.create([line(self.product_a, 1)], purchase_date=date(2025, 3, 20))

        response = self.client.get('/api/purchases/', {'from': '2025-03-01', 'to': '2025-03-10'})

        self.assertEqual(response.data['total'], 2)
        self.assertEqual(
            [row['date'] for row in response.data['data']],
            ['2025-03-10', '2025-03-01']
        )

    def test_list_search_matches_supplier_tax_id(self):
        self.create([line(self.product_a, 1)])
        self.create([line(self.product_a, 1)], supplier=self.other_supplier)

        response = self.client.get('/api/purchases/', {'q': '2098765'})

        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['data'][0]['supplier']['name'], 'Comercial Pacifico')
        self.assertEqual(response.data['data'][0]['item_count'], 1)

    def test_list_sort_by_total_ascending(self):
        self.create([line(self.product_a, 3, '10.00')])
        self.create([line(self.product_a, 1, '10.00')])
        self.create([line(self.product_a, 2, '10.00')])

        response = self.client.get('/api/purchases/', {'sort': 'total', 'dir': 'asc'})

        self.assertEqual(
            [row['total'] for row in response.data['data']],
            ['10.00', '20.00', '30.00']
        )

    def test_list_malformed_parameters_fall_back_to_defaults(self):
        self.create([line(self.product_a, 1)])

        response = self.client.get('/api/purchases/', {
            'page': 'abc', 'page_size': 'xyz', 'sort': 'nope', 'dir': 'sideways', 'from': '2025-13-45'
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['page'], 1)
        self.assertEqual(response.data['page_size'], 10)
        self.assertEqual(response.data['total'], 1)

    def test_list_page_size_is_clamped(self):
        response = self.client.get('/api/purchases/', {'pageSize': 500})
        self.assertEqual(response.data['page_size'], 50)

        response = self.client.get('/api/purchases/', {'page_size': 0, 'page': -3})
        self.assertEqual(response.data['page_size'], 1)
        self.assertEqual(response.data['page'], 1)
        self.assertEqual(response.data['total_pages'], 1)


class PurchaseAdminTestCase(TestCase):
    """The purchase changelist shows the line count of each purchase."""

    def setUp(self):
        admin_user = get_user_model().objects.create_superuser(
            username='admin', email='admin@example.com', password='s3cret-pass'
        )
        self.client.force_login(admin_user)
        supplier = Supplier.objects.create(name='Distribuidora Andina')
        create_purchase({
            'supplier': supplier,
            'date': date(2025, 3, 14),
            'items': [line(make_product('A-1'), 2), line(make_product('B-1'), 1)],
        })

    def test_changelist_shows_item_count(self):
        response = self.client.get('/admin/purchases/purchase/')

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, '<td class="field-item_count">2</td>', html=True)
