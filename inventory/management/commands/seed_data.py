"""
Management command to seed the database with sample data.

Generates:
- The demo user (demo123)
- Suppliers
- Products with SKUs, prices and minimum stock
- One opening purchase per supplier, so products start with stock

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from inventory.models import Product, Supplier
from purchases.services import create_purchase

DEMO_USERNAME = 'demo123'
DEMO_PASSWORD = 'Prueba12#'


class Command(BaseCommand):
    help = 'Seed the database with the demo user, suppliers, products and opening stock'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing catalog, purchase and sale data before seeding',
        )
        parser.add_argument(
            '--products',
            type=int,
            default=50,
            help='Number of products to create (default: 50)',
        )
        parser.add_argument(
            '--suppliers',
            type=int,
            default=5,
            help='Number of suppliers to create (default: 5)',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        self._create_demo_user()
        with transaction.atomic():
            suppliers = self._create_suppliers(options['suppliers'])
            products = self._create_products(options['products'])
            self._create_opening_purchases(suppliers, products)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        """Clear all catalog, purchase and sale data."""
        from purchases.models import Purchase, PurchaseItem
        from sales.models import Sale, SaleItem

        SaleItem.objects.all().delete()
        Sale.objects.all().delete()
        PurchaseItem.objects.all().delete()
        Purchase.objects.all().delete()
        Product.objects.all().delete()
        Supplier.objects.all().delete()

        self.stdout.write(self.style.WARNING('All existing data cleared.'))

    def _create_demo_user(self):
        """Create or keep the demo login."""
        User = get_user_model()
        user, created = User.objects.get_or_create(
            username=DEMO_USERNAME,
            defaults={'first_name': 'Demo', 'last_name': 'User'}
        )
        if created:
            user.set_password(DEMO_PASSWORD)
            user.save()
            self.stdout.write(f'  Created demo user: {DEMO_USERNAME}')
        else:
            self.stdout.write(f'  Demo user {DEMO_USERNAME} already exists')

    def _create_suppliers(self, count):
        """Create sample suppliers with unique tax ids."""
        company_names = [
            'Distribuidora Andina', 'Repuestos del Norte', 'Importaciones Lima',
            'Comercial Pacífico', 'Suministros Sur', 'Autopartes Central',
            'Ferretería Industrial', 'Tecnología Integral'
        ]

        suppliers = []
        for i in range(count):
            name = company_names[i % len(company_names)]
            if i >= len(company_names):
                name = f"{name} {i // len(company_names) + 1}"
            supplier, created = Supplier.objects.get_or_create(
                name=name,
                defaults={
                    'tax_id': f"20{random.randint(100000000, 999999999)}",
                    'city': random.choice(['Lima', 'Arequipa', 'Trujillo', 'Cusco']),
                }
            )
            suppliers.append(supplier)
            if created:
                self.stdout.write(f'  Created supplier: {name}')

        self.stdout.write(self.style.SUCCESS(f'Created {len(suppliers)} suppliers'))
        return suppliers

    def _create_products(self, count):
        """Create sample products with realistic data."""
        product_templates = {
            'Filters': ['Oil Filter', 'Air Filter', 'Fuel Filter', 'Cabin Filter'],
            'Brakes': ['Brake Pad Set', 'Brake Disc', 'Brake Fluid DOT4'],
            'Electrical': ['Spark Plug', 'Battery 12V', 'Headlight Bulb H4', 'Fuse Kit'],
            'Lubricants': ['Engine Oil 5W-30', 'Gear Oil 75W-90', 'Grease Cartridge'],
            'Suspension': ['Shock Absorber', 'Stabilizer Link', 'Ball Joint'],
        }
        brands = ['Bosch', 'Denso', 'NGK', 'Mann', 'Valeo', 'Castrol', 'Monroe']
        presentations = ['Unit', 'Box x4', 'Gallon', 'Liter', 'Kit']

        existing_skus = set(Product.objects.values_list('sku', flat=True))
        products = []

        self.stdout.write(f'Creating {count} products...')

        for i in range(count):
            category = random.choice(list(product_templates))
            base_name = random.choice(product_templates[category])
            brand = random.choice(brands)

            sku = f"{category[:3].upper()}-{i + 1:05d}"
            if sku in existing_skus:
                continue
            existing_skus.add(sku)

            # Sale price 20-60% above cost
            cost = Decimal(str(round(random.uniform(5, 300), 2)))
            margin = Decimal(str(round(random.uniform(1.2, 1.6), 2)))

            products.append(Product(
                sku=sku,
                name=f"{base_name} {brand}",
                category=category,
                brand=brand,
                presentation=random.choice(presentations),
                oem_code=f"OEM{random.randint(10000, 99999)}" if random.random() > 0.3 else None,
                purchase_price=cost,
                sale_price=(cost * margin).quantize(Decimal('0.01')),
                min_stock=random.randint(2, 10),
            ))

        Product.objects.bulk_create(products)

        products = list(Product.objects.all())
        self.stdout.write(self.style.SUCCESS(f'Catalog holds {len(products)} products'))
        return products

    def _create_opening_purchases(self, suppliers, products):
        """Register one purchase per supplier so stock is booked like any other purchase."""
        if not suppliers or not products:
            return

        shuffled = random.sample(products, k=len(products))

        # Deal products round-robin so every product gets opening stock
        for index, supplier in enumerate(suppliers):
            batch = shuffled[index::len(suppliers)]
            if not batch:
                continue
            purchase = create_purchase({
                'supplier': supplier,
                'date': timezone.localdate(),
                'document_type': 'invoice',
                'series': 'F001',
                'number': f"{index + 1:06d}",
                'currency': 'PEN',
                'items': [
                    {
                        'product': product,
                        'quantity': random.randint(5, 60),
                        'unit_cost': product.purchase_price,
                    }
                    for product in batch
                ],
            })
            self.stdout.write(f'  Opening purchase #{purchase.id} with {len(batch)} items')
