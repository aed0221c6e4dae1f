from decimal import Decimal

import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.CharField(help_text='Unique stock keeping unit', max_length=64, unique=True)),
                ('name', models.CharField(db_index=True, help_text='Product name for display and search', max_length=200)),
                ('category', models.CharField(db_index=True, help_text='Free-text product category', max_length=100)),
                ('brand', models.CharField(blank=True, max_length=100, null=True)),
                ('presentation', models.CharField(blank=True, max_length=100, null=True)),
                ('specification', models.CharField(blank=True, max_length=200, null=True)),
                ('oem_code', models.CharField(blank=True, help_text='Original equipment manufacturer code', max_length=100, null=True)),
                ('purchase_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Last unit cost paid to a supplier', max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('sale_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Unit price charged to customers', max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('stock', models.IntegerField(default=0, help_text='Current stock quantity')),
                ('min_stock', models.PositiveIntegerField(default=0, help_text='Threshold for low stock alerts')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True)),
            ],
            options={
                'verbose_name': 'Product',
                'verbose_name_plural': 'Products',
                'ordering': ['-updated_at'],
                'indexes': [
                    models.Index(fields=['category', 'name'], name='product_category_name_idx'),
                    models.Index(fields=['stock'], name='product_stock_idx'),
                    models.Index(fields=['sale_price'], name='product_sale_price_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Supplier',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, help_text='Supplier business name', max_length=200)),
                ('tax_id', models.CharField(blank=True, db_index=True, help_text='Taxpayer identification number', max_length=20, null=True)),
                ('phone', models.CharField(blank=True, max_length=50, null=True)),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('city', models.CharField(blank=True, max_length=100, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Supplier',
                'verbose_name_plural': 'Suppliers',
                'ordering': ['name'],
            },
        ),
    ]
