"""
Management command to add starter categories and demo products
"""
from decimal import Decimal

from django.core.management.base import BaseCommand

from storefront.catalog.models import Category, Product
from storefront.core.cache_signals import suspend_cache_signals
from storefront.core.cache_utils import invalidate_catalog_reads


DEFAULT_CATEGORIES = [
    ('Shirts', 'Shirts and blouses'),
    ('Trousers', 'Trousers, jeans and shorts'),
    ('Dresses', ''),
    ('Accessories', 'Bags, belts and more'),
    ('Shoes', ''),
]

DEMO_PRODUCTS = [
    {'name': 'Blue Shirt', 'price': Decimal('59.90'), 'stock': 25, 'category': 'Shirts', 'size': 'M', 'color': 'Blue'},
    {'name': 'Black Trousers', 'price': Decimal('89.90'), 'stock': 8, 'category': 'Trousers', 'size': '40', 'color': 'Black'},
    {'name': 'Leather Belt', 'price': Decimal('39.00'), 'stock': 3, 'category': 'Accessories', 'color': 'Brown'},
    {'name': 'Summer Dress', 'price': Decimal('129.00'), 'stock': 12, 'category': 'Dresses', 'size': 'S', 'color': 'Yellow'},
]


class Command(BaseCommand):
    help = "Adds starter categories and, optionally, demo products"

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear all existing categories before adding new ones',
        )
        parser.add_argument(
            '--with-products',
            action='store_true',
            help='Also add demo products when the catalog is empty',
        )

    def handle(self, *args, **options):
        created_count = 0
        skipped_count = 0

        with suspend_cache_signals():
            if options['clear']:
                self.stdout.write(self.style.WARNING("Clearing all existing categories..."))
                Category.objects.all().delete()

            for name, description in DEFAULT_CATEGORIES:
                _, created = Category.objects.get_or_create(name=name, defaults={'description': description})
                if created:
                    created_count += 1
                    self.stdout.write(self.style.SUCCESS(f"  Created: {name}"))
                else:
                    skipped_count += 1
                    self.stdout.write(self.style.WARNING(f"  Skipped (already exists): {name}"))

            products_added = 0
            if options['with_products'] and not Product.objects.exists():
                for data in DEMO_PRODUCTS:
                    Product.objects.create(**data)
                    products_added += 1

        invalidate_catalog_reads()

        self.stdout.write(f"Categories Created: {created_count}")
        self.stdout.write(f"Categories Skipped (already exist): {skipped_count}")
        self.stdout.write(f"Demo Products Added: {products_added}")
        self.stdout.write(f"Total Categories in Database: {Category.objects.count()}")
