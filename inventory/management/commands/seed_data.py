"""
Management command to seed the document store with sample billing data.

Generates:
- products with stock quantities
- cash and credit bills with line items (mixed field spellings)
- manual sold product entries and product returns
- a super admin user profile for local testing

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing documents first
    python manage.py seed_data --admin-uid <firebase uid>
"""
import random
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from documents.models import Document
from inventory.records import CASH_BILLS, CREDIT_BILLS, PRODUCT_RETURNS, PRODUCTS, SOLD_PRODUCTS
from inventory.serializers import VALID_DEPARTMENTS

SEEDED_COLLECTIONS = [PRODUCTS, CASH_BILLS, CREDIT_BILLS, SOLD_PRODUCTS, PRODUCT_RETURNS, 'users']

CATALOG = [
    ('Fridge', 15000), ('Washing Machine', 18000), ('AC', 32000), ('AC Remote', 450),
    ('LED TV 43"', 27000), ('Microwave Oven', 8500), ('Water Purifier', 12000),
    ('Ceiling Fan', 2400), ('Table Fan', 1600), ('Mixer Grinder', 3200),
    ('Induction Cooktop', 2800), ('Electric Kettle', 1100), ('Iron Box', 900),
    ('Room Heater', 2100), ('Geyser 15L', 7600), ('Vacuum Cleaner', 6400),
    ('Air Cooler', 9200), ('Chimney', 14500), ('Dishwasher', 31000), ('Stabilizer', 2600),
]


class Command(BaseCommand):
    help = 'Seed the document store with sample products, bills, sold products and returns'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear seeded collections before seeding',
        )
        parser.add_argument(
            '--bills',
            type=int,
            default=60,
            help='Number of cash and credit bills to create (default: 60)',
        )
        parser.add_argument(
            '--manual-sales',
            type=int,
            default=25,
            help='Number of manual sold product entries (default: 25)',
        )
        parser.add_argument(
            '--admin-uid',
            default='local-super-admin',
            help='Identity provider uid for the seeded super admin profile',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing documents...')
            deleted, _ = Document.objects.filter(collection__in=SEEDED_COLLECTIONS).delete()
            self.stdout.write(self.style.WARNING(f'Deleted {deleted} documents.'))

        self.stdout.write('Starting document seeding...')

        with transaction.atomic():
            products = self._create_products()
            self._create_bills(options['bills'], products)
            self._create_manual_sales(options['manual_sales'], products)
            self._create_returns(products)
            self._create_admin(options['admin_uid'])

        self.stdout.write(self.style.SUCCESS('Document seeding completed successfully!'))

    def _stamp(self, days_ago=0):
        return (timezone.now() - timedelta(days=days_ago, minutes=random.randint(0, 1439))).isoformat()

    def _create_products(self):
        """Create catalog products with item codes P1..Pn."""
        products = []
        for index, (name, price) in enumerate(CATALOG, start=1):
            products.append({
                'itemCode': f'P{index}',
                'itemName': name,
                'hsn': f'8{random.randint(400, 599)}',
                'gst': random.choice([5, 12, 18, 28]),
                'unitPrice': price,
                'quantity': random.randint(0, 40),
                'department': random.choice(VALID_DEPARTMENTS),
                'createdAt': self._stamp(days_ago=random.randint(60, 120)),
            })

        Document.objects.bulk_create([Document(collection=PRODUCTS, data=body) for body in products])
        self.stdout.write(self.style.SUCCESS(f'Created {len(products)} products'))
        return products

    def _line_item(self, product):
        """Bill line item; alternates between the field spellings bills use."""
        quantity = random.randint(1, 3)
        if random.random() < 0.5:
            return {'code': product['itemCode'], 'itemname': product['itemName'],
                    'quantity': quantity, 'rate': product['unitPrice']}
        return {'itemCode': product['itemCode'], 'itemName': product['itemName'],
                'quantity': str(quantity), 'unitPrice': product['unitPrice']}

    def _create_bills(self, count, products):
        documents = []
        for i in range(count):
            collection = CASH_BILLS if i % 3 else CREDIT_BILLS
            prefix = 'CB' if collection == CASH_BILLS else 'CR'
            stamp = self._stamp(days_ago=random.randint(0, 45))
            documents.append(Document(collection=collection, data={
                'invoiceNumber': f'{prefix}-{1000 + i}',
                'billDate': stamp,
                'customerName': f'Customer {i + 1}',
                'items': [self._line_item(p) for p in random.sample(products, k=random.randint(1, 4))],
                'createdAt': stamp,
            }))

        Document.objects.bulk_create(documents)
        self.stdout.write(self.style.SUCCESS(f'Created {len(documents)} bills'))

    def _create_manual_sales(self, count, products):
        documents = []
        for _ in range(count):
            product = random.choice(products)
            documents.append(Document(collection=SOLD_PRODUCTS, data={
                'itemCode': product['itemCode'],
                'itemName': product['itemName'],
                'quantity': random.randint(1, 2),
                'unitPrice': product['unitPrice'],
                'gst': product['gst'],
                'source': 'ManualEntry',
                'soldDate': self._stamp(days_ago=random.randint(0, 60)),
            }))

        Document.objects.bulk_create(documents)
        self.stdout.write(self.style.SUCCESS(f'Created {len(documents)} manual sold products'))

    def _create_returns(self, products):
        documents = [
            Document(collection=PRODUCT_RETURNS, data={
                'itemCode': product['itemCode'],
                'itemName': product['itemName'],
                'quantity': 1,
                'reason': 'Damaged on delivery',
                'returnDate': self._stamp(days_ago=random.randint(0, 30)),
            })
            for product in random.sample(products, k=4)
        ]
        Document.objects.bulk_create(documents)
        self.stdout.write(self.style.SUCCESS(f'Created {len(documents)} product returns'))

    def _create_admin(self, uid):
        Document.objects.update_or_create(
            collection='users',
            key=uid,
            defaults={'data': {
                'email': 'admin@example.com',
                'name': 'Local Admin',
                'role': 'super_admin',
                'department': 'general',
                'isActive': True,
            }},
        )
        self.stdout.write(self.style.SUCCESS(f'Super admin profile ready for uid {uid}'))
