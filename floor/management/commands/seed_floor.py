from decimal import Decimal

from django.core.management.base import BaseCommand
from floor.models import MenuItem, Table, Tenant


class Command(BaseCommand):
    help = 'Seed the database with a demo tenant, its tables and menu'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete the demo tenant (and everything it owns) before seeding',
        )
        parser.add_argument(
            '--tenant',
            default='Demo Bistro',
            help='Name of the tenant to seed',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write(f"Clearing tenant {options['tenant']}...")
            Tenant.objects.filter(name=options['tenant']).delete()
            self.stdout.write(
                self.style.SUCCESS('Successfully cleared tenant')
            )

        tenant, _ = Tenant.objects.get_or_create(name=options['tenant'])

        for number in range(1, 7):
            Table.objects.get_or_create(tenant=tenant, name=f"T{number}")

        menu_items = [
            {"name": "Flat White", "price": "3.50", "station": MenuItem.BAR},
            {"name": "Iced Tea", "price": "3.00", "station": MenuItem.BAR},
            {"name": "Coca Cola", "price": "3.00", "station": MenuItem.BAR},
            {"name": "Caesar Salad", "price": "9.00", "station": MenuItem.COLD},
            {"name": "Pizza Margherita", "price": "12.00", "station": MenuItem.HOT},
            {"name": "Kids Meal", "price": "7.00", "station": MenuItem.HOT},
            {"name": "Chocolate Cake", "price": "4.50", "station": MenuItem.DESSERT},
        ]

        created_items = []
        for item_data in menu_items:
            item, created = MenuItem.objects.get_or_create(
                tenant=tenant,
                name=item_data['name'],
                defaults={
                    'price': Decimal(item_data['price']),
                    'station': item_data['station'],
                }
            )
            if created:
                created_items.append(item)
                self.stdout.write(f"Created: {item.name} - {item.price} ({item.station})")
            else:
                self.stdout.write(f"Already exists: {item.name}")

        self.stdout.write(
            self.style.SUCCESS(f'\nTotal new menu items created: {len(created_items)}')
        )

        self.stdout.write(f"\nTenant {tenant.name} (X-Tenant-Id: {tenant.pk})")
        self.stdout.write("-" * 50)
        for table in tenant.tables.all():
            self.stdout.write(f"Table ID: {table.id:2d} | {table.name:5s} | {table.status}")
        for item in tenant.menu_items.order_by('station', 'name'):
            self.stdout.write(
                f"Menu ID: {item.id:2d} | {item.name:20s} | {item.price:6} | {item.station}"
            )
