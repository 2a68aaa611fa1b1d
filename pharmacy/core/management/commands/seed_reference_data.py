"""
Management command to add the units, usage routes and top-level categories
a new pharmacy starts with, plus an initial administrator
"""
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from pharmacy.catalog.models import Category, Unit, UsageRoute

User = get_user_model()

UNITS = ['Viên', 'Vỉ', 'Hộp', 'Chai', 'Lọ', 'Ống', 'Gói', 'Miếng', 'Tuýp', 'Cái']

USAGE_ROUTES = [
    'Đường uống', 'Tiêm bắp', 'Tiêm tĩnh mạch', 'Bôi ngoài da', 'Nhỏ mắt',
    'Nhỏ mũi', 'Nhỏ tai', 'Ngậm', 'Hít', 'Đặt',
]

CATEGORIES = {
    'Thuốc kê đơn': ['Kháng sinh', 'Tim mạch', 'Tiểu đường'],
    'Thuốc không kê đơn': ['Giảm đau, hạ sốt', 'Ho, cảm'],
    'Thực phẩm chức năng': ['Vitamin', 'Collagen'],
    'Dụng cụ y tế': ['Băng gạc'],
    'Mỹ phẩm': ['Dưỡng da', 'Chăm sóc tóc'],
}


class Command(BaseCommand):
    help = "Adds default units, usage routes and categories, and creates an admin account if none exists"

    def add_arguments(self, parser):
        parser.add_argument('--admin-username', default='admin', help='Username of the initial administrator')
        parser.add_argument('--admin-password', default=None,
                            help='Password of the initial administrator (no admin is created without it)')

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS("=" * 80))
        self.stdout.write(self.style.SUCCESS("SEEDING REFERENCE DATA"))
        self.stdout.write(self.style.SUCCESS("=" * 80))

        with transaction.atomic():
            units_created = sum(Unit.objects.get_or_create(name=name)[1] for name in UNITS)
            routes_created = sum(UsageRoute.objects.get_or_create(name=name)[1] for name in USAGE_ROUTES)

            categories_created = 0
            for parent_name, children in CATEGORIES.items():
                parent, created = Category.objects.get_or_create(name=parent_name, parent=None)
                categories_created += created
                for child_name in children:
                    categories_created += Category.objects.get_or_create(name=child_name, parent=parent)[1]

        self.stdout.write(f"Units created: {units_created} (total {Unit.objects.count()})")
        self.stdout.write(f"Usage routes created: {routes_created} (total {UsageRoute.objects.count()})")
        self.stdout.write(f"Categories created: {categories_created} (total {Category.objects.count()})")

        username = options['admin_username']
        password = options['admin_password']
        if User.objects.filter(role='admin').exists():
            self.stdout.write(self.style.WARNING("  ⊘ Skipped admin account (an administrator already exists)"))
        elif not password:
            self.stdout.write(self.style.WARNING("  ⊘ Skipped admin account (pass --admin-password to create one)"))
        else:
            User.objects.create_user(username=username, password=password, role='admin',
                                     full_name='Administrator', is_staff=True)
            self.stdout.write(self.style.SUCCESS(f"  ✓ Created administrator: {username}"))

        self.stdout.write(self.style.SUCCESS("=" * 80))
