"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from pharmacy.locations.models import Cabinet, Row, Compartment
from pharmacy.catalog.models import Category, Unit, UsageRoute, Product, ProductUnit
from pharmacy.inventory.models import Inventory
from pharmacy.parties.models import Supplier
from pharmacy.purchasing.models import PurchaseOrder, PurchaseOrderItem
from pharmacy.pos.models import Invoice, InvoiceItem
from decimal import Decimal
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='staff', full_name=None):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            full_name=full_name or f'Test {username}'
        )

    @staticmethod
    def create_admin(username=None, password='testpass123'):
        """Create a user with the admin role"""
        return TestDataFactory.create_user(username=username, password=password, role='admin')

    @staticmethod
    def create_compartment(name=None, row=None):
        """Create a compartment, with its row and cabinet when none is given"""
        if not row:
            cabinet = Cabinet.objects.create(name=f'Cabinet_{TestDataFactory.random_string(4)}')
            row = Row.objects.create(cabinet=cabinet, name=f'Row_{TestDataFactory.random_string(4)}')
        return Compartment.objects.create(row=row, name=name or f'Box_{TestDataFactory.random_string(4)}')

    @staticmethod
    def create_category(name=None, parent=None, description=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            name=name,
            parent=parent,
            description=description or f'Test category {name}'
        )

    @staticmethod
    def create_unit(name=None):
        """Create a test unit"""
        if not name:
            name = f'Unit_{TestDataFactory.random_string(6)}'
        return Unit.objects.create(name=name)

    @staticmethod
    def create_usage_route(name=None):
        if not name:
            name = f'Route_{TestDataFactory.random_string(6)}'
        return UsageRoute.objects.create(name=name)

    @staticmethod
    def create_product(name=None, code=None, category=None, base_unit=None,
                       cost_price=None, selling_price=None, compartment=None):
        """Create a test product together with its base unit (factor 1)"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not code:
            code = f'SP{TestDataFactory.random_string(8).upper()}'
        if not category:
            category = TestDataFactory.create_category()
        if not base_unit:
            base_unit = TestDataFactory.create_unit()

        product = Product.objects.create(
            name=name,
            code=code,
            category=category,
            base_unit=base_unit,
            compartment=compartment
        )
        ProductUnit.objects.create(
            product=product,
            unit=base_unit,
            conversion_factor=Decimal('1'),
            cost_price=cost_price if cost_price is not None else Decimal('1000.00'),
            selling_price=selling_price if selling_price is not None else Decimal('1500.00'),
            is_base_unit=True
        )
        return product

    @staticmethod
    def create_product_unit(product, unit=None, conversion_factor=None, cost_price=None, selling_price=None):
        """Attach an extra (non-base) unit to a product"""
        if not unit:
            unit = TestDataFactory.create_unit()
        return ProductUnit.objects.create(
            product=product,
            unit=unit,
            conversion_factor=conversion_factor if conversion_factor is not None else Decimal('10'),
            cost_price=cost_price if cost_price is not None else Decimal('9000.00'),
            selling_price=selling_price if selling_price is not None else Decimal('14000.00'),
            is_base_unit=False
        )

    @staticmethod
    def create_lot(product, product_unit=None, quantity=None, batch_number=None, expiry_date=None):
        """Create an inventory lot"""
        if not product_unit:
            product_unit = product.get_base_product_unit()
        return Inventory.objects.create(
            product=product,
            product_unit=product_unit,
            quantity=quantity if quantity is not None else Decimal('100'),
            batch_number=batch_number,
            expiry_date=expiry_date
        )

    @staticmethod
    def create_supplier(name=None, phone=None, email=None):
        """Create a test supplier"""
        if not name:
            name = f'Supplier_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'09{random.randint(10000000, 99999999)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Supplier.objects.create(
            name=name,
            phone=phone,
            email=email
        )

    @staticmethod
    def create_purchase_order(user=None, supplier=None, order_date=None, payment_status='unpaid',
                              payment_method='cash', code=None):
        """Create a purchase order header without items or stock movements"""
        if not supplier:
            supplier = TestDataFactory.create_supplier()
        return PurchaseOrder.objects.create(
            code=code or f'PO-TEST-{TestDataFactory.random_string(6).upper()}',
            supplier=supplier,
            user=user,
            order_date=order_date or timezone.localdate(),
            payment_status=payment_status,
            payment_method=payment_method
        )

    @staticmethod
    def create_purchase_order_item(purchase_order, product, product_unit=None, quantity=None, cost_price=None,
                                   batch_number=None, expiry_date=None):
        if not product_unit:
            product_unit = product.get_base_product_unit()
        item = PurchaseOrderItem.objects.create(
            purchase_order=purchase_order,
            product=product,
            product_unit=product_unit,
            quantity=quantity if quantity is not None else Decimal('10'),
            cost_price=cost_price if cost_price is not None else Decimal('1000.00'),
            batch_number=batch_number,
            expiry_date=expiry_date
        )
        purchase_order.recalculate_total()
        return item

    @staticmethod
    def create_invoice(user, product=None, quantity=None, unit_price=None, status='completed', invoice_date=None):
        """Create an invoice record directly, without touching stock or the ledger"""
        invoice = Invoice.objects.create(
            code=f'HDTEST{TestDataFactory.random_string(8).upper()}',
            user=user,
            status=status,
            invoice_date=invoice_date or timezone.now()
        )
        if product:
            product_unit = product.get_base_product_unit()
            quantity = quantity if quantity is not None else Decimal('1')
            unit_price = unit_price if unit_price is not None else product_unit.selling_price
            amount = quantity * unit_price
            InvoiceItem.objects.create(
                invoice=invoice,
                product=product,
                product_unit=product_unit,
                quantity=quantity,
                unit_price=unit_price,
                amount=amount
            )
            invoice.total_amount = amount
            invoice.final_amount = amount
            invoice.save(update_fields=['total_amount', 'final_amount'])
        return invoice


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
