"""
Test suite for the point of sale
Tests: invoice creation with FEFO deduction, access rules, cancellation
"""
from datetime import timedelta
from decimal import Decimal
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.core.utils import CODE_ATTEMPTS, create_with_generated_code, integrity_error_response
from pharmacy.ledger.models import Transaction
from pharmacy.pos.models import Invoice
from pharmacy.pos.utils import generate_invoice_code


class InvoiceCodeTests(TestCase):
    def test_codes_follow_daily_sequence(self):
        today = timezone.localdate()
        prefix = f"HD{today.strftime('%Y%m%d')}"
        self.assertEqual(generate_invoice_code(), f'{prefix}0001')

        Invoice.objects.create(code=f'{prefix}0007')
        self.assertEqual(generate_invoice_code(), f'{prefix}0008')

    def test_previous_day_does_not_count(self):
        yesterday = timezone.localdate() - timedelta(days=1)
        Invoice.objects.create(code=f"HD{yesterday.strftime('%Y%m%d')}0003")
        self.assertTrue(generate_invoice_code().endswith('0001'))

    def test_taken_code_is_retried_with_next_one(self):
        Invoice.objects.create(code='HD-TAKEN')
        codes = iter(['HD-TAKEN', 'HD-FRESH'])

        invoice = create_with_generated_code(Invoice, lambda: next(codes))

        self.assertEqual(invoice.code, 'HD-FRESH')
        self.assertEqual(Invoice.objects.count(), 2)

    def test_code_collision_gives_up_after_attempts(self):
        Invoice.objects.create(code='HD-TAKEN')
        calls = []

        def always_taken():
            calls.append(1)
            return 'HD-TAKEN'

        with self.assertRaises(IntegrityError), transaction.atomic():
            create_with_generated_code(Invoice, always_taken)
        self.assertEqual(len(calls), CODE_ATTEMPTS)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_integrity_error_maps_to_readable_400(self):
        response = integrity_error_response(IntegrityError('UNIQUE constraint failed: pos_invoice.code'), 'invoice')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'A invoice with these values already exists')


class InvoiceAPITests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.staff = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient().authenticate_user(self.staff)

        self.product = TestDataFactory.create_product(selling_price=Decimal('1500'))
        self.base = self.product.get_base_product_unit()
        today = timezone.localdate()
        self.early_lot = TestDataFactory.create_lot(self.product, quantity=Decimal('5'), batch_number='A',
                                                    expiry_date=today + timedelta(days=30))
        self.late_lot = TestDataFactory.create_lot(self.product, quantity=Decimal('3'), batch_number='B',
                                                   expiry_date=today + timedelta(days=200))

    def sell(self, quantity, client=None, **overrides):
        payload = {
            'customer_name': 'Walk-in',
            'payment_method': 'cash',
            'items': [{'product': self.product.id, 'product_unit': self.base.id, 'quantity': str(quantity)}],
        }
        payload.update(overrides)
        return (client or self.client).post('/api/v1/invoices/', payload, format='json')

    def test_sale_deducts_fefo_and_records_income(self):
        response = self.sell(6)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        self.early_lot.refresh_from_db()
        self.late_lot.refresh_from_db()
        self.assertEqual(self.early_lot.quantity, Decimal('0'))
        self.assertEqual(self.late_lot.quantity, Decimal('2'))

        self.assertEqual(Decimal(response.data['total_amount']), Decimal('9000'))
        self.assertEqual(Decimal(response.data['final_amount']), Decimal('9000'))
        self.assertEqual(response.data['status'], 'completed')
        self.assertTrue(response.data['code'].startswith('HD'))

        allocations = response.data['items'][0]['allocations']
        self.assertEqual([entry[0] for entry in allocations], [self.early_lot.id, self.late_lot.id])
        self.assertEqual([Decimal(entry[1]) for entry in allocations], [Decimal('5'), Decimal('1')])

        income = Transaction.objects.get(invoice_id=response.data['id'])
        self.assertEqual(income.type, 'income')
        self.assertEqual(income.related_type, 'invoice')
        self.assertEqual(income.amount, Decimal('9000'))
        self.assertEqual(income.user, self.staff)

    def test_unit_price_override_and_discount(self):
        response = self.sell(2, discount='500', items=[
            {'product': self.product.id, 'product_unit': self.base.id, 'quantity': '2', 'unit_price': '1200'},
        ])
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('2400'))
        self.assertEqual(Decimal(response.data['final_amount']), Decimal('1900'))
        self.assertEqual(Transaction.objects.get(invoice_id=response.data['id']).amount, Decimal('1900'))

    def test_discount_cannot_exceed_total(self):
        response = self.sell(1, discount='5000')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discount', response.data)

    def test_insufficient_stock_changes_nothing(self):
        response = self.sell(9)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['product_unit'], self.base.id)
        self.assertEqual(Decimal(response.data['available']), Decimal('8'))

        self.early_lot.refresh_from_db()
        self.late_lot.refresh_from_db()
        self.assertEqual(self.early_lot.quantity, Decimal('5'))
        self.assertEqual(self.late_lot.quantity, Decimal('3'))
        self.assertFalse(Invoice.objects.exists())
        self.assertFalse(Transaction.objects.exists())

    def test_sale_in_other_unit_uses_only_that_unit(self):
        box = TestDataFactory.create_product_unit(self.product, conversion_factor=Decimal('10'))
        response = self.sell(1, items=[{'product': self.product.id, 'product_unit': box.id, 'quantity': '1'}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Decimal(response.data['available']), Decimal('0'))

    def test_unit_of_other_product_rejected(self):
        other = TestDataFactory.create_product()
        response = self.sell(1, items=[
            {'product': self.product.id, 'product_unit': other.get_base_product_unit().id, 'quantity': '1'},
        ])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invoice_requires_items(self):
        response = self.sell(1, items=[])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_customer_phone(self):
        response = self.sell(1, customer_phone='12ab')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_only_see_own_invoices(self):
        other_staff = TestDataFactory.create_user()
        own = self.sell(1).data['id']
        foreign = TestDataFactory.create_invoice(other_staff, self.product)

        response = self.client.get('/api/v1/invoices/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['results']], [own])

        response = self.client.get(f'/api/v1/invoices/{foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get(f'/api/v1/invoices/{own}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        admin_client = AuthenticatedAPIClient().authenticate_user(self.admin)
        self.assertEqual(admin_client.get('/api/v1/invoices/').data['count'], 2)

    def test_cancel_restores_lots_and_books_expense(self):
        invoice_id = self.sell(6).data['id']
        admin_client = AuthenticatedAPIClient().authenticate_user(self.admin)

        response = admin_client.post(f'/api/v1/invoices/{invoice_id}/cancel/', {'reason': 'Wrong items'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')
        self.assertEqual(response.data['cancelled_by'], self.admin.id)
        self.assertIsNotNone(response.data['cancelled_at'])

        self.early_lot.refresh_from_db()
        self.late_lot.refresh_from_db()
        self.assertEqual(self.early_lot.quantity, Decimal('5'))
        self.assertEqual(self.late_lot.quantity, Decimal('3'))

        expense = Transaction.objects.get(invoice_id=invoice_id, type='expense')
        self.assertEqual(expense.amount, Decimal('9000'))
        self.assertIn('Wrong items', expense.description)

        response = admin_client.post(f'/api/v1/invoices/{invoice_id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_without_allocations_goes_to_first_lot(self):
        invoice = TestDataFactory.create_invoice(self.staff, self.product, quantity=Decimal('2'))
        admin_client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = admin_client.post(f'/api/v1/invoices/{invoice.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.early_lot.refresh_from_db()
        self.assertEqual(self.early_lot.quantity, Decimal('7'))

    def test_staff_cannot_cancel(self):
        invoice_id = self.sell(1).data['id']
        response = self.client.post(f'/api/v1/invoices/{invoice_id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Invoice.objects.get(pk=invoice_id).status, 'completed')

    def test_invoices_cannot_be_edited(self):
        invoice_id = self.sell(1).data['id']
        response = self.client.patch(f'/api/v1/invoices/{invoice_id}/', {'notes': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_next_code(self):
        self.sell(1)
        response = self.client.get('/api/v1/invoices/next-code/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['code'].endswith('0002'))


class PosProductTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        self.product = TestDataFactory.create_product(name='Paracetamol 500mg', code='PARA500')
        self.box = TestDataFactory.create_product_unit(self.product, conversion_factor=Decimal('10'))
        TestDataFactory.create_lot(self.product, quantity=Decimal('12'))
        TestDataFactory.create_lot(self.product, self.box, quantity=Decimal('2'))
        self.empty = TestDataFactory.create_product(name='Paracetamol syrup', code='PARASYR')

    def test_available_quantity_per_unit(self):
        response = self.client.get('/api/v1/pos/products/?search=para 500')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        units = {row['product_unit_id']: row for row in response.data[0]['units']}
        base_id = self.product.get_base_product_unit().id
        self.assertEqual(Decimal(units[base_id]['available_quantity']), Decimal('12'))
        self.assertEqual(Decimal(units[self.box.id]['available_quantity']), Decimal('2'))

    def test_in_stock_filter(self):
        response = self.client.get('/api/v1/pos/products/?search=para')
        self.assertEqual(len(response.data), 2)
        response = self.client.get('/api/v1/pos/products/?search=para&in_stock=true')
        self.assertEqual([row['id'] for row in response.data], [self.product.id])
