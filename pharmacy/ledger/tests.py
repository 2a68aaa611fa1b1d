"""
Test suite for the income/expense ledger
Tests: manual entries, totals, edit restrictions on workflow entries
"""
from decimal import Decimal
from django.test import TestCase
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.ledger.models import Transaction
from pharmacy.ledger.services import record_transaction


class RecordTransactionTests(TestCase):
    def test_records_entry(self):
        entry = record_transaction('income', Decimal('250.00'), description='Consulting fee')
        self.assertEqual(entry.related_type, 'other')
        self.assertTrue(entry.is_manual)

    def test_rejects_non_positive_amount(self):
        with self.assertRaises(ValueError):
            record_transaction('expense', Decimal('0'))
        self.assertFalse(Transaction.objects.exists())


class TransactionAPITests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def test_create_manual_entry(self):
        response = self.client.post('/api/v1/transactions/', {
            'type': 'expense', 'amount': '300000', 'description': 'Electricity bill', 'payment_method': 'transfer',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['related_type'], 'other')
        self.assertEqual(response.data['user'], self.admin.id)

    def test_create_requires_positive_amount_and_description(self):
        response = self.client.post('/api/v1/transactions/', {
            'type': 'income', 'amount': '0', 'description': 'Nothing',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('amount', response.data)

        response = self.client.post('/api/v1/transactions/', {
            'type': 'income', 'amount': '10', 'description': '  ',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_related_type_cannot_be_forged(self):
        response = self.client.post('/api/v1/transactions/', {
            'type': 'income', 'amount': '10', 'description': 'Refund', 'related_type': 'invoice',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['related_type'], 'other')

    def test_list_totals_and_filters(self):
        record_transaction('income', Decimal('1000'), description='Sale A')
        record_transaction('income', Decimal('500'), description='Sale B')
        record_transaction('expense', Decimal('300'), description='Rent')

        response = self.client.get('/api/v1/transactions/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(Decimal(response.data['totals']['income']), Decimal('1500'))
        self.assertEqual(Decimal(response.data['totals']['expense']), Decimal('300'))
        self.assertEqual(Decimal(response.data['totals']['balance']), Decimal('1200'))

        response = self.client.get('/api/v1/transactions/?type=expense')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/transactions/?search=sale')
        self.assertEqual(response.data['count'], 2)

    def test_staff_forbidden(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        self.assertEqual(client.get('/api/v1/transactions/').status_code, status.HTTP_403_FORBIDDEN)

    def test_workflow_entries_are_read_only(self):
        order = TestDataFactory.create_purchase_order()
        entry = record_transaction('expense', Decimal('100'), description='Payment', related_type='purchase',
                                   purchase_order=order)

        response = self.client.get(f'/api/v1/transactions/{entry.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['purchase_order_code'], order.code)

        response = self.client.patch(f'/api/v1/transactions/{entry.id}/', {'amount': '50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/v1/transactions/{entry.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Transaction.objects.filter(pk=entry.id).exists())

    def test_manual_entry_edit_and_delete(self):
        entry = record_transaction('expense', Decimal('100'), description='Office supplies')

        response = self.client.patch(f'/api/v1/transactions/{entry.id}/', {'amount': '120'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        entry.refresh_from_db()
        self.assertEqual(entry.amount, Decimal('120'))

        response = self.client.delete(f'/api/v1/transactions/{entry.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Transaction.objects.filter(pk=entry.id).exists())
