"""
Test suite for the parties module
Tests: supplier CRUD, validation, delete protection
"""
from decimal import Decimal
from django.test import TestCase
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.parties.models import Supplier


class SupplierAPITests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_create_supplier(self):
        response = self.client.post('/api/v1/suppliers/', {
            'name': 'Pharma Distribution Co',
            'contact_person': 'Mai',
            'phone': '028 3822 1234',
            'email': 'sales@pharma.test',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['purchase_order_count'], 0)

    def test_invalid_phone_rejected(self):
        response = self.client.post('/api/v1/suppliers/', {'name': 'Pharma Co', 'phone': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)

    def test_short_name_rejected(self):
        response = self.client.post('/api/v1/suppliers/', {'name': 'P'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_create_supplier(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.post('/api/v1/suppliers/', {'name': 'Pharma Co'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_search(self):
        TestDataFactory.create_supplier(name='Alpha Pharma')
        TestDataFactory.create_supplier(name='Beta Medical')
        response = self.client.get('/api/v1/suppliers/?search=alpha')
        self.assertEqual(len(response.data), 1)

    def test_detail_includes_purchase_history(self):
        supplier = TestDataFactory.create_supplier()
        order = TestDataFactory.create_purchase_order(supplier=supplier)
        TestDataFactory.create_purchase_order_item(order, TestDataFactory.create_product(),
                                                   quantity=Decimal('2'), cost_price=Decimal('500'))
        response = self.client.get(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['total_purchase_amount']), Decimal('1000'))
        self.assertEqual(len(response.data['recent_purchase_orders']), 1)

    def test_supplier_with_purchase_orders_cannot_be_deleted(self):
        supplier = TestDataFactory.create_supplier()
        TestDataFactory.create_purchase_order(supplier=supplier)
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Supplier.objects.filter(pk=supplier.id).exists())

    def test_delete_supplier(self):
        supplier = TestDataFactory.create_supplier()
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
