"""
Test suite for the locations module
Tests: cabinet/row/compartment CRUD, delete protection, product placement
"""
from django.test import TestCase
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.locations.models import Cabinet, Row, Compartment


class LocationAPITests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_create_cabinet_row_compartment(self):
        response = self.client.post('/api/v1/cabinets/', {'name': '  Cabinet A  '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Cabinet A')
        cabinet_id = response.data['id']

        response = self.client.post(f'/api/v1/cabinets/{cabinet_id}/rows/', {'name': 'Row 1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        row_id = response.data['id']

        response = self.client.post(f'/api/v1/rows/{row_id}/compartments/', {'name': 'Box 3'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['location'], 'Cabinet A > Row 1 > Box 3')

        response = self.client.get('/api/v1/cabinets/')
        self.assertEqual(response.data[0]['row_count'], 1)

    def test_name_is_required(self):
        response = self.client.post('/api/v1/cabinets/', {'name': '   '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_can_read_but_not_write(self):
        Cabinet.objects.create(name='Cabinet A')
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        self.assertEqual(client.get('/api/v1/cabinets/').status_code, status.HTTP_200_OK)
        response = client.post('/api/v1/cabinets/', {'name': 'Cabinet B'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cabinet_with_rows_cannot_be_deleted(self):
        cabinet = Cabinet.objects.create(name='Cabinet A')
        Row.objects.create(cabinet=cabinet, name='Row 1')
        response = self.client.delete(f'/api/v1/cabinets/{cabinet.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Cabinet.objects.filter(pk=cabinet.id).exists())

    def test_row_with_compartments_cannot_be_deleted(self):
        compartment = TestDataFactory.create_compartment()
        response = self.client.delete(f'/api/v1/rows/{compartment.row_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_compartment_with_products_cannot_be_deleted(self):
        compartment = TestDataFactory.create_compartment()
        TestDataFactory.create_product(compartment=compartment)
        response = self.client.delete(f'/api/v1/compartments/{compartment.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_empty_compartment_can_be_deleted(self):
        compartment = TestDataFactory.create_compartment()
        response = self.client.delete(f'/api/v1/compartments/{compartment.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Compartment.objects.filter(pk=compartment.id).exists())

    def test_assign_and_remove_product(self):
        compartment = TestDataFactory.create_compartment()
        product = TestDataFactory.create_product()

        response = self.client.post(f'/api/v1/compartments/{compartment.id}/products/',
                                    {'product': product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.compartment_id, compartment.id)

        response = self.client.get(f'/api/v1/compartments/{compartment.id}/products/')
        self.assertEqual(len(response.data['products']), 1)

        response = self.client.delete(f'/api/v1/compartments/{compartment.id}/products/',
                                      {'product': product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        product.refresh_from_db()
        self.assertIsNone(product.compartment_id)

    def test_remove_product_from_other_compartment(self):
        compartment = TestDataFactory.create_compartment()
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/compartments/{compartment.id}/products/',
                                      {'product': product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
