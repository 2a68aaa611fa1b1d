"""
Test suite for the catalog module
Tests: category tree, units, products with base units, product units, filters
"""
from decimal import Decimal
from django.test import TestCase
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.catalog.models import Category, Product, ProductUnit


class CategoryTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin())
        self.root = TestDataFactory.create_category(name='Prescription')
        self.child = TestDataFactory.create_category(name='Antibiotics', parent=self.root)
        self.grandchild = TestDataFactory.create_category(name='Penicillins', parent=self.child)

    def test_tree(self):
        response = self.client.get('/api/v1/categories/tree/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['name'], 'Prescription')
        self.assertEqual(response.data[0]['children'][0]['children'][0]['name'], 'Penicillins')

    def test_category_cannot_be_its_own_parent(self):
        response = self.client.patch(f'/api/v1/categories/{self.root.id}/', {'parent': self.root.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_category_cannot_move_under_descendant(self):
        response = self.client.patch(f'/api/v1/categories/{self.root.id}/', {'parent': self.grandchild.id},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.root.refresh_from_db()
        self.assertIsNone(self.root.parent_id)

    def test_category_with_children_cannot_be_deleted(self):
        response = self.client.delete(f'/api/v1/categories/{self.child.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_category_with_products_cannot_be_deleted(self):
        TestDataFactory.create_product(category=self.grandchild)
        response = self.client.delete(f'/api/v1/categories/{self.grandchild.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_leaf_category(self):
        response = self.client.delete(f'/api/v1/categories/{self.grandchild.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Category.objects.filter(pk=self.grandchild.id).exists())


class UnitTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin())

    def test_unit_name_unique_case_insensitive(self):
        TestDataFactory.create_unit(name='Box')
        response = self.client.post('/api/v1/units/', {'name': 'box'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unit_name_min_length(self):
        response = self.client.post('/api/v1/units/', {'name': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unit_in_use_cannot_be_deleted(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/units/{product.base_unit_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ProductTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_admin())
        self.category = TestDataFactory.create_category()
        self.tablet = TestDataFactory.create_unit(name='Tablet')
        self.box = TestDataFactory.create_unit(name='Box')

    def test_create_product_creates_base_unit(self):
        response = self.client.post('/api/v1/products/', {
            'code': 'AMOX500',
            'name': 'Amoxicillin 500mg',
            'category': self.category.id,
            'unit': self.tablet.id,
            'cost_price': '1000',
            'selling_price': '1500',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        product = Product.objects.get(code='AMOX500')
        self.assertEqual(product.base_unit_id, self.tablet.id)
        units = list(product.units.all())
        self.assertEqual(len(units), 1)
        self.assertTrue(units[0].is_base_unit)
        self.assertEqual(units[0].conversion_factor, Decimal('1'))
        self.assertEqual(units[0].selling_price, Decimal('1500.00'))

    def test_create_product_requires_unit(self):
        response = self.client.post('/api/v1/products/', {
            'code': 'AMOX500', 'name': 'Amoxicillin 500mg', 'category': self.category.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('unit', response.data)

    def test_duplicate_code_rejected(self):
        TestDataFactory.create_product(code='AMOX500')
        response = self.client.post('/api/v1/products/', {
            'code': 'amox500', 'name': 'Other', 'category': self.category.id, 'unit': self.tablet.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('code', response.data)

    def test_staff_cannot_create_product(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.post('/api/v1/products/', {
            'code': 'AMOX500', 'name': 'Amoxicillin', 'category': self.category.id, 'unit': self.tablet.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_add_unit_with_conversion_factor(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        response = self.client.post(f'/api/v1/products/{product.id}/units/', {
            'unit': self.box.id, 'conversion_factor': '100', 'cost_price': '90000', 'selling_price': '140000',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['is_base_unit'])
        self.assertEqual(product.units.count(), 2)

    def test_add_unit_rejects_duplicate_and_bad_factor(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        response = self.client.post(f'/api/v1/products/{product.id}/units/', {
            'unit': self.tablet.id, 'conversion_factor': '10',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/products/{product.id}/units/', {
            'unit': self.box.id, 'conversion_factor': '0',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('conversion_factor', response.data)

    def test_base_unit_keeps_factor_one(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        base = product.get_base_product_unit()
        response = self.client.patch(f'/api/v1/products/{product.id}/units/{base.id}/',
                                     {'conversion_factor': '5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_base_unit_cannot_be_deleted(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        base = product.get_base_product_unit()
        response = self.client.delete(f'/api/v1/products/{product.id}/units/{base.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unit_with_stock_cannot_be_deleted(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        box = TestDataFactory.create_product_unit(product, unit=self.box)
        TestDataFactory.create_lot(product, box, quantity=Decimal('2'))
        response = self.client.delete(f'/api/v1/products/{product.id}/units/{box.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_set_base_unit(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        box = TestDataFactory.create_product_unit(product, unit=self.box, conversion_factor=Decimal('100'))
        response = self.client.post(f'/api/v1/products/{product.id}/units/{box.id}/set-base/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        product.refresh_from_db()
        box.refresh_from_db()
        self.assertEqual(product.base_unit_id, self.box.id)
        self.assertTrue(box.is_base_unit)
        self.assertEqual(box.conversion_factor, Decimal('1'))
        self.assertEqual(ProductUnit.objects.filter(product=product, is_base_unit=True).count(), 1)
        old_base = ProductUnit.objects.get(product=product, unit=self.tablet)
        self.assertEqual(response.data['factors_to_review'], [old_base.id])
        self.assertEqual(len(response.data['units']), 2)

    def test_price_change_is_audited(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        base = product.get_base_product_unit()
        response = self.client.patch(f'/api/v1/products/{product.id}/units/{base.id}/',
                                     {'selling_price': '2000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        from pharmacy.core.models import AuditLog
        self.assertTrue(AuditLog.objects.filter(action='price_change', object_id=str(base.id)).exists())

    def test_product_with_stock_cannot_be_deleted(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_lot(product, quantity=Decimal('1'))
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_product(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.id).exists())

    def test_product_detail_includes_stock(self):
        product = TestDataFactory.create_product(base_unit=self.tablet)
        box = TestDataFactory.create_product_unit(product, unit=self.box, conversion_factor=Decimal('10'))
        TestDataFactory.create_lot(product, quantity=Decimal('5'))
        TestDataFactory.create_lot(product, box, quantity=Decimal('2'))
        response = self.client.get(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['stock']['total_base_quantity']), Decimal('25'))


class ProductFilterTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.parent = TestDataFactory.create_category(name='Prescription')
        self.child = TestDataFactory.create_category(name='Antibiotics', parent=self.parent)
        self.amox = TestDataFactory.create_product(name='Amoxicillin 500mg', code='AMOX500', category=self.child)
        self.para = TestDataFactory.create_product(name='Paracetamol 500mg', code='PARA500')
        TestDataFactory.create_lot(self.amox, quantity=Decimal('50'))
        TestDataFactory.create_lot(self.para, quantity=Decimal('3'))

    def test_search_matches_every_word(self):
        response = self.client.get('/api/v1/products/?search=500mg amox')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['code'], 'AMOX500')

    def test_category_includes_subcategories(self):
        response = self.client.get(f'/api/v1/products/?category={self.parent.id}')
        self.assertEqual(response.data['count'], 1)

    def test_low_stock(self):
        response = self.client.get('/api/v1/products/?low_stock=true')
        self.assertEqual([row['code'] for row in response.data['results']], ['PARA500'])

    def test_out_of_stock(self):
        TestDataFactory.create_product(code='EMPTY1')
        response = self.client.get('/api/v1/products/?out_of_stock=true')
        self.assertEqual([row['code'] for row in response.data['results']], ['EMPTY1'])

    def test_stock_quantity_in_list(self):
        response = self.client.get('/api/v1/products/?search=AMOX500')
        self.assertEqual(Decimal(response.data['results'][0]['stock_quantity']), Decimal('50'))
