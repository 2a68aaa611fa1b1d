"""
Test suite for the inventory module
Tests: FEFO deduction, unit conversion, receipts and returns, lot endpoints
"""
from datetime import timedelta
from decimal import Decimal
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.inventory.models import Inventory
from pharmacy.inventory.services import (
    InsufficientStockError, InventoryError, deduct_stock_fefo, receive_stock,
    remove_received_stock, restock_returned, total_base_quantity, available_quantity, _create_lot_or_add
)


class FefoDeductionTests(TestCase):
    def setUp(self):
        self.product = TestDataFactory.create_product()
        self.base = self.product.get_base_product_unit()
        self.today = timezone.localdate()

    def test_sale_consumes_soonest_expiry_first(self):
        early = TestDataFactory.create_lot(self.product, quantity=Decimal('5'), batch_number='A',
                                           expiry_date=self.today + timedelta(days=30))
        late = TestDataFactory.create_lot(self.product, quantity=Decimal('3'), batch_number='B',
                                          expiry_date=self.today + timedelta(days=90))

        deductions = deduct_stock_fefo(self.product, self.base, Decimal('6'))

        early.refresh_from_db()
        late.refresh_from_db()
        self.assertEqual(early.quantity, Decimal('0'))
        self.assertEqual(late.quantity, Decimal('2'))
        self.assertEqual([(lot.id, taken) for lot, taken in deductions],
                         [(early.id, Decimal('5')), (late.id, Decimal('1'))])

    def test_lots_without_expiry_are_used_last(self):
        undated = TestDataFactory.create_lot(self.product, quantity=Decimal('10'))
        dated = TestDataFactory.create_lot(self.product, quantity=Decimal('4'),
                                           expiry_date=self.today + timedelta(days=400))

        deduct_stock_fefo(self.product, self.base, Decimal('6'))

        undated.refresh_from_db()
        dated.refresh_from_db()
        self.assertEqual(dated.quantity, Decimal('0'))
        self.assertEqual(undated.quantity, Decimal('8'))

    def test_insufficient_stock_changes_nothing(self):
        lot = TestDataFactory.create_lot(self.product, quantity=Decimal('5'),
                                         expiry_date=self.today + timedelta(days=30))
        with self.assertRaises(InsufficientStockError) as ctx:
            deduct_stock_fefo(self.product, self.base, Decimal('6'))
        self.assertEqual(ctx.exception.available, Decimal('5'))
        lot.refresh_from_db()
        self.assertEqual(lot.quantity, Decimal('5'))

    def test_only_lots_of_the_sold_unit_are_used(self):
        box = TestDataFactory.create_product_unit(self.product, conversion_factor=Decimal('10'))
        TestDataFactory.create_lot(self.product, box, quantity=Decimal('3'))
        with self.assertRaises(InsufficientStockError):
            deduct_stock_fefo(self.product, self.base, Decimal('1'))

    def test_unit_must_belong_to_product(self):
        other = TestDataFactory.create_product()
        with self.assertRaises(InventoryError):
            deduct_stock_fefo(self.product, other.get_base_product_unit(), Decimal('1'))

    def test_quantity_must_be_positive(self):
        with self.assertRaises(InventoryError):
            deduct_stock_fefo(self.product, self.base, Decimal('0'))


class ConversionTests(TestCase):
    def test_mixed_units_sum_in_base_units(self):
        product = TestDataFactory.create_product()
        strip = TestDataFactory.create_product_unit(product, conversion_factor=Decimal('10'))
        box = TestDataFactory.create_product_unit(product, conversion_factor=Decimal('100'))
        TestDataFactory.create_lot(product, quantity=Decimal('7'))
        TestDataFactory.create_lot(product, strip, quantity=Decimal('3'))
        TestDataFactory.create_lot(product, box, quantity=Decimal('2'))

        lots = Inventory.objects.filter(product=product).select_related('product_unit')
        self.assertEqual(total_base_quantity(lots), Decimal('237'))
        self.assertEqual(available_quantity(strip), Decimal('3'))


class ReceiptTests(TestCase):
    def setUp(self):
        self.product = TestDataFactory.create_product()
        self.base = self.product.get_base_product_unit()
        self.expiry = timezone.localdate() + timedelta(days=200)

    def test_receipts_of_same_batch_share_a_lot(self):
        first = receive_stock(self.product, self.base, Decimal('10'), batch_number='B1', expiry_date=self.expiry)
        second = receive_stock(self.product, self.base, Decimal('5'), batch_number=' B1 ', expiry_date=self.expiry)
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.quantity, Decimal('15'))

    def test_different_expiry_makes_new_lot(self):
        receive_stock(self.product, self.base, Decimal('10'), batch_number='B1', expiry_date=self.expiry)
        receive_stock(self.product, self.base, Decimal('10'), batch_number='B1',
                      expiry_date=self.expiry + timedelta(days=1))
        self.assertEqual(Inventory.objects.filter(product=self.product).count(), 2)

    def test_database_rejects_duplicate_lot(self):
        TestDataFactory.create_lot(self.product, quantity=Decimal('1'), batch_number='B1', expiry_date=self.expiry)
        with self.assertRaises(IntegrityError), transaction.atomic():
            TestDataFactory.create_lot(self.product, quantity=Decimal('2'), batch_number='B1',
                                       expiry_date=self.expiry)

    def test_database_rejects_duplicate_undated_lot(self):
        TestDataFactory.create_lot(self.product, quantity=Decimal('1'))
        with self.assertRaises(IntegrityError), transaction.atomic():
            TestDataFactory.create_lot(self.product, quantity=Decimal('2'))
        self.assertEqual(Inventory.objects.filter(product=self.product).count(), 1)

    def test_lot_created_concurrently_receives_the_quantity(self):
        # The lot appears between the lookup and the insert
        existing = TestDataFactory.create_lot(self.product, quantity=Decimal('10'), batch_number='B1',
                                              expiry_date=self.expiry)
        lot = _create_lot_or_add(self.product, self.base, Decimal('5'), 'B1', self.expiry)
        self.assertEqual(lot.id, existing.id)
        self.assertEqual(lot.quantity, Decimal('15'))
        self.assertEqual(Inventory.objects.filter(product=self.product).count(), 1)

    def test_remove_received_stock_refuses_sold_quantity(self):
        lot = receive_stock(self.product, self.base, Decimal('10'), batch_number='B1', expiry_date=self.expiry)
        lot.quantity = Decimal('4')
        lot.save()
        with self.assertRaises(InventoryError):
            remove_received_stock(self.product, self.base, Decimal('10'), batch_number='B1',
                                  expiry_date=self.expiry)

    def test_restock_goes_back_to_allocated_lots(self):
        today = timezone.localdate()
        early = TestDataFactory.create_lot(self.product, quantity=Decimal('5'), expiry_date=today + timedelta(days=30))
        late = TestDataFactory.create_lot(self.product, quantity=Decimal('3'), expiry_date=today + timedelta(days=90))
        deductions = deduct_stock_fefo(self.product, self.base, Decimal('6'))

        restock_returned(self.product, self.base, Decimal('6'),
                         allocations=[[lot.id, str(taken)] for lot, taken in deductions])

        early.refresh_from_db()
        late.refresh_from_db()
        self.assertEqual(early.quantity, Decimal('5'))
        self.assertEqual(late.quantity, Decimal('3'))

    def test_restock_without_lots_creates_undated_lot(self):
        restock_returned(self.product, self.base, Decimal('2'))
        lot = Inventory.objects.get(product=self.product)
        self.assertEqual(lot.quantity, Decimal('2'))
        self.assertIsNone(lot.batch_number)
        self.assertIsNone(lot.expiry_date)


class InventoryAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.product = TestDataFactory.create_product()
        self.today = timezone.localdate()

    def test_list_in_fefo_order(self):
        undated = TestDataFactory.create_lot(self.product, quantity=Decimal('1'))
        late = TestDataFactory.create_lot(self.product, quantity=Decimal('1'), expiry_date=self.today + timedelta(days=60))
        early = TestDataFactory.create_lot(self.product, quantity=Decimal('1'), expiry_date=self.today + timedelta(days=10))
        response = self.client.get(f'/api/v1/inventory/?product={self.product.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['results']], [early.id, late.id, undated.id])

    def test_expiring(self):
        soon = TestDataFactory.create_lot(self.product, quantity=Decimal('4'), expiry_date=self.today + timedelta(days=5))
        TestDataFactory.create_lot(self.product, quantity=Decimal('4'), expiry_date=self.today + timedelta(days=200))
        TestDataFactory.create_lot(self.product, quantity=Decimal('0'), expiry_date=self.today + timedelta(days=3))
        response = self.client.get('/api/v1/inventory/expiring/?days=30')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], soon.id)
        self.assertEqual(response.data['results'][0]['days_until_expiry'], 5)

    def test_low_stock(self):
        TestDataFactory.create_lot(self.product, quantity=Decimal('3'))
        stocked = TestDataFactory.create_product()
        TestDataFactory.create_lot(stocked, quantity=Decimal('500'))
        response = self.client.get('/api/v1/inventory/low-stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['results']], [self.product.id])

    def test_product_stock(self):
        box = TestDataFactory.create_product_unit(self.product, conversion_factor=Decimal('10'))
        TestDataFactory.create_lot(self.product, quantity=Decimal('4'))
        TestDataFactory.create_lot(self.product, box, quantity=Decimal('2'))
        response = self.client.get(f'/api/v1/products/{self.product.id}/stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['total_base_quantity']), Decimal('24'))
        self.assertEqual(len(response.data['units']), 2)
