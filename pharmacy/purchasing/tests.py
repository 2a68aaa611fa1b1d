"""
Test suite for the purchasing module
Tests: purchase order creation, stock receipt, payments, edit restrictions
"""
from datetime import timedelta
from decimal import Decimal
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.inventory.models import Inventory
from pharmacy.ledger.models import Transaction
from pharmacy.purchasing.models import PurchaseOrder, PurchaseOrderItem


class PurchaseOrderModelTests(TestCase):
    def test_totals_and_remaining(self):
        order = TestDataFactory.create_purchase_order()
        product = TestDataFactory.create_product()
        TestDataFactory.create_purchase_order_item(order, product, quantity=Decimal('10'), cost_price=Decimal('1000'))
        TestDataFactory.create_purchase_order_item(order, product, quantity=Decimal('2.5'), cost_price=Decimal('400'))
        self.assertEqual(order.total_amount, Decimal('11000'))

        Transaction.objects.create(type='expense', amount=Decimal('4000'), related_type='purchase',
                                   purchase_order=order)
        self.assertEqual(order.get_paid_amount(), Decimal('4000'))
        self.assertEqual(order.get_remaining_amount(), Decimal('7000'))

    def test_str(self):
        order = TestDataFactory.create_purchase_order(code='PO-202401-0001')
        self.assertEqual(str(order), 'PO-202401-0001')


class PurchaseOrderAPITests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)
        self.supplier = TestDataFactory.create_supplier()
        self.product = TestDataFactory.create_product()
        self.base = self.product.get_base_product_unit()
        self.box = TestDataFactory.create_product_unit(self.product, conversion_factor=Decimal('10'))
        self.expiry = timezone.localdate() + timedelta(days=365)

    def order_payload(self, payment_status='unpaid', **overrides):
        payload = {
            'supplier': self.supplier.id,
            'order_date': timezone.localdate().isoformat(),
            'payment_status': payment_status,
            'payment_method': 'transfer',
            'items': [
                {'product': self.product.id, 'product_unit': self.base.id, 'quantity': '100',
                 'cost_price': '1000', 'batch_number': 'LOT1', 'expiry_date': self.expiry.isoformat()},
                {'product': self.product.id, 'product_unit': self.box.id, 'quantity': '5',
                 'cost_price': '9000', 'batch_number': 'LOT2', 'expiry_date': self.expiry.isoformat()},
            ],
        }
        payload.update(overrides)
        return payload

    def test_create_receives_stock(self):
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('145000'))
        self.assertTrue(response.data['code'].startswith('PO-'))
        self.assertEqual(len(response.data['items']), 2)

        base_lot = Inventory.objects.get(product_unit=self.base, batch_number='LOT1')
        box_lot = Inventory.objects.get(product_unit=self.box, batch_number='LOT2')
        self.assertEqual(base_lot.quantity, Decimal('100'))
        self.assertEqual(box_lot.quantity, Decimal('5'))
        self.assertEqual(box_lot.expiry_date, self.expiry)
        self.assertFalse(Transaction.objects.exists())

    def test_create_paid_records_full_expense(self):
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload('paid'), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        entry = Transaction.objects.get(purchase_order_id=response.data['id'])
        self.assertEqual(entry.type, 'expense')
        self.assertEqual(entry.related_type, 'purchase')
        self.assertEqual(entry.amount, Decimal('145000'))
        self.assertEqual(Decimal(response.data['remaining_amount']), Decimal('0'))

    def test_create_partial_records_half(self):
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload('partial'), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        entry = Transaction.objects.get(purchase_order_id=response.data['id'])
        self.assertEqual(entry.amount, Decimal('72500'))

    def test_generated_codes_are_sequential(self):
        first = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json')
        second = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json')
        prefix = f"PO-{timezone.localdate().strftime('%Y%m')}-"
        self.assertEqual(first.data['code'], f'{prefix}0001')
        self.assertEqual(second.data['code'], f'{prefix}0002')

        response = self.client.get('/api/v1/purchase-orders/next-code/')
        self.assertEqual(response.data['code'], f'{prefix}0003')

    def test_duplicate_code_rejected(self):
        TestDataFactory.create_purchase_order(code='PO-CUSTOM-1')
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(code='PO-CUSTOM-1'),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('code', response.data)

    def test_create_requires_items(self):
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_create_rejects_unit_of_other_product(self):
        other = TestDataFactory.create_product()
        payload = self.order_payload(items=[
            {'product': self.product.id, 'product_unit': other.get_base_product_unit().id,
             'quantity': '1', 'cost_price': '100'},
        ])
        response = self.client.post('/api/v1/purchase-orders/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Inventory.objects.exists())

    def test_create_rejects_non_positive_quantity(self):
        payload = self.order_payload(items=[
            {'product': self.product.id, 'product_unit': self.base.id, 'quantity': '0', 'cost_price': '100'},
        ])
        response = self.client.post('/api/v1/purchase-orders/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_access_purchase_orders(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        self.assertEqual(client.get('/api/v1/purchase-orders/').status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filters(self):
        self.client.post('/api/v1/purchase-orders/', self.order_payload('paid'), format='json')
        self.client.post('/api/v1/purchase-orders/', self.order_payload('unpaid'), format='json')
        response = self.client.get('/api/v1/purchase-orders/?payment_status=unpaid')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['item_count'], 2)

    def test_payment_flow(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']

        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/payment/',
                                    {'amount': '200000', 'payment_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/payment/',
                                    {'amount': '45000', 'payment_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_status'], 'partial')
        self.assertEqual(Decimal(response.data['remaining_amount']), Decimal('100000'))

        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/payment/',
                                    {'amount': '100000', 'payment_method': 'transfer'}, format='json')
        self.assertEqual(response.data['payment_status'], 'paid')
        self.assertEqual(len(response.data['payments']), 2)
        entry = Transaction.objects.filter(purchase_order_id=order_id).first()
        self.assertIn('Payment for purchase order', entry.description)

        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/payment/',
                                    {'amount': '1', 'payment_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_payment_requires_positive_amount(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/payment/',
                                    {'amount': '0', 'payment_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_paid_order_cannot_be_edited(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload('paid'), format='json').data['id']
        response = self.client.patch(f'/api/v1/purchase-orders/{order_id}/', {'notes': 'late change'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/items/', {
            'product': self.product.id, 'product_unit': self.base.id, 'quantity': '1', 'cost_price': '1000',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_edit_header(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        response = self.client.patch(f'/api/v1/purchase-orders/{order_id}/', {'notes': 'Delivered late'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['notes'], 'Delivered late')

    def test_add_item_receives_stock_and_updates_total(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/items/', {
            'product': self.product.id, 'product_unit': self.base.id, 'quantity': '20', 'cost_price': '1000',
            'batch_number': 'LOT1', 'expiry_date': self.expiry.isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Inventory.objects.get(product_unit=self.base, batch_number='LOT1').quantity, Decimal('120'))
        self.assertEqual(PurchaseOrder.objects.get(pk=order_id).total_amount, Decimal('165000'))

    def test_delete_item_reverses_stock(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        item = PurchaseOrderItem.objects.get(purchase_order_id=order_id, product_unit=self.box)
        response = self.client.delete(f'/api/v1/purchase-orders/{order_id}/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(Inventory.objects.get(product_unit=self.box, batch_number='LOT2').quantity, Decimal('0'))
        self.assertEqual(PurchaseOrder.objects.get(pk=order_id).total_amount, Decimal('100000'))

    def test_delete_item_refused_when_stock_was_sold(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        Inventory.objects.filter(product_unit=self.box, batch_number='LOT2').update(quantity=Decimal('1'))
        item = PurchaseOrderItem.objects.get(purchase_order_id=order_id, product_unit=self.box)
        response = self.client.delete(f'/api/v1/purchase-orders/{order_id}/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(PurchaseOrderItem.objects.filter(pk=item.id).exists())

    def pay(self, order_id, amount):
        return self.client.post(f'/api/v1/purchase-orders/{order_id}/payment/',
                                {'amount': amount, 'payment_method': 'cash'}, format='json')

    def test_delete_item_refused_when_total_would_fall_below_paid(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        self.pay(order_id, '120000')
        item = PurchaseOrderItem.objects.get(purchase_order_id=order_id, product_unit=self.box)

        response = self.client.delete(f'/api/v1/purchase-orders/{order_id}/items/{item.id}/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('already paid', response.data['error'])
        self.assertTrue(PurchaseOrderItem.objects.filter(pk=item.id).exists())
        order = PurchaseOrder.objects.get(pk=order_id)
        self.assertEqual(order.total_amount, Decimal('145000'))
        self.assertEqual(order.payment_status, 'partial')
        self.assertEqual(Inventory.objects.get(product_unit=self.box, batch_number='LOT2').quantity, Decimal('5'))

    def test_delete_item_down_to_paid_amount_marks_order_paid(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        self.pay(order_id, '100000')
        item = PurchaseOrderItem.objects.get(purchase_order_id=order_id, product_unit=self.box)

        response = self.client.delete(f'/api/v1/purchase-orders/{order_id}/items/{item.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        order = PurchaseOrder.objects.get(pk=order_id)
        self.assertEqual(order.total_amount, Decimal('100000'))
        self.assertEqual(order.payment_status, 'paid')
        self.assertEqual(order.get_remaining_amount(), Decimal('0'))

    def test_add_item_to_paid_down_order_reopens_remaining(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        self.pay(order_id, '45000')
        response = self.client.post(f'/api/v1/purchase-orders/{order_id}/items/', {
            'product': self.product.id, 'product_unit': self.base.id, 'quantity': '10', 'cost_price': '1000',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order = PurchaseOrder.objects.get(pk=order_id)
        self.assertEqual(order.payment_status, 'partial')
        self.assertEqual(order.get_remaining_amount(), Decimal('110000'))

    def test_header_edit_does_not_override_payment_status(self):
        order_id = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json').data['id']
        response = self.client.patch(f'/api/v1/purchase-orders/{order_id}/', {'payment_status': 'paid'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(PurchaseOrder.objects.get(pk=order_id).payment_status, 'unpaid')
