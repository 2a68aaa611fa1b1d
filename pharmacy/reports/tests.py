"""
Test suite for reports
Tests: dashboard figures, sales/inventory/purchase/finance reports, access
"""
from datetime import timedelta
from decimal import Decimal
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmacy.ledger.services import record_transaction
from pharmacy.reports.views import percent_change


REPORT_URLS = [
    '/api/v1/reports/dashboard/',
    '/api/v1/reports/sales/',
    '/api/v1/reports/inventory/',
    '/api/v1/reports/purchases/',
    '/api/v1/reports/finance/',
]


class PercentChangeTests(TestCase):
    def test_percent_change(self):
        self.assertEqual(percent_change(150, 100), 50.0)
        self.assertEqual(percent_change(50, 100), -50.0)
        self.assertEqual(percent_change(10, 0), 100.0)
        self.assertIsNone(percent_change(0, 0))


class ReportAccessTests(TestCase):
    def test_admin_can_open_every_report(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_admin())
        for url in REPORT_URLS:
            self.assertEqual(client.get(url).status_code, status.HTTP_200_OK, url)

    def test_staff_forbidden(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        for url in REPORT_URLS:
            self.assertEqual(client.get(url).status_code, status.HTTP_403_FORBIDDEN, url)

    def test_unauthenticated(self):
        client = AuthenticatedAPIClient()
        self.assertEqual(client.get(REPORT_URLS[0]).status_code, status.HTTP_401_UNAUTHORIZED)


class ReportFigureTests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin(username='manager')
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)
        self.today = timezone.localdate()

        self.product = TestDataFactory.create_product(cost_price=Decimal('1000'), selling_price=Decimal('1500'))
        TestDataFactory.create_lot(self.product, quantity=Decimal('4'), batch_number='SOON',
                                   expiry_date=self.today + timedelta(days=10))
        TestDataFactory.create_lot(self.product, quantity=Decimal('50'), batch_number='LATER',
                                   expiry_date=self.today + timedelta(days=400))
        TestDataFactory.create_lot(self.product, quantity=Decimal('2'), batch_number='OLD',
                                   expiry_date=self.today - timedelta(days=5))

    def test_dashboard(self):
        TestDataFactory.create_invoice(self.admin, self.product, quantity=Decimal('2'))
        TestDataFactory.create_invoice(self.admin, self.product, quantity=Decimal('1'), status='cancelled')
        order = TestDataFactory.create_purchase_order()
        TestDataFactory.create_purchase_order_item(order, self.product)

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['counts']['products'], 1)
        self.assertEqual(response.data['today']['invoice_count'], 1)
        self.assertEqual(response.data['today']['revenue'], 3000.0)
        self.assertEqual(response.data['unpaid_purchase_orders']['count'], 1)
        self.assertEqual(response.data['unpaid_purchase_orders']['total_amount'], 10000.0)
        self.assertEqual(response.data['low_stock']['product_count'], 1)
        self.assertEqual([lot['batch_number'] for lot in response.data['expiring_soon']['lots']], ['SOON'])
        self.assertEqual(len(response.data['recent_invoices']), 2)

    def test_sales_report(self):
        TestDataFactory.create_invoice(self.admin, self.product, quantity=Decimal('2'))
        TestDataFactory.create_invoice(self.admin, self.product, quantity=Decimal('4'))

        response = self.client.get('/api/v1/reports/sales/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        totals = response.data['totals']
        self.assertEqual(totals['invoice_count'], 2)
        self.assertEqual(totals['revenue'], 9000.0)
        self.assertEqual(totals['items_sold'], 6.0)
        self.assertEqual(response.data['top_products'][0]['product_id'], self.product.id)
        self.assertEqual(response.data['top_staff'][0]['name'], 'Test manager')
        self.assertEqual(len(response.data['by_hour']), 24)
        self.assertEqual(len(response.data['by_weekday']), 7)
        self.assertNotIn('comparison', response.data)

    def test_sales_report_comparison(self):
        TestDataFactory.create_invoice(self.admin, self.product, quantity=Decimal('2'))
        date_from = self.today.isoformat()
        response = self.client.get(f'/api/v1/reports/sales/?date_from={date_from}&date_to={date_from}&compare=true')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        comparison = response.data['comparison']
        self.assertEqual(comparison['period']['to'], (self.today - timedelta(days=1)).isoformat())
        self.assertEqual(comparison['totals']['invoice_count'], 0)
        self.assertEqual(comparison['change_percent']['revenue'], 100.0)

    def test_inventory_report(self):
        response = self.client.get('/api/v1/reports/inventory/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        totals = response.data['totals']
        self.assertEqual(totals['lot_count'], 3)
        self.assertEqual(totals['inventory_value'], 56000.0)
        self.assertEqual(totals['expiring_count'], 1)
        self.assertEqual(totals['expired_count'], 1)
        self.assertEqual(totals['low_stock_count'], 0)
        self.assertEqual(response.data['expiring_lots'][0]['days_until_expiry'], 10)

    def test_purchases_report(self):
        order = TestDataFactory.create_purchase_order(payment_status='partial')
        TestDataFactory.create_purchase_order_item(order, self.product, quantity=Decimal('10'),
                                                   cost_price=Decimal('1000'))
        record_transaction('expense', Decimal('4000'), related_type='purchase', purchase_order=order,
                           description='Deposit')

        response = self.client.get('/api/v1/reports/purchases/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        totals = response.data['totals']
        self.assertEqual(totals['order_count'], 1)
        self.assertEqual(totals['total_amount'], 10000.0)
        self.assertEqual(totals['paid_amount'], 4000.0)
        self.assertEqual(totals['outstanding_amount'], 6000.0)
        self.assertEqual(len(response.data['monthly']), 12)
        self.assertEqual(response.data['monthly'][-1]['count'], 1)
        partial = next(row for row in response.data['payment_status'] if row['status'] == 'partial')
        self.assertEqual(partial['count'], 1)

    def test_finance_report(self):
        record_transaction('income', Decimal('5000'), description='Sales')
        record_transaction('expense', Decimal('1200'), description='Rent')

        response = self.client.get('/api/v1/reports/finance/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totals'], {'income': 5000.0, 'expense': 1200.0, 'net': 3800.0})
        self.assertEqual(response.data['by_day'][0]['net'], 3800.0)
        other = next(row for row in response.data['by_related_type'] if row['related_type'] == 'other')
        self.assertEqual(other['count'], 2)
