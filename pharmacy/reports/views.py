import logging
from datetime import timedelta
from decimal import Decimal

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.conf import settings
from django.db.models import Sum, Count, Avg, Q, F, DecimalField, ExpressionWrapper
from django.db.models.functions import TruncDate, TruncMonth, ExtractHour, ExtractWeekDay
from django.utils import timezone

from pharmacy.catalog.models import Category, Product
from pharmacy.core.cache_utils import DASHBOARD_CACHE_TTL, REPORTS_CACHE_TTL, get_cached_report, cache_report
from pharmacy.core.permissions import IsAdminRole
from pharmacy.core.utils import get_date_range, day_bounds
from pharmacy.inventory.models import Inventory
from pharmacy.inventory.services import annotate_base_stock
from pharmacy.ledger.models import Transaction
from pharmacy.locations.models import Cabinet
from pharmacy.pos.models import Invoice, InvoiceItem
from pharmacy.pos.serializers import InvoiceListSerializer
from pharmacy.purchasing.models import PurchaseOrder, PurchaseOrderItem

logger = logging.getLogger('pharmacy.reports')

MONEY = DecimalField(max_digits=18, decimal_places=2)
QUANTITY = DecimalField(max_digits=18, decimal_places=3)
WEEKDAYS = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']

LOT_VALUE = ExpressionWrapper(F('quantity') * F('product_unit__cost_price'), output_field=MONEY)
BASE_QUANTITY = ExpressionWrapper(F('quantity') * F('product_unit__conversion_factor'), output_field=QUANTITY)
PURCHASE_LINE_TOTAL = ExpressionWrapper(F('quantity') * F('cost_price'), output_field=MONEY)


def as_float(value):
    return float(value or 0)


def percent_change(current, previous):
    current, previous = as_float(current), as_float(previous)
    if previous == 0:
        return None if current == 0 else 100.0
    return round((current - previous) / previous * 100, 2)


def wants_comparison(request):
    return request.query_params.get('compare', '').lower() in ('1', 'true', 'yes')


def completed_invoices(start, end):
    start_dt, end_dt = day_bounds(start, end)
    return Invoice.objects.filter(status='completed', invoice_date__gte=start_dt, invoice_date__lt=end_dt)


def sales_totals(start, end):
    invoices = completed_invoices(start, end)
    totals = invoices.aggregate(count=Count('id'), revenue=Sum('final_amount'), average=Avg('final_amount'),
                                discount=Sum('discount'))
    items_sold = InvoiceItem.objects.filter(invoice__in=invoices).aggregate(total=Sum(BASE_QUANTITY))['total']
    return {
        'invoice_count': totals['count'],
        'revenue': as_float(totals['revenue']),
        'discount': as_float(totals['discount']),
        'average_invoice_value': round(as_float(totals['average']), 2),
        'items_sold': as_float(items_sold),
    }


def purchase_totals(start, end):
    orders = PurchaseOrder.objects.filter(order_date__gte=start, order_date__lte=end)
    totals = orders.aggregate(count=Count('id'), amount=Sum('total_amount'))
    paid = Transaction.objects.filter(purchase_order__in=orders, type='expense').aggregate(total=Sum('amount'))['total']
    return {
        'order_count': totals['count'],
        'total_amount': as_float(totals['amount']),
        'paid_amount': as_float(paid),
        'outstanding_amount': as_float((totals['amount'] or 0) - (paid or 0)),
    }


def ledger_totals(start, end):
    start_dt, end_dt = day_bounds(start, end)
    totals = Transaction.objects.filter(date__gte=start_dt, date__lt=end_dt).aggregate(
        income=Sum('amount', filter=Q(type='income')),
        expense=Sum('amount', filter=Q(type='expense')),
    )
    income, expense = as_float(totals['income']), as_float(totals['expense'])
    return {'income': income, 'expense': expense, 'net': round(income - expense, 2)}


def comparison_block(current, previous, previous_start, previous_end):
    return {
        'period': {'from': previous_start.isoformat(), 'to': previous_end.isoformat()},
        'totals': previous,
        'change_percent': {key: percent_change(value, previous.get(key)) for key, value in current.items()},
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def dashboard(request):
    """Today's figures and the stock alerts shown on the admin home page"""
    today = timezone.localdate()
    cached, cache_key = get_cached_report('dashboard', today.isoformat())
    if cached is not None:
        return Response(cached)

    threshold = settings.LOW_STOCK_THRESHOLD
    expiry_limit = today + timedelta(days=settings.DASHBOARD_EXPIRY_DAYS)

    today_sales = completed_invoices(today, today).aggregate(count=Count('id'), revenue=Sum('final_amount'))
    unpaid_orders = PurchaseOrder.objects.exclude(payment_status='paid')

    low_stock_lots = Inventory.objects.filter(quantity__gt=0, quantity__lt=threshold)
    expiring_lots = (
        Inventory.objects.filter(quantity__gt=0, expiry_date__gte=today, expiry_date__lte=expiry_limit)
        .select_related('product', 'product_unit__unit')
        .order_by('expiry_date', 'id')
    )
    recent_invoices = Invoice.objects.select_related('user').annotate(item_count=Count('items')).order_by('-invoice_date', '-id')[:5]

    data = {
        'date': today.isoformat(),
        'counts': {
            'products': Product.objects.count(),
            'categories': Category.objects.count(),
            'cabinets': Cabinet.objects.count(),
        },
        'today': {
            'invoice_count': today_sales['count'],
            'revenue': as_float(today_sales['revenue']),
        },
        'unpaid_purchase_orders': {
            'count': unpaid_orders.count(),
            'total_amount': as_float(unpaid_orders.aggregate(total=Sum('total_amount'))['total']),
        },
        'low_stock': {
            'threshold': threshold,
            'product_count': low_stock_lots.values('product').distinct().count(),
        },
        'expiring_soon': {
            'days': settings.DASHBOARD_EXPIRY_DAYS,
            'product_count': expiring_lots.values('product').distinct().count(),
            'lots': [
                {
                    'id': lot.id,
                    'product_id': lot.product_id,
                    'product_code': lot.product.code,
                    'product_name': lot.product.name,
                    'unit_name': lot.product_unit.unit.name,
                    'batch_number': lot.batch_number,
                    'expiry_date': lot.expiry_date.isoformat(),
                    'quantity': as_float(lot.quantity),
                }
                for lot in expiring_lots[:10]
            ],
        },
        'recent_invoices': InvoiceListSerializer(recent_invoices, many=True).data,
    }
    cache_report(cache_key, data, DASHBOARD_CACHE_TTL)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def sales_report(request):
    """Completed sales over a date range"""
    start, end, previous_start, previous_end = get_date_range(request)
    compare = wants_comparison(request)
    cached, cache_key = get_cached_report('report_sales', start.isoformat(), end.isoformat(), compare)
    if cached is not None:
        return Response(cached)

    invoices = completed_invoices(start, end)
    items = InvoiceItem.objects.filter(invoice__in=invoices)
    totals = sales_totals(start, end)

    by_day = (
        invoices.annotate(day=TruncDate('invoice_date')).values('day')
        .annotate(count=Count('id'), revenue=Sum('final_amount')).order_by('day')
    )
    top_products = (
        items.values('product_id', 'product__code', 'product__name')
        .annotate(quantity=Sum(BASE_QUANTITY), revenue=Sum('amount')).order_by('-revenue')[:10]
    )
    top_categories = (
        items.values('product__category_id', 'product__category__name')
        .annotate(quantity=Sum(BASE_QUANTITY), revenue=Sum('amount')).order_by('-revenue')[:5]
    )
    top_staff = (
        invoices.values('user_id', 'user__username', 'user__full_name')
        .annotate(count=Count('id'), revenue=Sum('final_amount')).order_by('-revenue')[:5]
    )
    by_hour = {
        row['hour']: row for row in
        invoices.annotate(hour=ExtractHour('invoice_date')).values('hour')
        .annotate(count=Count('id'), revenue=Sum('final_amount'))
    }
    by_weekday = {
        row['weekday']: row for row in
        invoices.annotate(weekday=ExtractWeekDay('invoice_date')).values('weekday')
        .annotate(count=Count('id'), revenue=Sum('final_amount'))
    }

    data = {
        'period': {'from': start.isoformat(), 'to': end.isoformat()},
        'totals': totals,
        'by_day': [
            {'date': row['day'].isoformat(), 'count': row['count'], 'revenue': as_float(row['revenue'])}
            for row in by_day
        ],
        'top_products': [
            {'product_id': row['product_id'], 'code': row['product__code'], 'name': row['product__name'],
             'quantity': as_float(row['quantity']), 'revenue': as_float(row['revenue'])}
            for row in top_products
        ],
        'top_categories': [
            {'category_id': row['product__category_id'], 'name': row['product__category__name'],
             'quantity': as_float(row['quantity']), 'revenue': as_float(row['revenue'])}
            for row in top_categories
        ],
        'top_staff': [
            {'user_id': row['user_id'], 'name': row['user__full_name'] or row['user__username'],
             'count': row['count'], 'revenue': as_float(row['revenue'])}
            for row in top_staff
        ],
        'by_hour': [
            {'hour': hour, 'count': by_hour.get(hour, {}).get('count', 0),
             'revenue': as_float(by_hour.get(hour, {}).get('revenue'))}
            for hour in range(24)
        ],
        # ExtractWeekDay numbers days 1 (Sunday) to 7 (Saturday)
        'by_weekday': [
            {'weekday': name, 'count': by_weekday.get(index, {}).get('count', 0),
             'revenue': as_float(by_weekday.get(index, {}).get('revenue'))}
            for index, name in enumerate(WEEKDAYS, start=1)
        ],
    }
    if compare:
        data['comparison'] = comparison_block(totals, sales_totals(previous_start, previous_end),
                                              previous_start, previous_end)

    cache_report(cache_key, data, REPORTS_CACHE_TTL)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def inventory_report(request):
    """Stock value, shortages and expiry outlook"""
    today = timezone.localdate()
    threshold = settings.LOW_STOCK_THRESHOLD
    warning_days = settings.EXPIRY_WARNING_DAYS
    cached, cache_key = get_cached_report('report_inventory', today.isoformat(), threshold)
    if cached is not None:
        return Response(cached)

    lots = Inventory.objects.filter(quantity__gt=0)
    products = annotate_base_stock(Product.objects.all())
    low_stock = products.filter(stock_base_quantity__gt=0, stock_base_quantity__lt=threshold)
    expiring = lots.filter(expiry_date__gte=today, expiry_date__lte=today + timedelta(days=warning_days))

    top_products = (
        lots.values('product_id', 'product__code', 'product__name')
        .annotate(value=Sum(LOT_VALUE), quantity=Sum(BASE_QUANTITY)).order_by('-value')[:10]
    )
    expiring_by_month = (
        lots.filter(expiry_date__gte=today, expiry_date__lt=today + timedelta(days=365))
        .annotate(month=TruncMonth('expiry_date')).values('month')
        .annotate(lot_count=Count('id'), value=Sum(LOT_VALUE)).order_by('month')
    )
    by_category = (
        lots.values('product__category_id', 'product__category__name')
        .annotate(value=Sum(LOT_VALUE), product_count=Count('product', distinct=True)).order_by('-value')
    )

    data = {
        'date': today.isoformat(),
        'totals': {
            'product_count': Product.objects.count(),
            'lot_count': lots.count(),
            'inventory_value': as_float(lots.aggregate(total=Sum(LOT_VALUE))['total']),
            'low_stock_count': low_stock.count(),
            'out_of_stock_count': products.filter(stock_base_quantity__lte=0).count(),
            'expiring_count': expiring.count(),
            'expired_count': lots.filter(expiry_date__lt=today).count(),
        },
        'expiry_warning_days': warning_days,
        'top_products_by_value': [
            {'product_id': row['product_id'], 'code': row['product__code'], 'name': row['product__name'],
             'quantity': as_float(row['quantity']), 'value': as_float(row['value'])}
            for row in top_products
        ],
        'expiring_by_month': [
            {'month': row['month'].strftime('%Y-%m'), 'lot_count': row['lot_count'], 'value': as_float(row['value'])}
            for row in expiring_by_month
        ],
        'expiring_lots': [
            {'id': lot.id, 'product_code': lot.product.code, 'product_name': lot.product.name,
             'unit_name': lot.product_unit.unit.name, 'batch_number': lot.batch_number,
             'expiry_date': lot.expiry_date.isoformat(), 'quantity': as_float(lot.quantity),
             'days_until_expiry': (lot.expiry_date - today).days}
            for lot in expiring.select_related('product', 'product_unit__unit').order_by('expiry_date', 'id')[:20]
        ],
        'low_stock': [
            {'product_id': product.id, 'code': product.code, 'name': product.name,
             'base_unit': product.base_unit.name if product.base_unit_id else None,
             'stock_quantity': as_float(product.stock_base_quantity)}
            for product in low_stock.select_related('base_unit').order_by('stock_base_quantity', 'name')[:20]
        ],
        'by_category': [
            {'category_id': row['product__category_id'], 'name': row['product__category__name'],
             'product_count': row['product_count'], 'value': as_float(row['value'])}
            for row in by_category
        ],
    }
    cache_report(cache_key, data, REPORTS_CACHE_TTL)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchases_report(request):
    """Purchase volume, suppliers and payment state"""
    start, end, previous_start, previous_end = get_date_range(request)
    compare = wants_comparison(request)
    cached, cache_key = get_cached_report('report_purchases', start.isoformat(), end.isoformat(), compare)
    if cached is not None:
        return Response(cached)

    orders = PurchaseOrder.objects.filter(order_date__gte=start, order_date__lte=end)
    totals = purchase_totals(start, end)

    first_month = end.replace(day=1)
    for _ in range(11):
        first_month = (first_month - timedelta(days=1)).replace(day=1)
    monthly = {
        row['month'].strftime('%Y-%m'): row for row in
        PurchaseOrder.objects.filter(order_date__gte=first_month, order_date__lte=end)
        .annotate(month=TruncMonth('order_date')).values('month')
        .annotate(count=Count('id'), total=Sum('total_amount'))
    }
    months = []
    month = first_month
    for _ in range(12):
        key = month.strftime('%Y-%m')
        months.append({'month': key, 'count': monthly.get(key, {}).get('count', 0),
                       'total_amount': as_float(monthly.get(key, {}).get('total'))})
        month = (month + timedelta(days=32)).replace(day=1)

    top_products = (
        PurchaseOrderItem.objects.filter(purchase_order__in=orders)
        .values('product_id', 'product__code', 'product__name')
        .annotate(quantity=Sum(BASE_QUANTITY), amount=Sum(PURCHASE_LINE_TOTAL)).order_by('-amount')[:10]
    )
    top_suppliers = (
        orders.values('supplier_id', 'supplier__name')
        .annotate(count=Count('id'), total=Sum('total_amount')).order_by('-total')[:5]
    )
    status_distribution = {
        row['payment_status']: row for row in
        orders.values('payment_status').annotate(count=Count('id'), total=Sum('total_amount'))
    }

    data = {
        'period': {'from': start.isoformat(), 'to': end.isoformat()},
        'totals': totals,
        'monthly': months,
        'top_products': [
            {'product_id': row['product_id'], 'code': row['product__code'], 'name': row['product__name'],
             'quantity': as_float(row['quantity']), 'amount': as_float(row['amount'])}
            for row in top_products
        ],
        'top_suppliers': [
            {'supplier_id': row['supplier_id'], 'name': row['supplier__name'],
             'count': row['count'], 'total_amount': as_float(row['total'])}
            for row in top_suppliers
        ],
        'payment_status': [
            {'status': value, 'label': label,
             'count': status_distribution.get(value, {}).get('count', 0),
             'total_amount': as_float(status_distribution.get(value, {}).get('total'))}
            for value, label in PurchaseOrder.PAYMENT_STATUS_CHOICES
        ],
    }
    if compare:
        data['comparison'] = comparison_block(totals, purchase_totals(previous_start, previous_end),
                                              previous_start, previous_end)

    cache_report(cache_key, data, REPORTS_CACHE_TTL)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def finance_report(request):
    """Income against expense from the ledger"""
    start, end, previous_start, previous_end = get_date_range(request)
    compare = wants_comparison(request)
    cached, cache_key = get_cached_report('report_finance', start.isoformat(), end.isoformat(), compare)
    if cached is not None:
        return Response(cached)

    start_dt, end_dt = day_bounds(start, end)
    transactions = Transaction.objects.filter(date__gte=start_dt, date__lt=end_dt)
    totals = ledger_totals(start, end)

    days = {}
    for row in (transactions.annotate(day=TruncDate('date')).values('day', 'type')
                .annotate(total=Sum('amount')).order_by('day')):
        entry = days.setdefault(row['day'], {'income': Decimal('0'), 'expense': Decimal('0')})
        entry[row['type']] += row['total'] or Decimal('0')

    by_related_type = {}
    for row in transactions.values('related_type', 'type').annotate(total=Sum('amount'), count=Count('id')):
        entry = by_related_type.setdefault(row['related_type'], {'income': 0.0, 'expense': 0.0, 'count': 0})
        entry[row['type']] = as_float(row['total'])
        entry['count'] += row['count']

    data = {
        'period': {'from': start.isoformat(), 'to': end.isoformat()},
        'totals': totals,
        'by_day': [
            {'date': day.isoformat(), 'income': as_float(values['income']), 'expense': as_float(values['expense']),
             'net': as_float(values['income'] - values['expense'])}
            for day, values in sorted(days.items())
        ],
        'by_related_type': [
            {'related_type': value, 'label': label, **by_related_type.get(value, {'income': 0.0, 'expense': 0.0, 'count': 0})}
            for value, label in Transaction.RELATED_TYPE_CHOICES
        ],
    }
    if compare:
        data['comparison'] = comparison_block(totals, ledger_totals(previous_start, previous_end),
                                              previous_start, previous_end)

    cache_report(cache_key, data, REPORTS_CACHE_TTL)
    return Response(data)
