import logging
from datetime import timedelta
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.conf import settings
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from pharmacy.catalog.models import Product
from pharmacy.core.utils import paginate
from .models import Inventory
from .serializers import InventorySerializer
from .services import annotate_base_stock, fefo_ordering, product_stock_summary

logger = logging.getLogger('pharmacy.inventory')


def _int_param(request, name, default):
    try:
        return int(request.query_params.get(name, default))
    except (TypeError, ValueError):
        return default


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_list(request):
    """List inventory lots with filtering"""
    queryset = Inventory.objects.select_related('product', 'product_unit__unit')

    product = request.query_params.get('product')
    product_unit = request.query_params.get('product_unit')
    batch_number = request.query_params.get('batch_number', '').strip()
    search = request.query_params.get('search', '').strip()
    in_stock = request.query_params.get('in_stock')
    expired = request.query_params.get('expired')
    expiring_within = request.query_params.get('expiring_within')

    if product:
        queryset = queryset.filter(product_id=product)
    if product_unit:
        queryset = queryset.filter(product_unit_id=product_unit)
    if batch_number:
        queryset = queryset.filter(batch_number__icontains=batch_number)
    if search:
        queryset = queryset.filter(Q(product__code__icontains=search) | Q(product__name__icontains=search))
    if in_stock in ('true', '1'):
        queryset = queryset.filter(quantity__gt=0)

    today = timezone.localdate()
    if expired in ('true', '1'):
        queryset = queryset.filter(expiry_date__lt=today)
    if expiring_within:
        days = _int_param(request, 'expiring_within', settings.EXPIRY_WARNING_DAYS)
        queryset = queryset.filter(expiry_date__gte=today, expiry_date__lte=today + timedelta(days=days))

    queryset = queryset.order_by(*fefo_ordering())
    return Response(paginate(request, queryset, InventorySerializer, default_limit=20))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_detail(request, pk):
    """Retrieve one inventory lot"""
    lot = get_object_or_404(Inventory.objects.select_related('product', 'product_unit__unit'), pk=pk)
    return Response(InventorySerializer(lot).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_expiring(request):
    """Lots with stock expiring within `days` days (default from settings)"""
    days = _int_param(request, 'days', settings.EXPIRY_WARNING_DAYS)
    today = timezone.localdate()
    lots = (
        Inventory.objects.select_related('product', 'product_unit__unit')
        .filter(quantity__gt=0, expiry_date__gte=today, expiry_date__lte=today + timedelta(days=days))
        .order_by('expiry_date', 'product__name')
    )
    data = InventorySerializer(lots, many=True).data
    for row, lot in zip(data, lots):
        row['days_until_expiry'] = (lot.expiry_date - today).days
    return Response({'days': days, 'count': len(data), 'results': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_low_stock(request):
    """Products whose stock in base units is below the low-stock threshold"""
    threshold = _int_param(request, 'threshold', settings.LOW_STOCK_THRESHOLD)
    products = (
        annotate_base_stock(Product.objects.select_related('category', 'base_unit'))
        .filter(stock_base_quantity__lt=threshold)
        .order_by('stock_base_quantity', 'name')
    )
    from pharmacy.catalog.serializers import ProductListSerializer
    return Response({
        'threshold': threshold,
        'count': products.count(),
        'results': ProductListSerializer(products, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_stock(request, pk):
    """Per-unit and per-lot stock of a product, with its total in base units"""
    product = get_object_or_404(Product.objects.select_related('base_unit'), pk=pk)
    logger.debug(f"User {request.user.username} requested stock for product {product.code}")
    return Response(product_stock_summary(product), status=status.HTTP_200_OK)
