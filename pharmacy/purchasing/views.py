import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from pharmacy.core.cache_utils import invalidate_report_caches
from pharmacy.core.permissions import IsAdminRole
from pharmacy.core.utils import create_audit_log, integrity_error_response, paginate, parse_date
from pharmacy.inventory.services import InventoryError, receive_stock, remove_received_stock
from pharmacy.ledger.services import record_transaction
from .models import PurchaseOrder, PurchaseOrderItem
from .serializers import (
    PurchaseOrderSerializer, PurchaseOrderListSerializer,
    PurchaseOrderItemSerializer, PurchaseOrderPaymentSerializer
)
from .utils import generate_purchase_order_code

logger = logging.getLogger('pharmacy.purchasing')

PAID_ORDER_ERROR = 'This purchase order is fully paid and can no longer be changed'


def purchase_order_queryset():
    return PurchaseOrder.objects.select_related('supplier', 'user').prefetch_related(
        'items__product', 'items__product_unit__unit'
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_order_next_code(request):
    """Suggested code for the next purchase order of the month"""
    return Response({'code': generate_purchase_order_code()})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_order_list_create(request):
    """List purchase orders or create one together with its items"""
    if request.method == 'GET':
        queryset = PurchaseOrder.objects.select_related('supplier', 'user').annotate(item_count=Count('items'))

        supplier = request.query_params.get('supplier')
        payment_status = request.query_params.get('payment_status')
        date_from = parse_date(request.query_params.get('date_from'))
        date_to = parse_date(request.query_params.get('date_to'))
        search = request.query_params.get('search', '').strip()

        if supplier:
            queryset = queryset.filter(supplier_id=supplier)
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)
        if date_from:
            queryset = queryset.filter(order_date__gte=date_from)
        if date_to:
            queryset = queryset.filter(order_date__lte=date_to)
        if search:
            queryset = queryset.filter(Q(code__icontains=search) | Q(supplier__name__icontains=search))

        queryset = queryset.order_by('-order_date', '-id')
        return Response(paginate(request, queryset, PurchaseOrderListSerializer))

    serializer = PurchaseOrderSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        try:
            purchase_order = serializer.save()
        except InventoryError as e:
            logger.warning(f"Purchase order creation refused: {str(e)}")
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except IntegrityError as e:
            return integrity_error_response(e, 'purchase order')
        return Response(PurchaseOrderSerializer(purchase_order_queryset().get(pk=purchase_order.pk)).data,
                        status=status.HTTP_201_CREATED)
    logger.warning(f"Purchase order validation failed: {serializer.errors}")
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_order_detail(request, pk):
    """Retrieve a purchase order or edit its header"""
    purchase_order = get_object_or_404(purchase_order_queryset(), pk=pk)

    if request.method == 'GET':
        return Response(PurchaseOrderSerializer(purchase_order).data)

    if purchase_order.payment_status == 'paid':
        return Response({'error': PAID_ORDER_ERROR}, status=status.HTTP_400_BAD_REQUEST)

    data = request.data.copy()
    data.pop('items', None)
    serializer = PurchaseOrderSerializer(purchase_order, data=data, partial=request.method == 'PATCH',
                                         context={'request': request})
    if serializer.is_valid():
        serializer.save()
        logger.info(f"Purchase order {purchase_order.code} updated by {request.user.username}")
        create_audit_log(request=request, action='update', model_name='PurchaseOrder',
                         object_id=purchase_order.id, object_name=f"Purchase order {purchase_order.code}",
                         object_reference=purchase_order.code,
                         changes={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(PurchaseOrderSerializer(purchase_order_queryset().get(pk=pk)).data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_order_item_create(request, pk):
    """Add an item to an unpaid purchase order and receive it into stock"""
    purchase_order = get_object_or_404(PurchaseOrder, pk=pk)
    if purchase_order.payment_status == 'paid':
        return Response({'error': PAID_ORDER_ERROR}, status=status.HTTP_400_BAD_REQUEST)

    serializer = PurchaseOrderItemSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    with transaction.atomic():
        item = serializer.save(purchase_order=purchase_order)
        receive_stock(item.product, item.product_unit, item.quantity,
                      batch_number=item.batch_number, expiry_date=item.expiry_date)
        purchase_order.recalculate_total()
        purchase_order.refresh_payment_status()

    logger.info(f"Item {item.id} added to purchase order {purchase_order.code} by {request.user.username}")
    create_audit_log(request=request, action='stock_purchase', model_name='PurchaseOrderItem',
                     object_id=item.id, object_name=item.product.name, object_reference=purchase_order.code,
                     changes={'quantity_added': str(item.quantity), 'product_unit': item.product_unit_id,
                              'total_amount': str(purchase_order.total_amount)})
    invalidate_report_caches()
    return Response(PurchaseOrderItemSerializer(item).data, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_order_item_delete(request, pk, item_id):
    """Remove an item from an unpaid purchase order and take its stock back out"""
    purchase_order = get_object_or_404(PurchaseOrder, pk=pk)
    item = get_object_or_404(
        PurchaseOrderItem.objects.select_related('product', 'product_unit'),
        pk=item_id, purchase_order=purchase_order
    )
    if purchase_order.payment_status == 'paid':
        return Response({'error': PAID_ORDER_ERROR}, status=status.HTTP_400_BAD_REQUEST)
    if purchase_order.items.count() <= 1:
        return Response({'error': 'A purchase order needs at least one item'}, status=status.HTTP_400_BAD_REQUEST)

    new_total = purchase_order.total_amount - item.get_line_total()
    paid = purchase_order.get_paid_amount()
    if new_total < paid:
        logger.warning(f"Refused to delete item {item_id} of purchase order {purchase_order.code}: "
                       f"total {new_total} would fall below the {paid} already paid")
        return Response({'error': f'Removing this item would bring the total to {new_total}, '
                                  f'below the {paid} already paid'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        with transaction.atomic():
            remove_received_stock(item.product, item.product_unit, item.quantity,
                                  batch_number=item.batch_number, expiry_date=item.expiry_date)
            item.delete()
            purchase_order.recalculate_total()
            purchase_order.refresh_payment_status()
    except InventoryError as e:
        logger.warning(f"Refused to delete item {item_id} of purchase order {purchase_order.code}: {str(e)}")
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    logger.info(f"Item {item_id} removed from purchase order {purchase_order.code} by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='PurchaseOrderItem',
                     object_id=item_id, object_name=item.product.name, object_reference=purchase_order.code,
                     changes={'quantity_removed': str(item.quantity),
                              'total_amount': str(purchase_order.total_amount)})
    invalidate_report_caches()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def purchase_order_payment(request, pk):
    """Record a payment towards a purchase order"""
    with transaction.atomic():
        purchase_order = get_object_or_404(PurchaseOrder.objects.select_for_update(), pk=pk)
        if purchase_order.payment_status == 'paid':
            return Response({'error': 'This purchase order is already fully paid'},
                            status=status.HTTP_400_BAD_REQUEST)

        serializer = PurchaseOrderPaymentSerializer(data=request.data, context={'purchase_order': purchase_order})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        amount = serializer.validated_data['amount']
        description = (serializer.validated_data.get('description') or '').strip()
        record_transaction(
            'expense', amount, user=request.user,
            description=description or f"Payment for purchase order {purchase_order.code}",
            related_type='purchase', purchase_order=purchase_order,
            payment_method=serializer.validated_data['payment_method'],
        )

        remaining = purchase_order.get_remaining_amount()
        purchase_order.refresh_payment_status()

    logger.info(f"Payment of {amount} recorded for purchase order {purchase_order.code} by {request.user.username}")
    create_audit_log(request=request, action='payment_add', model_name='PurchaseOrder',
                     object_id=purchase_order.id, object_name=f"Purchase order {purchase_order.code}",
                     object_reference=purchase_order.code,
                     changes={'amount': str(amount), 'remaining': str(remaining),
                              'payment_status': purchase_order.payment_status})
    return Response(PurchaseOrderSerializer(purchase_order_queryset().get(pk=pk)).data)
