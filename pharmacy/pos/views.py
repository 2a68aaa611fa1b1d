import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db import IntegrityError, transaction
from django.db.models import Count, Prefetch, Q, Sum
from django.utils import timezone
from pharmacy.catalog.models import Product, ProductUnit
from pharmacy.core.cache_utils import invalidate_report_caches
from pharmacy.core.permissions import IsAdminRole, is_admin_user
from pharmacy.core.utils import create_audit_log, integrity_error_response, paginate, parse_date, day_bounds
from pharmacy.inventory.models import Inventory
from pharmacy.inventory.services import InsufficientStockError, InventoryError, restock_returned
from pharmacy.ledger.services import record_transaction
from .models import Invoice
from .serializers import InvoiceSerializer, InvoiceListSerializer, InvoiceCancelSerializer, PosProductSerializer
from .utils import generate_invoice_code

logger = logging.getLogger('pharmacy.pos')


def invoice_queryset():
    return Invoice.objects.select_related('user', 'cancelled_by').prefetch_related(
        'items__product', 'items__product_unit__unit'
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def pos_products(request):
    """
    Product search for the sales screen.

    Each word of ?search= must match the product code or name. Only products
    with at least one unit are returned; ?in_stock=true keeps those with
    stock on hand.
    """
    products = Product.objects.select_related('category', 'compartment__row__cabinet').prefetch_related(
        Prefetch('units', queryset=ProductUnit.objects.select_related('unit'))
    ).filter(units__isnull=False).distinct()

    search = request.query_params.get('search', '').strip()
    for word in search.split():
        products = products.filter(Q(code__icontains=word) | Q(name__icontains=word))
    if request.query_params.get('in_stock', '').lower() == 'true':
        products = products.filter(inventory_lots__quantity__gt=0).distinct()

    try:
        limit = int(request.query_params.get('limit', 30))
    except (TypeError, ValueError):
        limit = 30
    products = list(products.order_by('name')[:max(1, min(limit, 100))])

    rows = Inventory.objects.filter(product__in=products).values('product_unit_id').annotate(total=Sum('quantity'))
    available_quantities = {row['product_unit_id']: row['total'] for row in rows}
    serializer = PosProductSerializer(products, many=True, context={'available_quantities': available_quantities})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def invoice_next_code(request):
    """Code the next invoice of the day will get"""
    return Response({'code': generate_invoice_code()})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def invoice_list_create(request):
    """List invoices (staff see their own) or record a sale"""
    if request.method == 'GET':
        queryset = Invoice.objects.select_related('user').annotate(item_count=Count('items'))
        if not is_admin_user(request.user):
            queryset = queryset.filter(user=request.user)

        status_filter = request.query_params.get('status')
        user_filter = request.query_params.get('user')
        payment_method = request.query_params.get('payment_method')
        date_from = parse_date(request.query_params.get('date_from'))
        date_to = parse_date(request.query_params.get('date_to'))
        search = request.query_params.get('search', '').strip()

        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if user_filter:
            queryset = queryset.filter(user_id=user_filter)
        if payment_method:
            queryset = queryset.filter(payment_method=payment_method)
        if date_from:
            queryset = queryset.filter(invoice_date__gte=day_bounds(date_from, date_from)[0])
        if date_to:
            queryset = queryset.filter(invoice_date__lt=day_bounds(date_to, date_to)[1])
        if search:
            queryset = queryset.filter(
                Q(code__icontains=search) | Q(customer_name__icontains=search) |
                Q(customer_phone__icontains=search)
            )

        queryset = queryset.order_by('-invoice_date', '-id')
        return Response(paginate(request, queryset, InvoiceListSerializer, default_limit=20))

    serializer = InvoiceSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        logger.warning(f"Invoice validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        invoice = serializer.save()
    except InsufficientStockError as e:
        logger.warning(f"Sale refused for {request.user.username}: {str(e)}")
        return Response({
            'error': str(e),
            'product_unit': e.product_unit.id,
            'requested': str(e.requested),
            'available': str(e.available),
        }, status=status.HTTP_400_BAD_REQUEST)
    except InventoryError as e:
        logger.warning(f"Sale refused for {request.user.username}: {str(e)}")
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except IntegrityError as e:
        return integrity_error_response(e, 'invoice')

    invoice = invoice_queryset().get(pk=invoice.pk)
    create_audit_log(
        request=request,
        action='invoice_create',
        model_name='Invoice',
        object_id=invoice.id,
        object_name=f"Invoice {invoice.code}",
        object_reference=invoice.code,
        changes={
            'total_amount': str(invoice.total_amount),
            'discount': str(invoice.discount),
            'final_amount': str(invoice.final_amount),
            'items': [f"{item.product.name} x{item.quantity} {item.product_unit.unit.name}"
                      for item in invoice.items.all()],
        }
    )
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def invoice_detail(request, pk):
    """Retrieve an invoice; staff can only open their own"""
    invoice = get_object_or_404(invoice_queryset(), pk=pk)
    if not is_admin_user(request.user) and invoice.user_id != request.user.id:
        return Response({'error': 'You do not have permission to view this invoice'},
                        status=status.HTTP_403_FORBIDDEN)
    return Response(InvoiceSerializer(invoice).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def invoice_cancel(request, pk):
    """
    Cancel a completed invoice.

    Every line's stock goes back to the lots it was sold from and the sale
    amount is booked back out as an expense.
    """
    serializer = InvoiceCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    reason = (serializer.validated_data.get('reason') or '').strip()

    with transaction.atomic():
        invoice = get_object_or_404(Invoice.objects.select_for_update(), pk=pk)
        if invoice.status != 'completed':
            return Response({'error': 'Only completed invoices can be cancelled'},
                            status=status.HTTP_400_BAD_REQUEST)

        returned = []
        for item in invoice.items.select_related('product', 'product_unit__unit'):
            restock_returned(item.product, item.product_unit, item.quantity, allocations=item.allocations)
            returned.append(f"{item.product.name} x{item.quantity} {item.product_unit.unit.name}")

        invoice.status = 'cancelled'
        invoice.cancelled_at = timezone.now()
        invoice.cancelled_by = request.user
        invoice.cancel_reason = reason
        invoice.save(update_fields=['status', 'cancelled_at', 'cancelled_by', 'cancel_reason', 'updated_at'])

        if invoice.final_amount > 0:
            record_transaction(
                'expense', invoice.final_amount, user=request.user,
                description=f"Cancelled invoice {invoice.code}" + (f": {reason}" if reason else ''),
                related_type='invoice', invoice=invoice,
                payment_method=invoice.payment_method,
            )

    logger.info(f"Invoice {invoice.code} cancelled by {request.user.username}")
    create_audit_log(request=request, action='stock_return', model_name='Invoice',
                     object_id=invoice.id, object_name=f"Invoice {invoice.code}",
                     object_reference=invoice.code, changes={'returned': returned})
    create_audit_log(request=request, action='invoice_cancel', model_name='Invoice',
                     object_id=invoice.id, object_name=f"Invoice {invoice.code}",
                     object_reference=invoice.code,
                     changes={'reason': reason, 'final_amount': str(invoice.final_amount)})
    invalidate_report_caches()
    return Response(InvoiceSerializer(invoice_queryset().get(pk=pk)).data)
