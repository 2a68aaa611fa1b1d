import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db.models import Q, Sum
from pharmacy.core.permissions import IsAdminRole
from pharmacy.core.utils import create_audit_log, paginate, parse_date, day_bounds
from .models import Transaction
from .serializers import TransactionSerializer

logger = logging.getLogger('pharmacy.ledger')


def filter_transactions(request, queryset):
    params = request.query_params
    transaction_type = params.get('type')
    if transaction_type in ('income', 'expense'):
        queryset = queryset.filter(type=transaction_type)
    related_type = params.get('related_type')
    if related_type in ('invoice', 'purchase', 'other'):
        queryset = queryset.filter(related_type=related_type)

    date_from = parse_date(params.get('date_from'))
    date_to = parse_date(params.get('date_to'))
    if date_from:
        queryset = queryset.filter(date__gte=day_bounds(date_from, date_from)[0])
    if date_to:
        queryset = queryset.filter(date__lt=day_bounds(date_to, date_to)[1])

    search = params.get('search', '').strip()
    if search:
        queryset = queryset.filter(
            Q(description__icontains=search) | Q(invoice__code__icontains=search) |
            Q(purchase_order__code__icontains=search)
        )
    return queryset


def ledger_totals(queryset):
    totals = queryset.aggregate(
        income=Sum('amount', filter=Q(type='income')),
        expense=Sum('amount', filter=Q(type='expense')),
    )
    income = totals['income'] or Decimal('0')
    expense = totals['expense'] or Decimal('0')
    return {'income': str(income), 'expense': str(expense), 'balance': str(income - expense)}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def transaction_list_create(request):
    """
    List ledger entries or record a manual income/expense.

    Entries tied to invoices and purchase orders are written by those
    workflows; this endpoint only creates entries with related_type 'other'.
    """
    if request.method == 'GET':
        transactions = filter_transactions(
            request,
            Transaction.objects.select_related('user', 'invoice', 'purchase_order')
        ).order_by('-date', '-id')
        data = paginate(request, transactions, TransactionSerializer, default_limit=20)
        data['totals'] = ledger_totals(transactions)
        return Response(data)

    serializer = TransactionSerializer(data=request.data)
    if serializer.is_valid():
        entry = serializer.save(user=request.user, related_type='other')
        logger.info(f"Manual {entry.type} transaction {entry.id} of {entry.amount} recorded by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Transaction',
                         object_id=entry.id, object_name=entry.description[:255],
                         changes={'type': entry.type, 'amount': str(entry.amount)})
        return Response(TransactionSerializer(entry).data, status=status.HTTP_201_CREATED)
    logger.warning(f"Transaction validation failed: {serializer.errors}")
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def transaction_detail(request, pk):
    """Retrieve a ledger entry; manual entries can also be edited or deleted"""
    entry = get_object_or_404(Transaction.objects.select_related('user', 'invoice', 'purchase_order'), pk=pk)

    if request.method == 'GET':
        return Response(TransactionSerializer(entry).data)

    if not entry.is_manual:
        return Response({'error': 'Only manual transactions can be changed. '
                                  'Sale and purchase entries follow their invoice or purchase order.'},
                        status=status.HTTP_400_BAD_REQUEST)

    if request.method in ('PUT', 'PATCH'):
        serializer = TransactionSerializer(entry, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Transaction',
                             object_id=entry.id, object_name=entry.description[:255],
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    entry.delete()
    logger.info(f"Manual transaction {pk} deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Transaction', object_id=pk)
    return Response(status=status.HTTP_204_NO_CONTENT)
