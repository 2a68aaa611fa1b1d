import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db.models import Count, Q, Sum
from pharmacy.core.permissions import is_admin_user
from pharmacy.core.utils import create_audit_log
from .models import Supplier
from .serializers import SupplierSerializer

logger = logging.getLogger('pharmacy.parties')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supplier_list_create(request):
    """List all suppliers or create a new supplier"""
    if request.method == 'GET':
        suppliers = Supplier.objects.annotate(purchase_order_count=Count('purchase_orders')).order_by('name')
        search = request.query_params.get('search', '').strip()
        if search:
            suppliers = suppliers.filter(
                Q(name__icontains=search) | Q(contact_person__icontains=search) |
                Q(phone__icontains=search) | Q(email__icontains=search)
            )
        return Response(SupplierSerializer(suppliers, many=True).data)

    if not is_admin_user(request.user):
        logger.warning(f"User {request.user.username} attempted to create supplier without admin privileges")
        return Response({'error': 'Only administrators can create suppliers'}, status=status.HTTP_403_FORBIDDEN)

    serializer = SupplierSerializer(data=request.data)
    if serializer.is_valid():
        supplier = serializer.save()
        logger.info(f"Supplier '{supplier.name}' created by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Supplier',
                         object_id=supplier.id, object_name=supplier.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    logger.warning(f"Supplier creation validation failed: {serializer.errors}")
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def supplier_detail(request, pk):
    """Retrieve, update or delete a supplier"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        from pharmacy.purchasing.serializers import PurchaseOrderListSerializer

        data = SupplierSerializer(supplier).data
        orders = supplier.purchase_orders.select_related('supplier').order_by('-order_date', '-id')
        totals = orders.aggregate(total_amount=Sum('total_amount'))
        data['total_purchase_amount'] = str(totals['total_amount'] or 0)
        data['recent_purchase_orders'] = PurchaseOrderListSerializer(orders[:10], many=True).data
        return Response(data)

    if not is_admin_user(request.user):
        logger.warning(f"User {request.user.username} attempted to modify supplier {pk} without admin privileges")
        return Response({'error': 'Only administrators can modify suppliers'}, status=status.HTTP_403_FORBIDDEN)

    if request.method in ('PUT', 'PATCH'):
        serializer = SupplierSerializer(supplier, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            logger.info(f"Supplier {pk} updated by {request.user.username}")
            create_audit_log(request=request, action='update', model_name='Supplier',
                             object_id=supplier.id, object_name=supplier.name,
                             changes=dict(serializer.validated_data))
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if supplier.purchase_orders.exists():
        logger.warning(f"Refused to delete supplier {pk}: it has purchase orders")
        return Response({'error': 'Cannot delete a supplier that has purchase orders'},
                        status=status.HTTP_400_BAD_REQUEST)
    name = supplier.name
    supplier.delete()
    logger.info(f"Supplier '{name}' deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Supplier', object_id=pk, object_name=name)
    return Response(status=status.HTTP_204_NO_CONTENT)
