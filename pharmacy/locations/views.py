import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db.models import Count
from pharmacy.core.permissions import is_admin_user
from pharmacy.core.utils import create_audit_log
from .models import Cabinet, Row, Compartment
from .serializers import (
    CabinetSerializer, CabinetDetailSerializer,
    RowSerializer, RowDetailSerializer, CompartmentSerializer
)

logger = logging.getLogger('pharmacy.locations')


def admin_required_response(request, action):
    logger.warning(f"User {request.user.username} attempted to {action} without admin privileges")
    return Response({'error': f'Only administrators can {action}'}, status=status.HTTP_403_FORBIDDEN)


# Cabinet views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def cabinet_list_create(request):
    """List all cabinets or create a new cabinet (create requires admin)"""
    try:
        if request.method == 'GET':
            cabinets = Cabinet.objects.annotate(row_count=Count('rows')).order_by('name')
            search = request.query_params.get('search', '').strip()
            if search:
                cabinets = cabinets.filter(name__icontains=search)
            serializer = CabinetSerializer(cabinets, many=True)
            return Response(serializer.data)

        if not is_admin_user(request.user):
            return admin_required_response(request, 'create cabinets')

        serializer = CabinetSerializer(data=request.data)
        if serializer.is_valid():
            cabinet = serializer.save()
            logger.info(f"Cabinet '{cabinet.name}' created by {request.user.username}")
            create_audit_log(request=request, action='create', model_name='Cabinet',
                             object_id=cabinet.id, object_name=cabinet.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        logger.warning(f"Cabinet creation validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.error(f"Unexpected error in cabinet_list_create: {str(e)}", exc_info=True)
        return Response({'error': 'An unexpected error occurred'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def cabinet_detail(request, pk):
    """Retrieve, update or delete a cabinet (update/delete requires admin)"""
    cabinet = get_object_or_404(Cabinet, pk=pk)

    if request.method == 'GET':
        return Response(CabinetDetailSerializer(cabinet).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'modify cabinets')

    if request.method in ('PUT', 'PATCH'):
        serializer = CabinetSerializer(cabinet, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            logger.info(f"Cabinet {pk} updated by {request.user.username}")
            create_audit_log(request=request, action='update', model_name='Cabinet',
                             object_id=cabinet.id, object_name=cabinet.name,
                             changes=dict(serializer.validated_data))
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if cabinet.rows.exists():
        logger.warning(f"Refused to delete cabinet {pk}: it still has rows")
        return Response({'error': 'Cannot delete a cabinet that still has rows. Delete its rows first.'},
                        status=status.HTTP_400_BAD_REQUEST)
    name = cabinet.name
    cabinet.delete()
    logger.info(f"Cabinet '{name}' deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Cabinet', object_id=pk, object_name=name)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Row views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def row_list_create(request, cabinet_id):
    """List the rows of a cabinet or add a row to it"""
    cabinet = get_object_or_404(Cabinet, pk=cabinet_id)

    if request.method == 'GET':
        rows = cabinet.rows.annotate(compartment_count=Count('compartments')).order_by('name')
        return Response({
            'cabinet': CabinetSerializer(cabinet).data,
            'rows': RowSerializer(rows, many=True).data,
        })

    if not is_admin_user(request.user):
        return admin_required_response(request, 'create rows')

    serializer = RowSerializer(data=request.data)
    if serializer.is_valid():
        row = serializer.save(cabinet=cabinet)
        logger.info(f"Row '{row.name}' added to cabinet '{cabinet.name}' by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Row',
                         object_id=row.id, object_name=row.name, object_reference=cabinet.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def row_detail(request, pk):
    """Retrieve, update or delete a row"""
    row = get_object_or_404(Row.objects.select_related('cabinet'), pk=pk)

    if request.method == 'GET':
        return Response(RowDetailSerializer(row).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'modify rows')

    if request.method in ('PUT', 'PATCH'):
        serializer = RowSerializer(row, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Row',
                             object_id=row.id, object_name=row.name,
                             changes=dict(serializer.validated_data))
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if row.compartments.exists():
        logger.warning(f"Refused to delete row {pk}: it still has compartments")
        return Response({'error': 'Cannot delete a row that still has compartments. Delete its compartments first.'},
                        status=status.HTTP_400_BAD_REQUEST)
    name = row.name
    row.delete()
    logger.info(f"Row '{name}' deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Row', object_id=pk, object_name=name)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Compartment views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def compartment_list_create(request, row_id):
    """List the compartments of a row or add a compartment to it"""
    row = get_object_or_404(Row.objects.select_related('cabinet'), pk=row_id)

    if request.method == 'GET':
        compartments = row.compartments.select_related('row__cabinet').annotate(
            product_count=Count('products')
        ).order_by('name')
        return Response({
            'row': RowSerializer(row).data,
            'cabinet': CabinetSerializer(row.cabinet).data,
            'compartments': CompartmentSerializer(compartments, many=True).data,
        })

    if not is_admin_user(request.user):
        return admin_required_response(request, 'create compartments')

    serializer = CompartmentSerializer(data=request.data)
    if serializer.is_valid():
        compartment = serializer.save(row=row)
        logger.info(f"Compartment '{compartment.name}' added to row {row.id} by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Compartment',
                         object_id=compartment.id, object_name=compartment.name,
                         object_reference=compartment.location_label)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def compartment_detail(request, pk):
    """Retrieve, update or delete a compartment"""
    compartment = get_object_or_404(Compartment.objects.select_related('row__cabinet'), pk=pk)

    if request.method == 'GET':
        return Response(CompartmentSerializer(compartment).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'modify compartments')

    if request.method in ('PUT', 'PATCH'):
        serializer = CompartmentSerializer(compartment, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Compartment',
                             object_id=compartment.id, object_name=compartment.name,
                             changes=dict(serializer.validated_data))
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if compartment.products.exists():
        logger.warning(f"Refused to delete compartment {pk}: it still holds products")
        return Response({'error': 'Cannot delete a compartment that still holds products. Move the products first.'},
                        status=status.HTTP_400_BAD_REQUEST)
    name = compartment.name
    compartment.delete()
    logger.info(f"Compartment '{name}' deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Compartment', object_id=pk, object_name=name)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def compartment_products(request, pk):
    """
    Products stored in a compartment.

    GET lists them, POST {product: id} moves a product into the compartment,
    DELETE {product: id} takes it out again.
    """
    from pharmacy.catalog.models import Product
    from pharmacy.catalog.serializers import ProductListSerializer

    compartment = get_object_or_404(Compartment.objects.select_related('row__cabinet'), pk=pk)

    if request.method == 'GET':
        products = compartment.products.select_related('category', 'base_unit').order_by('name')
        return Response({
            'compartment': CompartmentSerializer(compartment).data,
            'products': ProductListSerializer(products, many=True).data,
        })

    if not is_admin_user(request.user):
        return admin_required_response(request, 'change compartment products')

    product_id = request.data.get('product') or request.query_params.get('product')
    if not product_id:
        return Response({'error': 'product is required'}, status=status.HTTP_400_BAD_REQUEST)
    product = get_object_or_404(Product, pk=product_id)

    if request.method == 'POST':
        previous = product.compartment_id
        product.compartment = compartment
        product.save(update_fields=['compartment', 'updated_at'])
        logger.info(f"Product {product.code} moved to compartment {compartment.id} by {request.user.username}")
        create_audit_log(request=request, action='update', model_name='Product',
                         object_id=product.id, object_name=product.name, object_reference=product.code,
                         changes={'compartment': {'from': previous, 'to': compartment.id}})
        return Response(ProductListSerializer(product).data)

    # DELETE
    if product.compartment_id != compartment.id:
        return Response({'error': 'Product is not stored in this compartment'}, status=status.HTTP_400_BAD_REQUEST)
    product.compartment = None
    product.save(update_fields=['compartment', 'updated_at'])
    logger.info(f"Product {product.code} removed from compartment {compartment.id} by {request.user.username}")
    create_audit_log(request=request, action='update', model_name='Product',
                     object_id=product.id, object_name=product.name, object_reference=product.code,
                     changes={'compartment': {'from': compartment.id, 'to': None}})
    return Response(status=status.HTTP_204_NO_CONTENT)
