import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from pharmacy.core.permissions import is_admin_user
from pharmacy.core.utils import create_audit_log, integrity_error_response, paginate
from pharmacy.inventory.services import annotate_base_stock, available_quantities_by_unit, product_stock_summary
from .filters import ProductFilter
from .models import Category, Unit, UsageRoute, Product, ProductUnit
from .serializers import (
    CategorySerializer, CategoryTreeSerializer, UnitSerializer, UsageRouteSerializer,
    ProductListSerializer, ProductSerializer, ProductUnitSerializer
)

logger = logging.getLogger('pharmacy.catalog')


def admin_required_response(request, action):
    logger.warning(f"User {request.user.username} attempted to {action} without admin privileges")
    return Response({'error': f'Only administrators can {action}'}, status=status.HTTP_403_FORBIDDEN)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        categories = Category.objects.select_related('parent').annotate(
            product_count=Count('products', distinct=True),
            children_count=Count('children', distinct=True),
        ).order_by('name')
        search = request.query_params.get('search', '').strip()
        parent = request.query_params.get('parent')
        if search:
            categories = categories.filter(name__icontains=search)
        if parent == 'root':
            categories = categories.filter(parent__isnull=True)
        elif parent:
            categories = categories.filter(parent_id=parent)
        return Response(CategorySerializer(categories, many=True).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'create categories')

    serializer = CategorySerializer(data=request.data)
    if serializer.is_valid():
        category = serializer.save()
        logger.info(f"Category '{category.name}' created by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Category',
                         object_id=category.id, object_name=category.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def category_tree(request):
    """Categories as a nested tree of root categories and their children"""
    categories = list(Category.objects.order_by('name'))
    children_map = {}
    for category in categories:
        children_map.setdefault(category.parent_id, []).append(category)
    product_counts = dict(
        Product.objects.values('category_id').annotate(total=Count('id')).values_list('category_id', 'total')
    )
    serializer = CategoryTreeSerializer(
        children_map.get(None, []), many=True,
        context={'children_map': children_map, 'product_counts': product_counts}
    )
    return Response(serializer.data)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category.objects.select_related('parent'), pk=pk)

    if request.method == 'GET':
        data = CategorySerializer(category).data
        data['children'] = CategorySerializer(category.children.all(), many=True).data
        return Response(data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'modify categories')

    if request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            logger.info(f"Category {pk} updated by {request.user.username}")
            create_audit_log(request=request, action='update', model_name='Category',
                             object_id=category.id, object_name=category.name,
                             changes={'name': category.name, 'parent': category.parent_id})
            return Response(serializer.data)
        logger.warning(f"Category {pk} update rejected: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if category.products.exists():
        return Response({'error': 'Cannot delete a category that still has products'},
                        status=status.HTTP_400_BAD_REQUEST)
    if category.children.exists():
        return Response({'error': 'Cannot delete a category that still has subcategories'},
                        status=status.HTTP_400_BAD_REQUEST)
    name = category.name
    category.delete()
    logger.info(f"Category '{name}' deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Category', object_id=pk, object_name=name)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Unit views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def unit_list_create(request):
    """List all units or create a new unit"""
    if request.method == 'GET':
        units = Unit.objects.annotate(product_count=Count('product_units__product', distinct=True)).order_by('name')
        search = request.query_params.get('search', '').strip()
        if search:
            units = units.filter(name__icontains=search)
        return Response(UnitSerializer(units, many=True).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'create units')

    serializer = UnitSerializer(data=request.data)
    if serializer.is_valid():
        try:
            unit = serializer.save()
        except IntegrityError as e:
            return integrity_error_response(e, 'unit')
        logger.info(f"Unit '{unit.name}' created by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Unit', object_id=unit.id, object_name=unit.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def unit_detail(request, pk):
    """Retrieve, update or delete a unit"""
    unit = get_object_or_404(Unit, pk=pk)

    if request.method == 'GET':
        data = UnitSerializer(unit).data
        product_units = unit.product_units.select_related('product').order_by('product__name')
        data['products'] = [
            {
                'product_id': pu.product_id,
                'product_code': pu.product.code,
                'product_name': pu.product.name,
                'conversion_factor': str(pu.conversion_factor),
                'is_base_unit': pu.is_base_unit,
            }
            for pu in product_units
        ]
        return Response(data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'modify units')

    if request.method in ('PUT', 'PATCH'):
        serializer = UnitSerializer(unit, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            try:
                serializer.save()
            except IntegrityError as e:
                return integrity_error_response(e, 'unit')
            create_audit_log(request=request, action='update', model_name='Unit',
                             object_id=unit.id, object_name=unit.name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if unit.product_units.exists() or unit.base_unit_products.exists():
        return Response({'error': 'Cannot delete a unit that is used by products'},
                        status=status.HTTP_400_BAD_REQUEST)
    name = unit.name
    unit.delete()
    logger.info(f"Unit '{name}' deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Unit', object_id=pk, object_name=name)
    return Response(status=status.HTTP_204_NO_CONTENT)


# UsageRoute views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def usage_route_list_create(request):
    """List all usage routes or create a new one"""
    if request.method == 'GET':
        return Response(UsageRouteSerializer(UsageRoute.objects.order_by('name'), many=True).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'create usage routes')

    serializer = UsageRouteSerializer(data=request.data)
    if serializer.is_valid():
        usage_route = serializer.save()
        create_audit_log(request=request, action='create', model_name='UsageRoute',
                         object_id=usage_route.id, object_name=usage_route.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def usage_route_detail(request, pk):
    """Retrieve, update or delete a usage route"""
    usage_route = get_object_or_404(UsageRoute, pk=pk)

    if request.method == 'GET':
        return Response(UsageRouteSerializer(usage_route).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'modify usage routes')

    if request.method in ('PUT', 'PATCH'):
        serializer = UsageRouteSerializer(usage_route, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if usage_route.products.exists():
        return Response({'error': 'Cannot delete a usage route that is assigned to products'},
                        status=status.HTTP_400_BAD_REQUEST)
    usage_route.delete()
    create_audit_log(request=request, action='delete', model_name='UsageRoute', object_id=pk)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List products (filtered, paginated) or create a product with its base unit"""
    if request.method == 'GET':
        queryset = annotate_base_stock(
            Product.objects.select_related('category', 'base_unit', 'compartment__row__cabinet')
        )
        filterset = ProductFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs.order_by('name', 'id')
        return Response(paginate(request, queryset, ProductListSerializer, default_limit=20))

    if not is_admin_user(request.user):
        return admin_required_response(request, 'create products')

    serializer = ProductSerializer(data=request.data)
    if serializer.is_valid():
        try:
            product = serializer.save()
        except IntegrityError as e:
            return integrity_error_response(e, 'product')
        logger.info(f"Product {product.code} created by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Product',
                         object_id=product.id, object_name=product.name, object_reference=product.code,
                         changes={'base_unit': product.base_unit.name if product.base_unit else None})
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
    logger.warning(f"Product creation validation failed: {serializer.errors}")
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(
        Product.objects.select_related('category', 'usage_route', 'base_unit', 'compartment__row__cabinet'),
        pk=pk
    )

    if request.method == 'GET':
        data = ProductSerializer(product).data
        data['stock'] = product_stock_summary(product)
        return Response(data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'modify products')

    if request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            try:
                serializer.save()
            except IntegrityError as e:
                return integrity_error_response(e, 'product')
            logger.info(f"Product {product.code} updated by {request.user.username}")
            create_audit_log(request=request, action='update', model_name='Product',
                             object_id=product.id, object_name=product.name, object_reference=product.code)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if product.inventory_lots.exists():
        return Response({'error': 'Cannot delete a product that has inventory records'},
                        status=status.HTTP_400_BAD_REQUEST)
    if product.invoice_items.exists():
        return Response({'error': 'Cannot delete a product that appears on invoices'},
                        status=status.HTTP_400_BAD_REQUEST)
    if product.purchase_items.exists():
        return Response({'error': 'Cannot delete a product that appears on purchase orders'},
                        status=status.HTTP_400_BAD_REQUEST)

    code, name = product.code, product.name
    with transaction.atomic():
        product.units.all().delete()
        product.delete()
    logger.info(f"Product {code} deleted by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='Product',
                     object_id=pk, object_name=name, object_reference=code)
    return Response(status=status.HTTP_204_NO_CONTENT)


# ProductUnit views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_unit_list_create(request, pk):
    """List the units of a product or attach another unit to it"""
    product = get_object_or_404(Product, pk=pk)

    if request.method == 'GET':
        units = product.units.select_related('unit')
        serializer = ProductUnitSerializer(
            units, many=True, context={'available_quantities': available_quantities_by_unit(product)}
        )
        return Response(serializer.data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'change product units')

    serializer = ProductUnitSerializer(data=request.data, context={'product': product})
    if serializer.is_valid():
        try:
            product_unit = serializer.save()
        except IntegrityError as e:
            return integrity_error_response(e, 'product unit')
        logger.info(f"Unit {product_unit.unit.name} (x{product_unit.conversion_factor}) added to product {product.code}")
        create_audit_log(request=request, action='create', model_name='ProductUnit',
                         object_id=product_unit.id, object_name=product.name, object_reference=product.code,
                         changes={
                             'unit': product_unit.unit.name,
                             'conversion_factor': str(product_unit.conversion_factor),
                             'cost_price': str(product_unit.cost_price),
                             'selling_price': str(product_unit.selling_price),
                         })
        return Response(ProductUnitSerializer(product_unit).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_unit_detail(request, pk, unit_id):
    """Retrieve, update or delete one unit of a product"""
    product_unit = get_object_or_404(ProductUnit.objects.select_related('product', 'unit'), pk=unit_id, product_id=pk)

    if request.method == 'GET':
        return Response(ProductUnitSerializer(product_unit).data)

    if not is_admin_user(request.user):
        return admin_required_response(request, 'change product units')

    if request.method in ('PUT', 'PATCH'):
        old_prices = {'cost_price': str(product_unit.cost_price), 'selling_price': str(product_unit.selling_price)}
        serializer = ProductUnitSerializer(
            product_unit, data=request.data, partial=request.method == 'PATCH',
            context={'product': product_unit.product}
        )
        if serializer.is_valid():
            try:
                product_unit = serializer.save()
            except IntegrityError as e:
                return integrity_error_response(e, 'product unit')
            new_prices = {'cost_price': str(product_unit.cost_price), 'selling_price': str(product_unit.selling_price)}
            create_audit_log(request=request,
                             action='price_change' if new_prices != old_prices else 'update',
                             model_name='ProductUnit', object_id=product_unit.id,
                             object_name=product_unit.product.name, object_reference=product_unit.product.code,
                             changes={'from': old_prices, 'to': new_prices})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if product_unit.is_base_unit:
        return Response({'error': 'Cannot delete the base unit. Set another unit as base first.'},
                        status=status.HTTP_400_BAD_REQUEST)
    if product_unit.inventory_lots.exists():
        return Response({'error': 'Cannot delete a unit that has inventory records'},
                        status=status.HTTP_400_BAD_REQUEST)
    if product_unit.invoice_items.exists() or product_unit.purchase_items.exists():
        return Response({'error': 'Cannot delete a unit that appears on invoices or purchase orders'},
                        status=status.HTTP_400_BAD_REQUEST)
    unit_name = product_unit.unit.name
    product = product_unit.product
    product_unit.delete()
    logger.info(f"Unit {unit_name} removed from product {product.code} by {request.user.username}")
    create_audit_log(request=request, action='delete', model_name='ProductUnit', object_id=unit_id,
                     object_name=product.name, object_reference=product.code, changes={'unit': unit_name})
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def product_unit_set_base(request, pk, unit_id):
    """
    Make one of the product's units its base unit.

    The chosen unit gets conversion factor 1; every other unit of the product
    loses the base flag. Other factors are left as entered, so they still
    express the old base unit; the response lists those units under
    `factors_to_review` until an admin updates them.
    """
    if not is_admin_user(request.user):
        return admin_required_response(request, 'change product units')

    product = get_object_or_404(Product, pk=pk)
    product_unit = get_object_or_404(ProductUnit.objects.select_related('unit'), pk=unit_id, product=product)

    with transaction.atomic():
        previous = product.units.filter(is_base_unit=True).select_related('unit').first()
        product.units.update(is_base_unit=False)
        product_unit.is_base_unit = True
        product_unit.conversion_factor = Decimal('1')
        product_unit.save(update_fields=['is_base_unit', 'conversion_factor', 'updated_at'])
        product.base_unit = product_unit.unit
        product.save(update_fields=['base_unit', 'updated_at'])

    logger.info(f"Base unit of product {product.code} set to {product_unit.unit.name} by {request.user.username}")
    create_audit_log(request=request, action='base_unit_change', model_name='Product',
                     object_id=product.id, object_name=product.name, object_reference=product.code,
                     changes={'from': previous.unit.name if previous else None, 'to': product_unit.unit.name})
    units = product.units.select_related('unit')
    to_review = [unit.id for unit in units if not unit.is_base_unit]
    if to_review:
        logger.warning(f"Product {product.code} has {len(to_review)} unit factors still relative to the old base unit")
    return Response({
        'units': ProductUnitSerializer(units, many=True).data,
        'factors_to_review': to_review,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_lookup(request):
    """Find products by exact code or name fragment, for quick pickers"""
    query = request.query_params.get('q', '').strip()
    if not query:
        return Response([])
    products = Product.objects.select_related('category', 'base_unit').filter(
        Q(code__iexact=query) | Q(code__icontains=query) | Q(name__icontains=query)
    ).order_by('name')[:20]
    return Response(ProductListSerializer(products, many=True).data)
