import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from django.db.models import Q
from .models import Setting, AuditLog
from .permissions import IsAdminRole, is_admin_user
from .serializers import (
    UserSerializer, UserCreateSerializer, PasswordChangeSerializer,
    PharmacyTokenObtainPairSerializer, SettingSerializer, AuditLogSerializer
)
from .utils import create_audit_log

logger = logging.getLogger('pharmacy.core')

User = get_user_model()


class PharmacyTokenObtainPairView(TokenObtainPairView):
    serializer_class = PharmacyTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == status.HTTP_200_OK:
            user_data = response.data.get('user', {})
            logger.info(f"User {user_data.get('username')} logged in as {user_data.get('role')}")
            create_audit_log(
                request=request,
                action='login',
                model_name='User',
                object_id=user_data.get('id'),
                object_name=user_data.get('username'),
                user=User.objects.filter(pk=user_data.get('id')).first(),
            )
        return response


class PharmacyTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class PharmacyTokenRefreshView(TokenRefreshView):
    serializer_class = PharmacyTokenRefreshSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with the capabilities of their role"""
    user = request.user
    user_data = UserSerializer(user).data
    admin = is_admin_user(user)

    user_data['redirect_to'] = user.landing_path
    user_data['can_use_pos'] = True
    user_data['can_manage_catalog'] = admin
    user_data['can_manage_purchasing'] = admin
    user_data['can_manage_staff'] = admin
    user_data['can_access_reports'] = admin
    user_data['can_access_ledger'] = admin
    user_data['can_cancel_invoices'] = admin
    return Response(user_data)


# Staff management
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_list_create(request):
    """List all users or create a new staff account"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        role = request.query_params.get('role')
        search = request.query_params.get('search', '').strip()
        if role:
            users = users.filter(role=role)
        if search:
            users = users.filter(
                Q(username__icontains=search) | Q(full_name__icontains=search) |
                Q(email__icontains=search) | Q(phone__icontains=search)
            )
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            logger.info(f"User {user.username} ({user.role}) created by {request.user.username}")
            create_audit_log(
                request=request,
                action='create',
                model_name='User',
                object_id=user.id,
                object_name=user.username,
                changes={'role': user.role, 'full_name': user.full_name},
            )
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        logger.warning(f"User creation validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        data = UserSerializer(user).data
        data['invoice_count'] = user.invoices.count()
        data['transaction_count'] = user.transactions.count()
        return Response(data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='User',
                object_id=user.id,
                object_name=user.username,
                changes={key: str(value) for key, value in serializer.validated_data.items()},
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        if user.invoices.exists() or user.transactions.exists():
            logger.warning(f"Refused to delete user {user.username}: has invoices or transactions")
            return Response(
                {'error': 'Cannot delete a user who has invoices or transactions. Deactivate the account instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        username = user.username
        user_id = user.id
        user.delete()
        logger.info(f"User {username} deleted by {request.user.username}")
        create_audit_log(request=request, action='delete', model_name='User', object_id=user_id, object_name=username)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_change_password(request, pk):
    """Set a new password for a staff account"""
    user = get_object_or_404(User, pk=pk)
    serializer = PasswordChangeSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user.set_password(serializer.validated_data['new_password'])
    user.save(update_fields=['password', 'updated_at'])
    logger.info(f"Password changed for user {user.username} by {request.user.username}")
    create_audit_log(request=request, action='password_change', model_name='User', object_id=user.id, object_name=user.username)
    return Response({'message': 'Password updated successfully'})


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_list_create(request):
    """List all settings or create a new setting"""
    if request.method == 'GET':
        settings = Setting.objects.all().order_by('key')
        serializer = SettingSerializer(settings, many=True)
        return Response(serializer.data)
    else:
        serializer = SettingSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_detail(request, pk):
    """Retrieve, update or delete a setting"""
    setting = get_object_or_404(Setting, pk=pk)

    if request.method == 'GET':
        serializer = SettingSerializer(setting)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if not is_admin_user(request.user):
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at')
    serializer = AuditLogSerializer(queryset, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not is_admin_user(request.user) and audit_log.user != request.user:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def global_search(request):
    """Search products, categories, suppliers, invoices and purchase orders"""
    query = request.query_params.get('q', '').strip()

    if not query:
        return Response({
            'products': [],
            'categories': [],
            'suppliers': [],
            'invoices': [],
            'purchase_orders': [],
        })

    from pharmacy.catalog.models import Product, Category
    from pharmacy.parties.models import Supplier
    from pharmacy.pos.models import Invoice
    from pharmacy.purchasing.models import PurchaseOrder
    from pharmacy.catalog.serializers import ProductListSerializer, CategorySerializer
    from pharmacy.parties.serializers import SupplierSerializer
    from pharmacy.pos.serializers import InvoiceListSerializer
    from pharmacy.purchasing.serializers import PurchaseOrderListSerializer

    limit = 10
    products = Product.objects.select_related('category', 'base_unit').filter(
        Q(code__icontains=query) | Q(name__icontains=query)
    )[:limit]
    categories = Category.objects.filter(name__icontains=query)[:limit]
    suppliers = Supplier.objects.filter(
        Q(name__icontains=query) | Q(phone__icontains=query) | Q(contact_person__icontains=query)
    )[:limit]

    invoices = Invoice.objects.select_related('user').filter(
        Q(code__icontains=query) | Q(customer_name__icontains=query) | Q(customer_phone__icontains=query)
    )
    if not is_admin_user(request.user):
        invoices = invoices.filter(user=request.user)

    results = {
        'products': ProductListSerializer(products, many=True).data,
        'categories': CategorySerializer(categories, many=True).data,
        'suppliers': SupplierSerializer(suppliers, many=True).data,
        'invoices': InvoiceListSerializer(invoices[:limit], many=True).data,
        'purchase_orders': [],
    }
    if is_admin_user(request.user):
        purchase_orders = PurchaseOrder.objects.select_related('supplier').filter(code__icontains=query)[:limit]
        results['purchase_orders'] = PurchaseOrderListSerializer(purchase_orders, many=True).data

    return Response(results)
