"""Utility functions for audit logging, pagination and date ranges"""
import logging
from datetime import datetime, date, timedelta

from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response

from .models import AuditLog

logger = logging.getLogger('pharmacy.core')


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, update, delete, invoice_create, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., product name)
        object_reference: Reference identifier (e.g., invoice code, purchase order code)
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        ip_address = get_client_ip(request) if request else None

        if not action or not model_name or not object_id:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        return AuditLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=ip_address
        )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def integrity_error_response(error, label):
    error_msg = str(error)
    logger.error(f"IntegrityError saving {label}: {error_msg}", exc_info=True)
    if 'unique' in error_msg.lower():
        return Response({'error': f'A {label} with these values already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'error': f'Database error occurred while saving {label}'}, status=status.HTTP_400_BAD_REQUEST)


CODE_ATTEMPTS = 5


def create_with_generated_code(model, generate_code, **fields):
    """
    Create a row whose unique `code` comes from generate_code().

    Two writers can compute the same next code. The later insert fails on
    the unique index inside a savepoint and is retried with a freshly
    generated code; after CODE_ATTEMPTS failures the IntegrityError is raised.
    """
    for attempt in range(1, CODE_ATTEMPTS + 1):
        code = generate_code()
        try:
            with transaction.atomic():
                return model.objects.create(code=code, **fields)
        except IntegrityError:
            if attempt == CODE_ATTEMPTS:
                raise
            logger.warning(f"{model.__name__} code {code} already taken, retrying (attempt {attempt})")


def paginate(request, queryset, serializer_class, default_limit=15, context=None):
    """Paginate a queryset the way every list endpoint reports pages"""
    try:
        page = int(request.query_params.get('page', 1))
        limit = int(request.query_params.get('limit', default_limit))
    except (TypeError, ValueError):
        page, limit = 1, default_limit
    limit = max(1, min(limit, 200))

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)

    serializer = serializer_class(page_obj, many=True, context=context or {'request': request})
    return {
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    }


def parse_date(value):
    """Parse a YYYY-MM-DD query parameter, returning None when absent or invalid"""
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        return None


def get_date_range(request):
    """
    Read date_from/date_to from the query string.

    Defaults to the current month up to today. Returns (start, end) dates and
    the previous period of the same length for comparisons.
    """
    today = timezone.localdate()
    start = parse_date(request.query_params.get('date_from')) or today.replace(day=1)
    end = parse_date(request.query_params.get('date_to')) or today
    if start > end:
        start, end = end, start

    length = (end - start).days + 1
    previous_end = start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=length - 1)
    return start, end, previous_start, previous_end


def day_bounds(start, end):
    """Aware datetimes covering [start 00:00, end+1 00:00)"""
    tz = timezone.get_current_timezone()
    start_dt = timezone.make_aware(datetime.combine(start, datetime.min.time()), tz)
    end_dt = timezone.make_aware(datetime.combine(end + timedelta(days=1), datetime.min.time()), tz)
    return start_dt, end_dt
