"""Request helpers, audit logging and pagination"""
import logging

from .models import AuditLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('HTTP_X_REAL_IP') or request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (order_status, payment_complete, etc.)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_reference: Reference identifier (e.g., order number, trade number)
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
            object_reference=object_reference,
            changes=changes or {},
            ip_address=ip_address
        )
    except Exception as e:
        # Audit logging never fails the main operation
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def get_pagination_params(request, default_limit=DEFAULT_PAGE_SIZE):
    """Read page/limit query params, clamped to sane values"""
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(request.query_params.get('limit', default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit


def paginate(queryset, request, serializer_class, context=None, default_limit=DEFAULT_PAGE_SIZE):
    """
    Slice a queryset for the requested page and serialize it.

    Fetches one extra row to detect whether a next page exists instead of
    running a separate COUNT for the has-next check.
    """
    page, limit = get_pagination_params(request, default_limit)
    offset = (page - 1) * limit

    page_results = list(queryset[offset:offset + limit + 1])
    has_next = len(page_results) > limit
    if has_next:
        page_results = page_results[:limit]

    serializer = serializer_class(page_results, many=True, context=context or {'request': request})
    return {
        'results': serializer.data,
        'count': queryset.count(),
        'next': page + 1 if has_next else None,
        'previous': page - 1 if page > 1 else None,
        'page': page,
        'page_size': limit,
    }
