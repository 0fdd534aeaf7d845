from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.utils import timezone
from tarodan.core.utils import paginate
from .models import NotificationLog
from .serializers import NotificationSerializer, PushTokenSerializer


def _in_app_notifications(user):
    return NotificationLog.objects.filter(user=user, channel='in_app')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_list(request):
    """List the current user's in-app notifications, newest first"""
    notifications = _in_app_notifications(request.user)
    if request.query_params.get('unread', '').lower() == 'true':
        notifications = notifications.filter(is_read=False)
    notification_type = request.query_params.get('type')
    if notification_type:
        notifications = notifications.filter(type=notification_type)
    data = paginate(notifications, request, NotificationSerializer)
    data['unread_count'] = _in_app_notifications(request.user).filter(is_read=False).count()
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_unread_count(request):
    count = _in_app_notifications(request.user).filter(is_read=False).count()
    return Response({'count': count})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_mark_read(request, pk):
    """Mark one notification as read"""
    notification = get_object_or_404(NotificationLog, pk=pk, user=request.user)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = timezone.now()
        notification.save(update_fields=['is_read', 'read_at'])
    return Response(NotificationSerializer(notification).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_mark_all_read(request):
    """Mark every unread notification as read"""
    updated = _in_app_notifications(request.user).filter(is_read=False).update(
        is_read=True, read_at=timezone.now()
    )
    return Response({'updated': updated})


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def push_token(request):
    """Register (POST) or clear (DELETE) the device push token"""
    user = request.user
    if request.method == 'DELETE':
        user.push_token = None
        user.save(update_fields=['push_token', 'updated_at'])
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = PushTokenSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    user.push_token = serializer.validated_data['token'] or None
    user.save(update_fields=['push_token', 'updated_at'])
    return Response({'registered': bool(user.push_token)})
