"""
Expo push notification sender.

Messages are built per device token, sent to the Expo Push API in chunks of
100 and the returned tickets are tallied. In-app notifications are stored in
NotificationLog before any push is attempted, so the notification center is
populated even when push delivery fails.
"""
import logging
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings
from django.utils import timezone

from tarodan.core.models import User
from .models import NotificationLog

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = getattr(settings, 'EXPO_PUSH_URL', 'https://exp.host/--/api/v2/push/send')
EXPO_PUSH_TIMEOUT = getattr(settings, 'EXPO_PUSH_TIMEOUT', 10)
EXPO_TOKEN_PREFIX = 'ExponentPushToken'
CHUNK_SIZE = 100
DEFAULT_TTL = 86400

EXPO_HEADERS = {
    'Accept': 'application/json',
    'Accept-Encoding': 'gzip, deflate',
    'Content-Type': 'application/json',
}

NOTIFICATION_ICONS = {
    'order_created': '📦',
    'order_paid': '💰',
    'payment_completed': '💳',
    'payment_failed': '⚠️',
    'payment_refunded': '↩️',
    'order_shipped': '🚚',
    'order_delivered': '✅',
    'order_completed': '🎉',
    'order_cancelled': '❌',
    'offer_received': '💵',
    'offer_accepted': '✅',
    'offer_rejected': '❌',
    'offer_countered': '🔁',
    'trade_received': '🔄',
    'trade_accepted': '✅',
    'trade_rejected': '❌',
    'trade_cancelled': '❌',
    'trade_countered': '🔁',
    'trade_confirmed': '📬',
    'trade_completed': '🎉',
    'collection_liked': '❤️',
    'product_approved': '✅',
    'product_rejected': '❌',
    'membership_expiring': '⏰',
    'listing_expiring': '⏰',
}
DEFAULT_ICON = '🔔'


class ExpoPushError(Exception):
    """Raised when the Expo Push API answers with a non-2xx status"""


def chunk_list(items: List[Any], size: int = CHUNK_SIZE) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def is_expo_token(token: Optional[str]) -> bool:
    return bool(token) and token.startswith(EXPO_TOKEN_PREFIX)


def notification_icon(notification_type: str) -> str:
    return NOTIFICATION_ICONS.get(notification_type, DEFAULT_ICON)


def notification_link(data: Optional[Dict[str, Any]]) -> Optional[str]:
    """Deep link for the notification center, first matching id wins"""
    if not data:
        return None
    if data.get('orderId'):
        return f"/orders/{data['orderId']}"
    if data.get('productId'):
        return f"/listings/{data['productId']}"
    if data.get('tradeId'):
        return f"/trades/{data['tradeId']}"
    if data.get('offerId'):
        return f"/offers/{data['offerId']}"
    if data.get('threadId'):
        return f"/messages/{data['threadId']}"
    if data.get('collectionId'):
        return f"/collections/{data['collectionId']}"
    return None


def channel_for_type(notification_type: Optional[str]) -> str:
    """Android notification channel for a notification type"""
    if notification_type:
        if 'order' in notification_type or 'payment' in notification_type:
            return 'orders'
        if 'message' in notification_type:
            return 'messages'
    return 'default'


def build_messages(tokens: List[str], title: str, body: str, data: Optional[Dict[str, Any]] = None,
                   badge: Optional[int] = None, sound: Optional[str] = 'default',
                   channel_id: Optional[str] = None, priority: Optional[str] = None,
                   ttl: Optional[int] = None) -> List[Dict[str, Any]]:
    """Build one Expo message per valid token; non-Expo tokens are dropped"""
    messages = []
    for token in tokens:
        if not is_expo_token(token):
            continue
        message = {
            'to': token,
            'title': title,
            'body': body,
            'sound': sound or 'default',
            'channelId': channel_id or 'default',
            'priority': priority or 'high',
            'ttl': ttl if ttl is not None else DEFAULT_TTL,
        }
        if data is not None:
            message['data'] = data
        if badge is not None:
            message['badge'] = badge
        messages.append(message)
    return messages


def post_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """POST messages to Expo in chunks and return every ticket"""
    tickets = []
    for chunk in chunk_list(messages, CHUNK_SIZE):
        response = requests.post(EXPO_PUSH_URL, json=chunk, headers=EXPO_HEADERS, timeout=EXPO_PUSH_TIMEOUT)
        if not response.ok:
            raise ExpoPushError(f"Expo Push API error: {response.status_code}")
        tickets.extend(response.json().get('data') or [])
    return tickets


def send_push(job: Dict[str, Any]) -> Dict[str, Any]:
    """
    Send a push notification to explicit device tokens.

    Args:
        job: dict with user_id, push_tokens, title, body and optional data,
             badge, sound, channel_id, priority, ttl

    Returns a result dict; raises ExpoPushError / requests exceptions when
    the Expo API cannot be reached so callers can record the failure.
    """
    user_id = job.get('user_id')
    tokens = job.get('push_tokens') or []
    logger.info(f"Processing push notification for user {user_id}")

    if not tokens:
        logger.warning(f"No push tokens for user {user_id}")
        return {'success': False, 'reason': 'No push tokens'}

    messages = build_messages(
        tokens,
        job['title'],
        job['body'],
        data=job.get('data'),
        badge=job.get('badge'),
        sound=job.get('sound'),
        channel_id=job.get('channel_id'),
        priority=job.get('priority'),
        ttl=job.get('ttl'),
    )
    if not messages:
        logger.warning(f"No valid Expo push tokens for user {user_id}")
        return {'success': False, 'reason': 'No valid Expo tokens'}

    try:
        tickets = post_messages(messages)
    except (ExpoPushError, requests.exceptions.RequestException) as e:
        logger.error(f"Failed to send push notification: {str(e)}")
        raise

    sent = sum(1 for t in tickets if t.get('status') == 'ok')
    failed = sum(1 for t in tickets if t.get('status') == 'error')
    logger.info(f"Push notification sent: {sent} success, {failed} failed")

    return {'success': True, 'sent': sent, 'failed': failed, 'tickets': tickets}


def save_in_app_notification(user_id, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> NotificationLog:
    notification_type = (data or {}).get('type') or 'general'
    payload = dict(data or {})
    payload['icon'] = notification_icon(notification_type)
    payload['link'] = notification_link(data)
    return NotificationLog.objects.create(
        user_id=user_id,
        channel='in_app',
        type=notification_type,
        title=title,
        body=body,
        data=payload,
        status='sent',
        sent_at=timezone.now(),
    )


def record_push_failure(user_id, title: str, body: str, data: Optional[Dict[str, Any]], error: str) -> Optional[NotificationLog]:
    """Keep a failed push attempt next to the in-app row"""
    try:
        return NotificationLog.objects.create(
            user_id=user_id,
            channel='push',
            type=(data or {}).get('type') or 'general',
            title=title,
            body=body,
            data=dict(data or {}),
            status='failed',
            error=error,
        )
    except Exception as e:
        logger.error(f"Failed to record push failure for user {user_id}: {str(e)}")
        return None


def send_notification(user_id, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Store an in-app notification and push it to the user's device.

    Never raises: the in-app row is the record of the notification and push is
    best effort.
    """
    in_app_stored = False
    try:
        save_in_app_notification(user_id, title, body, data)
        in_app_stored = True
    except Exception as e:
        logger.error(f"Failed to store in-app notification: {str(e)}")

    result = {'success': True, 'in_app_stored': in_app_stored, 'push_sent': False}

    try:
        user = User.objects.filter(pk=user_id).only('id', 'push_token').first()
        if not user:
            logger.warning(f"User {user_id} not found")
            result['reason'] = 'User not found'
            return result

        tokens = [user.push_token] if user.push_token else []
        if not tokens:
            result['reason'] = 'No push tokens'
            return result

        notification_type = (data or {}).get('type')
        messages = build_messages(tokens, title, body, data=data, channel_id=channel_for_type(notification_type))
        if not messages:
            logger.warning(f"No valid Expo push tokens for user {user_id}")
            result['reason'] = 'No valid Expo tokens'
            return result

        tickets = post_messages(messages)
        sent = sum(1 for t in tickets if t.get('status') == 'ok')
        result.update({'push_sent': sent > 0, 'sent': sent, 'tickets': tickets})
        return result
    except Exception as e:
        logger.error(f"Failed to process push notification: {str(e)}")
        result['error'] = str(e)
        record_push_failure(user_id, title, body, data, str(e))
        return result


def send_bulk(notifications: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Send several push jobs; a failing job is recorded and the rest continue"""
    results = []
    for job in notifications:
        try:
            outcome = send_push(job)
            results.append({'user_id': job.get('user_id'), **outcome})
        except Exception as e:
            results.append({'user_id': job.get('user_id'), 'success': False, 'error': str(e)})
    return {'results': results}
