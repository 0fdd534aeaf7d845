"""Notification entry point used by the other apps"""
import logging

from .push import send_notification

logger = logging.getLogger(__name__)


def notify(user, notification_type, title, body, **data):
    """
    Notify a user in-app and by push.

    Extra keyword arguments end up in the notification data (orderId,
    productId, tradeId ...) and drive the deep link.
    """
    if user is None:
        return None
    payload = {'type': notification_type, **{k: (str(v) if v is not None else None) for k, v in data.items()}}
    result = send_notification(user.pk, title, body, payload)
    logger.debug(f"Notification {notification_type} for user {user.pk}: {result}")
    return result
