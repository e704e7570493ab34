"""收件人自己的通知箱：列表、未读数、标记已读。"""

import logging

from ..access import require_caller
from ..exceptions import ForbiddenError, NotFoundError, ValidationError
from ..models import Notification

logger = logging.getLogger(__name__)


def list_notifications(caller, limit=None, unread_only=False):
    caller = require_caller(caller)

    qs = Notification.objects.filter(recipient=caller)
    if unread_only:
        qs = qs.filter(is_read=False)
    qs = qs.order_by('-created_at', '-id')

    if limit is not None:
        if limit <= 0:
            raise ValidationError(message='limit must be a positive integer', code='INVALID_LIMIT')
        qs = qs[:limit]
    return list(qs)


def unread_count(caller):
    """未登录时返回 0，前端铃铛在登录前也会轮询。"""
    if caller is None:
        return 0
    return Notification.objects.filter(recipient=caller, is_read=False).count()


def mark_as_read(caller, notification_id):
    caller = require_caller(caller)

    try:
        notification = Notification.objects.get(pk=notification_id)
    except Notification.DoesNotExist:
        raise NotFoundError(
            message='Notification not found',
            code='NOTIFICATION_NOT_FOUND',
            detail={'notification_id': str(notification_id)},
        )

    if notification.recipient_id != caller.id:
        raise ForbiddenError(
            message="Cannot mark other user's notifications as read",
            code='NOT_OWNER',
        )

    if not notification.is_read:
        notification.is_read = True
        notification.save(update_fields=['is_read'])
    return notification


def mark_all_as_read(caller):
    caller = require_caller(caller)
    count = Notification.objects.filter(recipient=caller, is_read=False).update(is_read=True)
    logger.info("[inbox] user=%s marked %d notification(s) as read", caller.id, count)
    return count
