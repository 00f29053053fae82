"""
Notification Services

Event handlers for audit comments and party notifications, and the
notifier that delivers them.
"""

from .notifier import Notification, Notifier, LoggingNotifier, WebhookNotifier, build_notifier
from .handlers import SystemCommentHandler, NotificationHandler, system_comment_text

__all__ = [
    'Notification',
    'Notifier',
    'LoggingNotifier',
    'WebhookNotifier',
    'build_notifier',
    'SystemCommentHandler',
    'NotificationHandler',
    'system_comment_text',
]
