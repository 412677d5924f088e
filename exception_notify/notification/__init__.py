"""
Notification layer: formatters, providers and the fan-out manager.
"""

from exception_notify.notification.base import (
    AbstractNotificationProvider,
    DeliveryError,
    NotificationProvider,
    WebhookNotificationProvider,
    find_mention,
)
from exception_notify.notification.formatter import (
    MarkdownNotificationFormatter,
    NotificationFormatter,
    PlainTextNotificationFormatter,
)
from exception_notify.notification.manager import NotificationProviderManager

__all__ = [
    "AbstractNotificationProvider",
    "DeliveryError",
    "NotificationProvider",
    "WebhookNotificationProvider",
    "find_mention",
    "MarkdownNotificationFormatter",
    "NotificationFormatter",
    "PlainTextNotificationFormatter",
    "NotificationProviderManager",
]
