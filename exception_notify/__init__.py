"""
exception-notify: exception alerts with source attribution, deduplication
and chat channel fan-out.

Typical setup:

    from exception_notify import create_notification_service
    from exception_notify.middleware import add_exception_notify_middleware

    service = create_notification_service()
    add_exception_notify_middleware(app, service)
"""

from exception_notify.bootstrap import create_monitor, create_notification_service
from exception_notify.config import Settings, get_settings
from exception_notify.decorators import notify_exceptions
from exception_notify.models import AuthorInfo, ExceptionRecord
from exception_notify.monitor import Monitor
from exception_notify.services import ExceptionNotificationService

__version__ = "0.1.0"

__all__ = [
    "create_monitor",
    "create_notification_service",
    "Settings",
    "get_settings",
    "notify_exceptions",
    "AuthorInfo",
    "ExceptionRecord",
    "Monitor",
    "ExceptionNotificationService",
]
