"""
Monitor: log a message and push it to the notification channels.

Unlike :meth:`ExceptionNotificationService.process_exception`, monitor
messages are never deduplicated; every call is delivered.
"""

import inspect
import logging
from typing import Optional

from exception_notify.config import Settings
from exception_notify.models import ExceptionRecord
from exception_notify.notification.manager import NotificationProviderManager
from exception_notify.services.environment import EnvironmentProvider
from exception_notify.services.exception_analyzer import (
    ExceptionAnalyzer,
    frames_from_stack,
    frames_from_traceback,
)
from exception_notify.services.exception_filter import qualified_type_name
from exception_notify.services.trace import TraceInfoProvider
from exception_notify.utils.logging import get_logger

logger = get_logger(__name__)

MONITORED_MESSAGE_TYPE = "MonitoredMessage"


class Monitor:
    """
    Logger-like facade that also notifies.

    Example:
        monitor.warn("Payment provider responded slowly")
        monitor.error("Order import failed", error=exc)
    """

    def __init__(
        self,
        settings: Settings,
        analyzer: ExceptionAnalyzer,
        manager: NotificationProviderManager,
        trace_info_provider: Optional[TraceInfoProvider] = None,
        environment_provider: Optional[EnvironmentProvider] = None,
    ):
        self.settings = settings
        self.analyzer = analyzer
        self.manager = manager
        self.trace_info_provider = trace_info_provider
        self.environment_provider = environment_provider or EnvironmentProvider(settings)

    def info(self, message: str, error: Optional[BaseException] = None, log: Optional[logging.LoggerAdapter] = None) -> bool:
        (log or logger).info(message, exc_info=error)
        return self._notify("INFO", message, error, inspect.currentframe().f_back)

    def warn(self, message: str, error: Optional[BaseException] = None, log: Optional[logging.LoggerAdapter] = None) -> bool:
        (log or logger).warning(message, exc_info=error)
        return self._notify("WARN", message, error, inspect.currentframe().f_back)

    def error(self, message: str, error: Optional[BaseException] = None, log: Optional[logging.LoggerAdapter] = None) -> bool:
        (log or logger).error(message, exc_info=error)
        return self._notify("ERROR", message, error, inspect.currentframe().f_back)

    def build_record(self, level: str, message: str, error: Optional[BaseException] = None, caller=None) -> ExceptionRecord:
        """
        Build the record for a monitor message.

        With an error, its traceback supplies type and location; otherwise
        the type is ``MonitoredMessage`` and the caller's frame is the location.
        """
        correlation_id = self.trace_info_provider.get_trace_id() if self.trace_info_provider else None
        text = f"{level}: {message}"

        if error is not None:
            record = self.analyzer.build_record(
                qualified_type_name(type(error)),
                text,
                frames_from_traceback(error.__traceback__),
                correlation_id,
            )
        else:
            record = self.analyzer.build_record(
                MONITORED_MESSAGE_TYPE,
                text,
                frames_from_stack(caller),
                correlation_id,
            )

        return record.with_environment(self.environment_provider.get_current_environment())

    def _notify(self, level: str, message: str, error: Optional[BaseException], caller) -> bool:
        if not self.settings.enabled:
            return False

        try:
            if not self.environment_provider.should_report():
                return False
            record = self.build_record(level, message, error, caller)
            return self.manager.dispatch(record)
        except Exception as e:
            logger.error(f"Failed to send monitor notification: {e}", exc_info=True)
            return False
