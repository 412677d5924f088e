"""
Core services of the exception notification pipeline.
"""

from exception_notify.services.ai_suggestion import AiSuggestionService, OpenAiSuggestionService
from exception_notify.services.deduplication import DeduplicationCache
from exception_notify.services.environment import EnvironmentProvider
from exception_notify.services.exception_analyzer import ExceptionAnalyzer, StackFrame
from exception_notify.services.exception_filter import DefaultExceptionFilter, ExceptionFilter
from exception_notify.services.notification_service import ExceptionNotificationService
from exception_notify.services.trace import (
    DefaultTraceInfoProvider,
    TraceInfoProvider,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

__all__ = [
    "AiSuggestionService",
    "OpenAiSuggestionService",
    "DeduplicationCache",
    "EnvironmentProvider",
    "ExceptionAnalyzer",
    "StackFrame",
    "DefaultExceptionFilter",
    "ExceptionFilter",
    "ExceptionNotificationService",
    "DefaultTraceInfoProvider",
    "TraceInfoProvider",
    "get_correlation_id",
    "reset_correlation_id",
    "set_correlation_id",
]
