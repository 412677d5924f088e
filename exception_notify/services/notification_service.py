"""
Exception notification orchestration.

This module drives the whole pipeline for one exception:
- Global enable switch and environment gate
- Exception filter
- Analysis (frame selection, source attribution, trace link)
- Deduplication
- Optional AI suggestion
- Fan-out to notification providers
"""

from typing import Any, Dict, Optional

from exception_notify.config import Settings
from exception_notify.models import ExceptionRecord
from exception_notify.notification.manager import NotificationProviderManager
from exception_notify.services.ai_suggestion import AiSuggestionService
from exception_notify.services.deduplication import DeduplicationCache
from exception_notify.services.environment import EnvironmentProvider
from exception_notify.services.exception_analyzer import ExceptionAnalyzer
from exception_notify.services.exception_filter import DefaultExceptionFilter, ExceptionFilter, qualified_type_name
from exception_notify.services.trace import TraceInfoProvider
from exception_notify.utils.logging import get_logger
from exception_notify.utils.metrics import PipelineMetrics, emit_metric

logger = get_logger(__name__)


class ExceptionNotificationService:
    """Entry point used by the middleware, the decorator and direct callers."""

    def __init__(
        self,
        settings: Settings,
        analyzer: ExceptionAnalyzer,
        manager: NotificationProviderManager,
        deduplication_cache: Optional[DeduplicationCache] = None,
        exception_filter: Optional[ExceptionFilter] = None,
        environment_provider: Optional[EnvironmentProvider] = None,
        trace_info_provider: Optional[TraceInfoProvider] = None,
        ai_suggestion_service: Optional[AiSuggestionService] = None,
        metrics: Optional[PipelineMetrics] = None,
    ):
        self.settings = settings
        self.analyzer = analyzer
        self.manager = manager
        if deduplication_cache is None:
            # An injected cache is started by its owner
            deduplication_cache = DeduplicationCache(settings.notification.deduplication)
            deduplication_cache.start()
        self.deduplication_cache = deduplication_cache
        self.exception_filter = exception_filter or DefaultExceptionFilter(settings.notification.ignored_exceptions)
        self.environment_provider = environment_provider or EnvironmentProvider(settings)
        self.trace_info_provider = trace_info_provider
        self.ai_suggestion_service = ai_suggestion_service
        self.metrics = metrics or manager.metrics or PipelineMetrics()
        if manager.metrics is None:
            manager.metrics = self.metrics

    def process_exception(self, error: BaseException, correlation_id: Optional[str] = None) -> bool:
        """
        Process an exception and send notifications if needed.

        Never raises.

        Args:
            error: The exception to report
            correlation_id: Trace id; read from the trace provider when omitted

        Returns:
            True if at least one provider delivered the notification
        """
        try:
            return self._process(error, correlation_id)
        except Exception as e:
            self._record_outcome("failed", qualified_type_name(type(error)))
            logger.error(f"Error processing exception notification: {e}", exc_info=True)
            return False

    def _process(self, error: BaseException, correlation_id: Optional[str]) -> bool:
        if not self.settings.enabled:
            logger.debug("Exception notification is disabled")
            return False

        environment = self.environment_provider.get_current_environment()
        if not self.environment_provider.should_report(environment):
            logger.debug(f"Exception notification is disabled for the current environment: {environment}")
            return False

        self.metrics.record("processed")

        if not self.exception_filter.should_notify(error):
            self._record_outcome("filtered", qualified_type_name(type(error)))
            logger.debug(f"Exception filtered out: {qualified_type_name(type(error))}")
            return False

        if correlation_id is None and self.trace_info_provider is not None:
            correlation_id = self.trace_info_provider.get_trace_id()

        record = self.analyzer.analyze(error, correlation_id).with_environment(environment)

        if not self.deduplication_cache.should_notify(record):
            self._record_outcome("suppressed", record.error_type)
            logger.info(
                f"Duplicate exception suppressed: {record.error_type}",
                extra={"error_type": record.error_type, "correlation_id": record.correlation_id},
            )
            return False

        record = self._add_ai_suggestion(record)

        delivered = self.manager.dispatch(record)
        if delivered:
            self._record_outcome("delivered", record.error_type)
            logger.info(
                f"Exception notification sent for: {record.error_type}",
                extra={"error_type": record.error_type, "correlation_id": record.correlation_id},
            )
        else:
            self._record_outcome("failed", record.error_type)
            logger.warning(
                f"No notification channels were successful for exception: {record.error_type}",
                extra={"error_type": record.error_type, "correlation_id": record.correlation_id},
            )
        return delivered

    def _add_ai_suggestion(self, record: ExceptionRecord) -> ExceptionRecord:
        service = self.ai_suggestion_service
        if service is None or not service.is_available():
            return record

        code_context = None
        if self.settings.ai.include_code_context:
            code_context = self.analyzer.get_code_context(record, self.settings.ai.code_context_lines)

        suggestion = service.get_suggestion(record, code_context)
        if not suggestion:
            return record
        return record.with_ai_suggestion(suggestion)

    def _record_outcome(self, outcome: str, error_type: str) -> None:
        self.metrics.record(outcome)
        emit_metric(f"exception_notify.{outcome}", 1, error_type=error_type)

    def stats(self) -> Dict[str, Any]:
        """Pipeline counters plus the current deduplication cache size."""
        summary = self.metrics.get_metrics_summary()
        summary["dedup_cache_size"] = self.deduplication_cache.size()
        return summary

    def shutdown(self) -> None:
        """Stop the deduplication sweeper."""
        self.deduplication_cache.stop()
