"""
Utility modules for exception notification.
"""

from exception_notify.utils.logging import (
    get_logger,
    setup_logging,
    JSONFormatter,
    ContextLoggerAdapter,
    log_api_call,
    log_dispatch_result,
)
from exception_notify.utils.metrics import (
    PipelineMetrics,
    track_delivery,
    emit_metric,
)
from exception_notify.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
    retry_with_backoff,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "JSONFormatter",
    "ContextLoggerAdapter",
    "log_api_call",
    "log_dispatch_result",
    "PipelineMetrics",
    "track_delivery",
    "emit_metric",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "retry_with_backoff",
]
