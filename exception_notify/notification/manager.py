"""
Notification provider manager.

Fans a record out to every enabled provider. Each provider is attempted
once and isolated from the others: a provider that raises or returns
``False`` does not stop the rest.
"""

from typing import List, Optional, Sequence

from exception_notify.models import ExceptionRecord
from exception_notify.notification.base import NotificationProvider
from exception_notify.utils.logging import get_logger, log_dispatch_result
from exception_notify.utils.metrics import PipelineMetrics, track_delivery

logger = get_logger(__name__)


class NotificationProviderManager:
    """Registry of notification providers and the fan-out dispatcher."""

    def __init__(self, providers: Sequence[NotificationProvider] = (), metrics: Optional[PipelineMetrics] = None):
        self._providers: List[NotificationProvider] = list(providers)
        self.metrics = metrics

        logger.info(f"Initialized NotificationProviderManager with {len(self._providers)} provider(s)")
        for provider in self._providers:
            logger.info(f"Found notification provider: {provider.name}")

    def register(self, provider: NotificationProvider) -> None:
        """Register an additional provider; registering the same instance twice is a no-op."""
        if provider in self._providers:
            return
        self._providers.append(provider)
        logger.info(f"Registered notification provider: {provider.name}")

    def list_providers(self) -> List[NotificationProvider]:
        return list(self._providers)

    def dispatch(self, record: ExceptionRecord) -> bool:
        """
        Send a record through all enabled providers.

        Returns:
            True if at least one provider delivered the notification
        """
        if not self._providers:
            logger.warning("No notification providers available")
            return False

        delivered = False
        for provider in self._providers:
            try:
                if not provider.is_enabled():
                    continue
            except Exception as e:
                logger.error(f"Error checking notification provider {provider.name}: {e}")
                continue

            outcome = {"success": False}
            try:
                with track_delivery(self.metrics, provider.name) as outcome:
                    outcome["success"] = bool(provider.send(record))
            except Exception as e:
                logger.error(
                    f"Error sending notification through {provider.name}: {e}",
                    exc_info=True,
                    extra={"provider": provider.name, "error_type": record.error_type},
                )

            log_dispatch_result(
                logger,
                provider.name,
                outcome["success"],
                error_type=record.error_type,
                duration_ms=outcome.get("duration_ms"),
            )
            if outcome["success"]:
                delivered = True

        return delivered
