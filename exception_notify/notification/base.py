"""
Base notification provider interfaces.

A provider delivers one :class:`ExceptionRecord` to one channel. Providers
never raise out of :meth:`NotificationProvider.send`; failures are logged
and reported as ``False`` so one broken channel cannot affect the others.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import httpx

from exception_notify.config import WebhookChannelSettings
from exception_notify.models import ExceptionRecord
from exception_notify.notification.formatter import MarkdownNotificationFormatter, NotificationFormatter
from exception_notify.utils.logging import get_logger, log_api_call
from exception_notify.utils.resilience import retry_with_backoff

logger = get_logger(__name__)


class DeliveryError(Exception):
    """Raised when a channel rejects or does not acknowledge a message."""
    pass


def find_mention(email: Optional[str], mapping: Mapping[str, List[str]]) -> Optional[str]:
    """
    Find the chat user id whose git emails include ``email``.

    Args:
        email: Author email from source attribution
        mapping: Chat user id -> list of git emails

    Returns:
        The first matching user id, or None
    """
    if not email or not mapping:
        return None

    wanted = email.strip().lower()
    for user_id, emails in mapping.items():
        if any(wanted == candidate.strip().lower() for candidate in emails or []):
            return user_id
    return None


class NotificationProvider(ABC):
    """Base interface for notification channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name used in logs and metrics."""
        pass

    @abstractmethod
    def is_enabled(self) -> bool:
        pass

    @abstractmethod
    def send(self, record: ExceptionRecord) -> bool:
        """
        Deliver a record.

        Returns:
            True if the channel accepted the message
        """
        pass


class AbstractNotificationProvider(NotificationProvider):
    """
    Provider base that turns any delivery exception into ``False``.

    Subclasses implement :meth:`_do_send`.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    def send(self, record: ExceptionRecord) -> bool:
        if not self.is_enabled():
            logger.debug(f"{self.name} notification provider is not enabled")
            return False

        try:
            return self._do_send(record)
        except Exception as e:
            logger.error(
                f"Error sending notification through {self.name}: {e}",
                extra={"provider": self.name, "error_type": record.error_type},
            )
            return False

    @abstractmethod
    def _do_send(self, record: ExceptionRecord) -> bool:
        pass


class WebhookNotificationProvider(AbstractNotificationProvider):
    """
    Provider posting a JSON payload to an incoming-webhook URL.

    Transport errors are retried with backoff; any non-2xx response (or a
    2xx body the channel marks as an error) fails the delivery.
    """

    def __init__(
        self,
        settings: WebhookChannelSettings,
        formatter: Optional[NotificationFormatter] = None,
        enabled: bool = True,
        timeout: float = 5.0,
        http_client: Optional[httpx.Client] = None,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
    ):
        self.settings = settings
        self.formatter = formatter or MarkdownNotificationFormatter()
        self.enabled = enabled
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._client = http_client or httpx.Client(timeout=httpx.Timeout(timeout))

    def is_enabled(self) -> bool:
        return bool(self.enabled and self.settings.webhook)

    @abstractmethod
    def build_payload(self, record: ExceptionRecord) -> Dict[str, Any]:
        """Build the channel-specific JSON body."""
        pass

    def mention_user_id(self, record: ExceptionRecord) -> Optional[str]:
        """Chat user id to @-mention for the record's author, if configured."""
        if not self.settings.mention_enabled or record.author_info is None:
            return None
        return find_mention(record.author_info.email, self.settings.mentions)

    def _is_success(self, response: httpx.Response) -> bool:
        return response.is_success

    def _do_send(self, record: ExceptionRecord) -> bool:
        payload = self.build_payload(record)

        post = retry_with_backoff(
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            exceptions=(httpx.TransportError,),
        )(self._post)
        response = post(payload)

        if not self._is_success(response):
            raise DeliveryError(f"{self.name} rejected notification: HTTP {response.status_code} {response.text[:200]}")

        logger.debug(f"{self.name} response: {response.text[:200]}", extra={"provider": self.name})
        return True

    def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        start_time = time.perf_counter()
        try:
            response = self._client.post(self.settings.webhook, json=payload)
        except httpx.HTTPError as e:
            log_api_call(
                logger, self.name, self._log_endpoint(), "POST",
                duration_ms=(time.perf_counter() - start_time) * 1000,
                error=str(e),
            )
            raise

        log_api_call(
            logger, self.name, self._log_endpoint(), "POST",
            status_code=response.status_code,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            error=None if response.is_success else f"HTTP {response.status_code}",
        )
        return response

    def _log_endpoint(self) -> str:
        # Webhook URLs embed their secret, log the host only
        return httpx.URL(self.settings.webhook).host

    def close(self) -> None:
        self._client.close()


def errcode_is_zero(response: httpx.Response, field: str = "errcode") -> bool:
    """Check a 2xx JSON response whose body carries a numeric status field."""
    if not response.is_success:
        return False
    try:
        body = response.json()
    except ValueError:
        return True
    if not isinstance(body, dict) or field not in body:
        return True
    return body.get(field) == 0
