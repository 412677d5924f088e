"""Slack incoming-webhook provider."""

from typing import Any, Dict, Optional

from exception_notify.config import WebhookChannelSettings
from exception_notify.models import ExceptionRecord
from exception_notify.notification.base import WebhookNotificationProvider
from exception_notify.notification.formatter import NotificationFormatter, PlainTextNotificationFormatter

ERROR_COLOR = "#ff0000"


class SlackNotificationProvider(WebhookNotificationProvider):
    """Posts the report as a red attachment, mentioning the author when mapped."""

    def __init__(self, settings: WebhookChannelSettings, formatter: Optional[NotificationFormatter] = None, **kwargs: Any):
        super().__init__(settings, formatter or PlainTextNotificationFormatter(), **kwargs)

    @property
    def name(self) -> str:
        return "slack"

    def build_payload(self, record: ExceptionRecord) -> Dict[str, Any]:
        text = self.formatter.format(record)

        user_id = self.mention_user_id(record)
        if user_id:
            text = f"<@{user_id}>\n{text}"

        return {
            "text": self.formatter.render_title(record),
            "attachments": [{"color": ERROR_COLOR, "text": text}],
        }
