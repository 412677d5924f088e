"""Feishu (Lark) custom bot provider (plain text messages)."""

from typing import Any, Dict, Optional

import httpx

from exception_notify.config import WebhookChannelSettings
from exception_notify.models import ExceptionRecord
from exception_notify.notification.base import WebhookNotificationProvider, errcode_is_zero
from exception_notify.notification.formatter import NotificationFormatter, PlainTextNotificationFormatter


class FeishuNotificationProvider(WebhookNotificationProvider):
    """
    Posts a text message.

    Feishu bots do not render markdown in text messages, so the plain text
    formatter is the default.
    """

    def __init__(self, settings: WebhookChannelSettings, formatter: Optional[NotificationFormatter] = None, **kwargs: Any):
        super().__init__(settings, formatter or PlainTextNotificationFormatter(), **kwargs)

    @property
    def name(self) -> str:
        return "feishu"

    def build_payload(self, record: ExceptionRecord) -> Dict[str, Any]:
        text = self.formatter.format(record)

        user_id = self.mention_user_id(record)
        if user_id:
            author_name = record.author_info.name if record.author_info else user_id
            text += f'\nAssignee: <at user_id="{user_id}">{author_name}</at>'

        return {"msg_type": "text", "content": {"text": text}}

    def _is_success(self, response: httpx.Response) -> bool:
        return errcode_is_zero(response, "code")
