"""WeChat Work group robot provider (markdown messages)."""

from typing import Any, Dict

import httpx

from exception_notify.models import ExceptionRecord
from exception_notify.notification.base import WebhookNotificationProvider, errcode_is_zero


class WeChatWorkNotificationProvider(WebhookNotificationProvider):

    @property
    def name(self) -> str:
        return "wechatwork"

    def build_payload(self, record: ExceptionRecord) -> Dict[str, Any]:
        content = self.formatter.format(record)

        user_id = self.mention_user_id(record)
        if user_id:
            content += f"\n**Assignee:** <@{user_id}>\n"

        return {"msgtype": "markdown", "markdown": {"content": content}}

    def _is_success(self, response: httpx.Response) -> bool:
        return errcode_is_zero(response, "errcode")
