"""DingTalk custom robot provider (markdown messages)."""

from typing import Any, Dict

import httpx

from exception_notify.models import ExceptionRecord
from exception_notify.notification.base import WebhookNotificationProvider, errcode_is_zero


class DingTalkNotificationProvider(WebhookNotificationProvider):
    """Posts a markdown message; the record's author is @-mentioned when mapped."""

    @property
    def name(self) -> str:
        return "dingtalk"

    def build_payload(self, record: ExceptionRecord) -> Dict[str, Any]:
        content = self.formatter.format(record)
        payload: Dict[str, Any] = {
            "msgtype": "markdown",
            "markdown": {
                "title": self.formatter.render_title(record),
                "text": content,
            },
        }

        user_id = self.mention_user_id(record)
        if user_id:
            # DingTalk only notifies users whose @id also appears in the text
            payload["markdown"]["text"] = f"{content}\n\n**Assignee:** @{user_id}"
            payload["at"] = {"atUserIds": [user_id], "isAtAll": False}

        return payload

    def _is_success(self, response: httpx.Response) -> bool:
        return errcode_is_zero(response, "errcode")
