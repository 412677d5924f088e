"""
Built-in notification providers.
"""

from exception_notify.notification.providers.dingtalk import DingTalkNotificationProvider
from exception_notify.notification.providers.feishu import FeishuNotificationProvider
from exception_notify.notification.providers.slack import SlackNotificationProvider
from exception_notify.notification.providers.wechatwork import WeChatWorkNotificationProvider

__all__ = [
    "DingTalkNotificationProvider",
    "FeishuNotificationProvider",
    "SlackNotificationProvider",
    "WeChatWorkNotificationProvider",
]
