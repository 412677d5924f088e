"""
Trace correlation.

The correlation id of the request being handled lives in a context variable,
so it follows the request across ``await`` points and into
``asyncio.to_thread`` workers. Middleware sets it from the inbound trace
header; :class:`DefaultTraceInfoProvider` reads it and builds a Tencent Cloud
Log Service search link for it.
"""

import base64
import json
from abc import ABC, abstractmethod
from contextvars import ContextVar, Token
from typing import Optional
from urllib.parse import urlencode

from exception_notify.config import Settings
from exception_notify.utils.logging import get_logger

logger = get_logger(__name__)

_correlation_id: ContextVar[Optional[str]] = ContextVar("exception_notify_correlation_id", default=None)

CLS_SEARCH_URL = "https://console.cloud.tencent.com/cls/search"


def set_correlation_id(value: Optional[str]) -> Token:
    """Bind a correlation id to the current context; returns a token for :func:`reset_correlation_id`."""
    return _correlation_id.set(value or None)


def reset_correlation_id(token: Token) -> None:
    _correlation_id.reset(token)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


class TraceInfoProvider(ABC):
    """Supplies the current correlation id and links it to a trace backend."""

    @abstractmethod
    def get_trace_id(self) -> Optional[str]:
        """Return the correlation id of the current context, if any."""
        pass

    @abstractmethod
    def generate_trace_url(self, trace_id: str) -> Optional[str]:
        """Return a URL showing the trace, or None if no backend is configured."""
        pass


class DefaultTraceInfoProvider(TraceInfoProvider):
    """Context-variable correlation ids with Tencent CLS search links."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def get_trace_id(self) -> Optional[str]:
        if not self.settings.trace.enabled:
            return None
        return get_correlation_id()

    def generate_trace_url(self, trace_id: str) -> Optional[str]:
        if not trace_id:
            return None

        region = self.settings.tencentcls.region
        topic_id = self.settings.tencentcls.topic_id
        if not region or not topic_id:
            return None

        interactive_query = {
            "filters": [
                {
                    "key": "traceId",
                    "grammarName": "INCLUDE",
                    "values": [{"values": [{"value": trace_id, "isPartialEscape": True}], "isOpen": False}],
                    "alias_name": "traceId",
                    "cnName": "",
                }
            ],
            "sql": {"quotas": [], "dimensions": [], "sequences": [], "limit": 1000, "samplingRate": 1},
            "sqlStr": "",
        }
        encoded_query = base64.b64encode(
            json.dumps(interactive_query, separators=(",", ":")).encode("utf-8")
        ).decode("ascii")

        query = urlencode({
            "region": region,
            "topic_id": topic_id,
            "interactiveQueryBase64": encoded_query,
            "time": "now/d,now/d",
        })
        return f"{CLS_SEARCH_URL}?{query}"
