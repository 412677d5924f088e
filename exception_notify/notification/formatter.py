"""
Notification formatting.

Formatters turn an :class:`ExceptionRecord` into the message body a chat
channel displays. Output is deterministic for a given record and settings.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from exception_notify.config import NotificationSettings
from exception_notify.models import ExceptionRecord

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class NotificationFormatter(ABC):
    """Base class for notification formatters."""

    def __init__(self, settings: Optional[NotificationSettings] = None, branch: Optional[str] = None):
        self.settings = settings or NotificationSettings()
        self.branch = branch

    @abstractmethod
    def format(self, record: ExceptionRecord) -> str:
        """Render the full message body for a record."""
        pass

    def render_title(self, record: ExceptionRecord) -> str:
        template = self.settings.title_template
        return template.replace("${appName}", record.app_name).replace("{appName}", record.app_name)

    def truncate_stack_trace(self, lines: List[str]) -> List[str]:
        """
        Cap stack trace lines at ``max_stacktrace_lines``.

        A summary line ``... (N more lines)`` replaces the hidden lines. A
        limit of zero or less disables truncation.
        """
        max_lines = self.settings.max_stacktrace_lines
        if max_lines <= 0 or len(lines) <= max_lines:
            return list(lines)

        hidden = len(lines) - max_lines
        return list(lines[:max_lines]) + [f"... ({hidden} more lines)"]


class MarkdownNotificationFormatter(NotificationFormatter):
    """Markdown body used by DingTalk, WeChat Work and Slack."""

    def format(self, record: ExceptionRecord) -> str:
        sections = [
            f"# {self.render_title(record)}",
            "---",
            f"**Time:** {record.occurred_at.strftime(DATE_FORMAT)}",
            f"**Type:** {record.error_type}",
            f"**Message:** {record.message}",
            f"**Location:** {record.location or 'unknown'}",
        ]

        if record.environment:
            sections.append(f"**Environment:** {record.environment}")

        if self.branch:
            sections.append(f"**Branch:** {self.branch}")

        author = record.author_info
        if author is not None:
            sections.append(f"**Author:** {author.name} ({author.email})")
            if author.last_commit_time is not None:
                sections.append(f"**Last commit:** {author.last_commit_time.strftime(DATE_FORMAT)}")
            if author.commit_message:
                sections.append(f"**Commit message:** {author.commit_message}")

        if record.correlation_id:
            sections.append(f"**Trace ID:** {record.correlation_id}")
            if record.trace_url:
                sections.append(f"**Trace logs:** [View logs]({record.trace_url})")

        if record.ai_suggestion:
            sections.append("---")
            sections.append("### AI suggestion")
            sections.append(record.ai_suggestion)

        if self.settings.include_stacktrace and record.stack_trace:
            sections.append("---")
            sections.append("### Stack trace")
            stack = "\n".join(self.truncate_stack_trace(record.stack_trace))
            sections.append(f"```python\n{stack}\n```")

        return "\n\n".join(sections)


class PlainTextNotificationFormatter(NotificationFormatter):
    """Plain text body for channels that do not render markdown (Feishu text messages)."""

    def format(self, record: ExceptionRecord) -> str:
        lines = [
            self.render_title(record),
            f"Time: {record.occurred_at.strftime(DATE_FORMAT)}",
            f"Type: {record.error_type}",
            f"Message: {record.message}",
            f"Location: {record.location or 'unknown'}",
        ]

        if record.environment:
            lines.append(f"Environment: {record.environment}")

        if self.branch:
            lines.append(f"Branch: {self.branch}")

        author = record.author_info
        if author is not None:
            lines.append(f"Author: {author.name} ({author.email})")
            if author.last_commit_time is not None:
                lines.append(f"Last commit: {author.last_commit_time.strftime(DATE_FORMAT)}")
            if author.commit_message:
                lines.append(f"Commit message: {author.commit_message}")

        if record.correlation_id:
            lines.append(f"Trace ID: {record.correlation_id}")
            if record.trace_url:
                lines.append(f"Trace logs: {record.trace_url}")

        if record.ai_suggestion:
            lines.append("AI suggestion:")
            lines.append(record.ai_suggestion)

        if self.settings.include_stacktrace and record.stack_trace:
            lines.append("Stack trace:")
            lines.extend(self.truncate_stack_trace(record.stack_trace))

        return "\n".join(lines)
