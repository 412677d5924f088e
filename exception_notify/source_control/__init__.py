"""
Source control backends for author attribution.

Backends are tried in registration order by the exception analyzer; the
first one returning author information wins.
"""

from exception_notify.source_control.base import (
    SourceControlError,
    SourceControlService,
    SourceNotFoundError,
)
from exception_notify.source_control.gitee import GiteeService
from exception_notify.source_control.github import GitHubService
from exception_notify.source_control.gitlab import GitLabService

__all__ = [
    "SourceControlError",
    "SourceControlService",
    "SourceNotFoundError",
    "GitHubService",
    "GitLabService",
    "GiteeService",
]
