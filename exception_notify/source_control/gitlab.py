"""GitLab backend using the repository files REST API."""

from typing import Optional
from urllib.parse import quote

import httpx

from exception_notify.config import GitLabSettings
from exception_notify.models import AuthorInfo
from exception_notify.source_control.base import (
    SourceControlError,
    SourceControlService,
    find_blame_range,
    parse_timestamp,
    ranges_from_line_counts,
)
from exception_notify.utils.logging import get_logger
from exception_notify.utils.resilience import CircuitBreaker

logger = get_logger(__name__)


class GitLabService(SourceControlService):
    """Author attribution through ``/projects/:id/repository/files/:path/blame``."""

    def __init__(
        self,
        settings: GitLabSettings,
        timeout: float = 5.0,
        http_client: Optional[httpx.Client] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.settings = settings
        super().__init__(timeout=timeout, http_client=http_client, circuit_breaker=circuit_breaker)

    @property
    def name(self) -> str:
        return "gitlab"

    @property
    def branch(self) -> Optional[str]:
        return self.settings.branch

    def is_configured(self) -> bool:
        return bool(self.settings.token and self.settings.project_id and self.settings.branch)

    def _file_url(self, file_path: str, suffix: str) -> str:
        return (
            f"{self.settings.base_url.rstrip('/')}/projects/{quote(str(self.settings.project_id), safe='')}"
            f"/repository/files/{quote(file_path, safe='')}/{suffix}"
        )

    def _fetch_author_info(self, file_path: str, line_number: int) -> Optional[AuthorInfo]:
        response = self._request(
            "GET",
            self._file_url(file_path, "blame"),
            headers={"PRIVATE-TOKEN": self.settings.token},
            params={"ref": self.settings.branch},
        )

        blame = response.json()
        if not isinstance(blame, list):
            raise SourceControlError(f"Unexpected GitLab blame payload for {file_path}")

        ranges = ranges_from_line_counts(
            (len(group.get("lines") or []), group.get("commit") or {})
            for group in blame
        )
        match = find_blame_range(ranges, line_number)
        if match is None:
            logger.warning(f"Could not find blame information for {file_path}:{line_number}")
            return None

        commit = match[2]
        return AuthorInfo(
            name=commit.get("author_name") or "unknown",
            email=commit.get("author_email") or "",
            last_commit_time=parse_timestamp(commit.get("committed_date") or commit.get("authored_date")),
            file_name=file_path,
            line_number=line_number,
            commit_message=commit.get("message"),
        )

    def _fetch_file_content(self, file_path: str) -> Optional[str]:
        response = self._request(
            "GET",
            self._file_url(file_path, "raw"),
            headers={"PRIVATE-TOKEN": self.settings.token},
            params={"ref": self.settings.branch},
        )
        return response.text
