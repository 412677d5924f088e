"""
Gitee backend.

Gitee's blame endpoint needs the exact repository path, so the path derived
from a module name is first resolved against the repository tree.
"""

from typing import Any, Dict, List, Optional

import httpx

from exception_notify.config import GiteeSettings
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


def score_path_match(candidate: str, file_path: str) -> int:
    """
    Score how well a repository path matches a requested file path.

    Matching trailing path components count most; a bare file-name match
    still scores so that files moved under a source root are found.
    """
    if candidate == file_path:
        return 1000

    score = 0
    simple_name = file_path.rsplit("/", 1)[-1]
    if candidate == simple_name or candidate.endswith("/" + simple_name):
        score += 10

    if "/" in file_path:
        if file_path in candidate:
            score += 20

        wanted = file_path.split("/")
        parts = candidate.split("/")
        matching = 0
        for left, right in zip(reversed(wanted), reversed(parts)):
            if left != right:
                break
            matching += 1
        score += matching * 5

    return score


class GiteeService(SourceControlService):
    """Author attribution through the Gitee v5 REST API."""

    def __init__(
        self,
        settings: GiteeSettings,
        timeout: float = 5.0,
        http_client: Optional[httpx.Client] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.settings = settings
        self._path_cache: Dict[str, Optional[str]] = {}
        super().__init__(timeout=timeout, http_client=http_client, circuit_breaker=circuit_breaker)

    @property
    def name(self) -> str:
        return "gitee"

    @property
    def branch(self) -> Optional[str]:
        return self.settings.branch

    def is_configured(self) -> bool:
        return bool(self.settings.token and self.settings.repo_owner and self.settings.repo_name)

    def _repo_url(self) -> str:
        return f"{self.settings.api_url.rstrip('/')}/repos/{self.settings.repo_owner}/{self.settings.repo_name}"

    def _params(self, **extra: Any) -> Dict[str, Any]:
        return {"access_token": self.settings.token, **extra}

    def resolve_file_path(self, file_path: str) -> Optional[str]:
        """
        Find the repository path best matching ``file_path``.

        Results are cached per process; the tree is fetched once per unknown path.

        Raises:
            SourceControlError: If the tree cannot be read
        """
        if not file_path or not file_path.strip():
            return None
        if file_path in self._path_cache:
            return self._path_cache[file_path]

        response = self._request(
            "GET",
            f"{self._repo_url()}/git/trees/{self.settings.branch}",
            params=self._params(recursive=1),
        )
        tree: List[Dict[str, Any]] = response.json().get("tree") or []
        blobs = [item.get("path", "") for item in tree if item.get("type") == "blob"]

        best_match: Optional[str] = None
        best_score = 0
        for candidate in blobs:
            score = score_path_match(candidate, file_path)
            if score > best_score:
                best_match, best_score = candidate, score

        if best_match is None:
            logger.warning(f"File '{file_path}' not found in Gitee repository tree")
        else:
            logger.debug(f"Resolved {file_path} to {best_match} (score: {best_score})")

        self._path_cache[file_path] = best_match
        return best_match

    def _fetch_author_info(self, file_path: str, line_number: int) -> Optional[AuthorInfo]:
        resolved_path = self.resolve_file_path(file_path)
        if resolved_path is None:
            return None

        response = self._request(
            "GET",
            f"{self._repo_url()}/blame/{resolved_path}",
            params=self._params(ref=self.settings.branch),
        )
        blame = response.json()
        if not isinstance(blame, list):
            raise SourceControlError(f"Unexpected Gitee blame payload for {resolved_path}")

        ranges = ranges_from_line_counts(
            (len(group.get("lines") or []), group.get("commit") or {})
            for group in blame
        )
        match = find_blame_range(ranges, line_number)
        if match is None:
            logger.warning(f"Could not find author information for line {line_number} in file {resolved_path}")
            return None

        commit = match[2]
        committer = commit.get("committer") or commit.get("author") or {}
        return AuthorInfo(
            name=committer.get("name") or "unknown",
            email=committer.get("email") or "",
            last_commit_time=parse_timestamp(committer.get("date")),
            file_name=resolved_path,
            line_number=line_number,
            commit_message=commit.get("message"),
        )

    def _fetch_file_content(self, file_path: str) -> Optional[str]:
        resolved_path = self.resolve_file_path(file_path)
        if resolved_path is None:
            return None

        response = self._request(
            "GET",
            f"{self._repo_url()}/raw/{resolved_path}",
            params=self._params(ref=self.settings.branch),
        )
        return response.text
