"""
GitHub backend.

Blame comes from the GraphQL API (the REST API has no blame endpoint); file
content from the REST contents endpoint using the raw media type.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from exception_notify.config import GitHubSettings
from exception_notify.models import AuthorInfo
from exception_notify.source_control.base import (
    SourceControlError,
    SourceControlService,
    SourceNotFoundError,
    find_blame_range,
    parse_timestamp,
)
from exception_notify.utils.logging import get_logger
from exception_notify.utils.resilience import CircuitBreaker

logger = get_logger(__name__)


BLAME_QUERY = """
query($owner: String!, $name: String!, $ref: String!, $path: String!) {
  repository(owner: $owner, name: $name) {
    ref(qualifiedName: $ref) {
      target {
        ... on Commit {
          blame(path: $path) {
            ranges {
              startingLine
              endingLine
              commit {
                message
                author { name email date }
                committer { date }
              }
            }
          }
        }
      }
    }
  }
}
"""


class GitHubService(SourceControlService):
    """Author attribution through the GitHub GraphQL blame API."""

    def __init__(
        self,
        settings: GitHubSettings,
        timeout: float = 5.0,
        http_client: Optional[httpx.Client] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.settings = settings
        super().__init__(timeout=timeout, http_client=http_client, circuit_breaker=circuit_breaker)

    @property
    def name(self) -> str:
        return "github"

    @property
    def branch(self) -> Optional[str]:
        return self.settings.branch

    def is_configured(self) -> bool:
        return bool(self.settings.token and self.settings.repo_owner and self.settings.repo_name)

    def _headers(self, accept: str = "application/json") -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.token}",
            "Accept": accept,
        }

    def _graphql_url(self) -> str:
        api_url = self.settings.api_url.rstrip("/")
        # GitHub Enterprise serves GraphQL at /api/graphql next to /api/v3
        if api_url.endswith("/v3"):
            return api_url[: -len("/v3")] + "/graphql"
        return f"{api_url}/graphql"

    def _fetch_author_info(self, file_path: str, line_number: int) -> Optional[AuthorInfo]:
        response = self._request(
            "POST",
            self._graphql_url(),
            headers=self._headers(),
            json={
                "query": BLAME_QUERY,
                "variables": {
                    "owner": self.settings.repo_owner,
                    "name": self.settings.repo_name,
                    "ref": self.settings.branch,
                    "path": file_path,
                },
            },
        )

        body = response.json()
        if body.get("errors"):
            raise SourceControlError(f"GraphQL query returned errors: {body['errors']}")

        blame = _dig(body, "data", "repository", "ref", "target", "blame")
        if blame is None:
            raise SourceNotFoundError(f"No blame for {file_path} at {self.settings.branch}")

        ranges = [
            (item.get("startingLine", 0), item.get("endingLine", 0), item.get("commit") or {})
            for item in blame.get("ranges") or []
        ]
        match = find_blame_range(ranges, line_number)
        if match is None:
            logger.warning(f"Could not find blame information for {file_path}:{line_number}")
            return None

        commit = match[2]
        author = commit.get("author") or {}
        committer = commit.get("committer") or {}

        return AuthorInfo(
            name=author.get("name") or "unknown",
            email=author.get("email") or "",
            last_commit_time=parse_timestamp(committer.get("date") or author.get("date")),
            file_name=file_path,
            line_number=line_number,
            commit_message=commit.get("message"),
        )

    def _fetch_file_content(self, file_path: str) -> Optional[str]:
        url = (
            f"{self.settings.api_url.rstrip('/')}/repos/{self.settings.repo_owner}/"
            f"{self.settings.repo_name}/contents/{quote(file_path)}"
        )
        response = self._request(
            "GET",
            url,
            headers=self._headers(accept="application/vnd.github.raw"),
            params={"ref": self.settings.branch},
        )
        return response.text


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data
