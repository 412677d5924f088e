"""
Base interface for source control backends used for author attribution.

A backend answers two questions about a file at the configured branch: who
last touched a given line, and what the code around that line looks like.
Backends never raise to their callers; every failure is logged and turned
into ``None``.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

import httpx

from exception_notify.models import AuthorInfo
from exception_notify.utils.logging import get_logger, log_api_call
from exception_notify.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    create_source_control_circuit_breaker,
)

logger = get_logger(__name__)


class SourceControlError(Exception):
    """Base exception for source control lookups."""
    pass


class SourceNotFoundError(SourceControlError):
    """The backend has no such file, ref or line."""
    pass


# (first_line, last_line, commit payload); both line numbers inclusive
BlameRange = Tuple[int, int, Any]


def find_blame_range(ranges: Iterable[BlameRange], line_number: int) -> Optional[BlameRange]:
    """
    Find the blame range containing a line.

    Containment is inclusive at both ends: ``first <= line <= last``.
    """
    for blame_range in ranges:
        first_line, last_line, _ = blame_range
        if first_line <= line_number <= last_line:
            return blame_range
    return None


def ranges_from_line_counts(groups: Iterable[Tuple[int, Any]]) -> List[BlameRange]:
    """
    Convert consecutive ``(line_count, commit)`` groups into inclusive ranges.

    GitLab and Gitee return blame as an ordered list of groups, each carrying
    the lines it covers; the first group starts at line 1.
    """
    ranges: List[BlameRange] = []
    next_line = 1
    for line_count, commit in groups:
        if line_count <= 0:
            continue
        ranges.append((next_line, next_line + line_count - 1, commit))
        next_line += line_count
    return ranges


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp; returns None for missing or malformed values."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable commit timestamp: {value}")
        return None


def render_code_context(content: str, line_number: int, context_lines: int) -> Optional[str]:
    """
    Render numbered source lines around ``line_number``.

    The target line is marked with ``>``. Returns None if the line is outside
    the file.
    """
    lines = content.splitlines()
    if line_number < 1 or line_number > len(lines):
        return None

    start = max(1, line_number - context_lines)
    end = min(len(lines), line_number + context_lines)
    width = len(str(end))

    rendered = []
    for number in range(start, end + 1):
        marker = ">" if number == line_number else " "
        rendered.append(f"{marker} {number:>{width}} | {lines[number - 1]}")
    return "\n".join(rendered)


class SourceControlService(ABC):
    """
    Base interface for git hosting backends (GitHub, GitLab, Gitee).

    Subclasses implement the raw lookups; this class adds configuration
    checks, circuit breaking, call logging and the never-raise contract.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        http_client: Optional[httpx.Client] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize the backend.

        Args:
            timeout: Per-request timeout in seconds
            http_client: Optional preconfigured httpx client (tests pass a mock transport)
            circuit_breaker: Optional CircuitBreaker instance for fault tolerance
        """
        self.timeout = timeout
        self.http_client = http_client or httpx.Client(timeout=httpx.Timeout(timeout))
        self.circuit_breaker = circuit_breaker or create_source_control_circuit_breaker(self.name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the backend name (e.g., 'github')."""
        pass

    @property
    @abstractmethod
    def branch(self) -> Optional[str]:
        """Return the branch blame is taken from."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if all settings required to call the backend are present."""
        pass

    @abstractmethod
    def _fetch_author_info(self, file_path: str, line_number: int) -> Optional[AuthorInfo]:
        """
        Look up blame for a line.

        May raise; the public wrapper converts failures to None.
        """
        pass

    @abstractmethod
    def _fetch_file_content(self, file_path: str) -> Optional[str]:
        """Fetch raw file content at the configured branch. May raise."""
        pass

    def get_author_info(self, file_path: str, line_number: int) -> Optional[AuthorInfo]:
        """
        Get the last author of a file line.

        Args:
            file_path: Repository-relative path
            line_number: 1-indexed line number

        Returns:
            AuthorInfo, or None if not configured, not found or the call failed
        """
        if not self.is_configured():
            logger.debug(f"{self.name} configuration is incomplete; skipping author lookup")
            return None

        def lookup() -> Optional[AuthorInfo]:
            # 404s do not count against the circuit breaker
            try:
                return self._fetch_author_info(file_path, line_number)
            except SourceNotFoundError as e:
                logger.info(f"No {self.name} blame information for {file_path}:{line_number}: {e}")
                return None

        try:
            return self.circuit_breaker.call(lookup)
        except CircuitBreakerOpenError as e:
            logger.debug(f"Skipping {self.name} author lookup: {e}")
        except Exception as e:
            logger.warning(
                f"Error fetching author information from {self.name} for {file_path}:{line_number}: {e}",
                extra={"error_type": type(e).__name__},
            )
        return None

    def get_code_context(self, file_path: str, line_number: int, context_lines: int = 5) -> Optional[str]:
        """
        Get the source lines surrounding a file line.

        Returns:
            Numbered code snippet, or None if unavailable
        """
        if not self.is_configured():
            return None

        def fetch() -> Optional[str]:
            try:
                return self._fetch_file_content(file_path)
            except SourceNotFoundError:
                return None

        try:
            content = self.circuit_breaker.call(fetch)
        except CircuitBreakerOpenError as e:
            logger.debug(f"Skipping {self.name} content lookup: {e}")
            return None
        except Exception as e:
            logger.warning(
                f"Error fetching file content from {self.name} for {file_path}: {e}",
                extra={"error_type": type(e).__name__},
            )
            return None

        if content is None:
            return None
        return render_code_context(content, line_number, context_lines)

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Perform an HTTP request and log it.

        Raises:
            SourceNotFoundError: On 404
            SourceControlError: On any other non-2xx status
            httpx.HTTPError: On transport failure
        """
        start_time = time.perf_counter()
        try:
            response = self.http_client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log_api_call(
                logger,
                service=self.name,
                endpoint=url,
                method=method,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                error=str(e) or type(e).__name__,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        if response.is_success:
            log_api_call(logger, self.name, url, method, response.status_code, duration_ms)
            return response

        log_api_call(
            logger,
            service=self.name,
            endpoint=url,
            method=method,
            status_code=response.status_code,
            duration_ms=duration_ms,
            error=f"HTTP {response.status_code}",
        )
        if response.status_code == 404:
            raise SourceNotFoundError(f"{self.name} returned 404 for {url.split('?', 1)[0]}")
        raise SourceControlError(f"{self.name} returned HTTP {response.status_code}")

    def close(self) -> None:
        self.http_client.close()
