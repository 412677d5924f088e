"""Unit tests for the source control backends."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from exception_notify.config import GiteeSettings, GitHubSettings, GitLabSettings
from exception_notify.source_control import GiteeService, GitHubService, GitLabService
from exception_notify.source_control.base import (
    find_blame_range,
    parse_timestamp,
    ranges_from_line_counts,
    render_code_context,
)
from exception_notify.source_control.gitee import score_path_match
from exception_notify.utils.resilience import CircuitBreaker, CircuitState


def client_for(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def github_blame_body(*ranges):
    return {
        "data": {
            "repository": {
                "ref": {
                    "target": {
                        "blame": {
                            "ranges": [
                                {
                                    "startingLine": start,
                                    "endingLine": end,
                                    "commit": {
                                        "message": message,
                                        "author": {"name": name, "email": f"{name.lower()}@example.com", "date": "2024-04-01T10:00:00Z"},
                                        "committer": {"date": "2024-04-02T11:30:00Z"},
                                    },
                                }
                                for start, end, name, message in ranges
                            ]
                        }
                    }
                }
            }
        }
    }


@pytest.fixture
def github_settings():
    return GitHubSettings(token="ghp_test", repo_owner="acme", repo_name="orders", branch="main")


class TestBlameHelpers:

    def test_find_blame_range_is_inclusive(self):
        ranges = [(1, 5, "a"), (6, 9, "b")]

        assert find_blame_range(ranges, 1)[2] == "a"
        assert find_blame_range(ranges, 5)[2] == "a"
        assert find_blame_range(ranges, 6)[2] == "b"
        assert find_blame_range(ranges, 9)[2] == "b"
        assert find_blame_range(ranges, 10) is None

    def test_ranges_from_line_counts(self):
        assert ranges_from_line_counts([(3, "a"), (0, "skip"), (2, "b")]) == [(1, 3, "a"), (4, 5, "b")]

    def test_parse_timestamp(self):
        assert parse_timestamp("2024-04-02T11:30:00Z") == datetime(2024, 4, 2, 11, 30, tzinfo=timezone.utc)
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None

    def test_render_code_context(self):
        content = "\n".join(f"line {i}" for i in range(1, 13))

        snippet = render_code_context(content, 10, 2)

        assert snippet.splitlines() == [
            "   8 | line 8",
            "   9 | line 9",
            "> 10 | line 10",
            "  11 | line 11",
            "  12 | line 12",
        ]

    def test_render_code_context_out_of_range(self):
        assert render_code_context("a\nb\n", 5, 2) is None


class TestGitHubService:

    def test_author_info_from_graphql_blame(self, github_settings):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=github_blame_body((1, 9, "Bob", "init"), (10, 12, "Alice", "Parse orders")))

        service = GitHubService(github_settings, http_client=client_for(handler))

        author = service.get_author_info("myapp/orders.py", 12)

        assert author.name == "Alice"
        assert author.email == "alice@example.com"
        assert author.commit_message == "Parse orders"
        assert author.last_commit_time == datetime(2024, 4, 2, 11, 30, tzinfo=timezone.utc)
        assert author.file_name == "myapp/orders.py"
        assert author.line_number == 12

        request = requests[0]
        assert str(request.url) == "https://api.github.com/graphql"
        assert request.headers["Authorization"] == "Bearer ghp_test"
        variables = json.loads(request.content)["variables"]
        assert variables == {"owner": "acme", "name": "orders", "ref": "main", "path": "myapp/orders.py"}

    def test_range_boundary_lines(self, github_settings):
        body = github_blame_body((1, 9, "Bob", "init"), (10, 12, "Alice", "change"))
        service = GitHubService(github_settings, http_client=client_for(lambda r: httpx.Response(200, json=body)))

        assert service.get_author_info("myapp/orders.py", 9).name == "Bob"
        assert service.get_author_info("myapp/orders.py", 10).name == "Alice"
        assert service.get_author_info("myapp/orders.py", 13) is None

    def test_enterprise_graphql_url(self, github_settings):
        github_settings.api_url = "https://github.acme.com/api/v3"
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, json=github_blame_body((1, 5, "Bob", "init")))

        GitHubService(github_settings, http_client=client_for(handler)).get_author_info("a.py", 1)

        assert urls == ["https://github.acme.com/api/graphql"]

    def test_graphql_errors_yield_none(self, github_settings):
        body = {"errors": [{"message": "Could not resolve to a Repository"}]}
        service = GitHubService(github_settings, http_client=client_for(lambda r: httpx.Response(200, json=body)))

        assert service.get_author_info("a.py", 1) is None

    def test_missing_file_yields_none(self, github_settings):
        body = {"data": {"repository": {"ref": {"target": {}}}}}
        service = GitHubService(github_settings, http_client=client_for(lambda r: httpx.Response(200, json=body)))

        assert service.get_author_info("missing.py", 1) is None

    def test_http_error_yields_none(self, github_settings):
        service = GitHubService(github_settings, http_client=client_for(lambda r: httpx.Response(502)))

        assert service.get_author_info("a.py", 1) is None

    def test_transport_error_yields_none(self, github_settings):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        service = GitHubService(github_settings, http_client=client_for(handler))

        assert service.get_author_info("a.py", 1) is None

    def test_unconfigured_makes_no_request(self):
        calls = []
        service = GitHubService(
            GitHubSettings(token=None, repo_owner="acme", repo_name="orders"),
            http_client=client_for(lambda r: calls.append(r) or httpx.Response(200)),
        )

        assert service.get_author_info("a.py", 1) is None
        assert calls == []

    def test_repeated_failures_open_circuit(self, github_settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(failure_threshold=2, timeout=60, name="github")
        service = GitHubService(github_settings, http_client=client_for(handler), circuit_breaker=breaker)

        for _ in range(4):
            assert service.get_author_info("a.py", 1) is None

        assert breaker.get_state() == CircuitState.OPEN
        assert len(calls) == 2

    def test_not_found_does_not_open_circuit(self, github_settings):
        breaker = CircuitBreaker(failure_threshold=1, name="github")
        service = GitHubService(
            github_settings,
            http_client=client_for(lambda r: httpx.Response(404)),
            circuit_breaker=breaker,
        )

        service.get_author_info("a.py", 1)
        service.get_author_info("a.py", 1)

        assert breaker.get_state() == CircuitState.CLOSED

    def test_code_context(self, github_settings):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="import json\n\ndef load(text):\n    return json.loads(text)\n")

        service = GitHubService(github_settings, http_client=client_for(handler))

        snippet = service.get_code_context("myapp/orders.py", 4, 1)

        assert snippet.splitlines()[-1] == "> 4 |     return json.loads(text)"
        assert requests[0].url.path == "/repos/acme/orders/contents/myapp/orders.py"
        assert requests[0].url.params["ref"] == "main"
        assert requests[0].headers["Accept"] == "application/vnd.github.raw"


class TestGitLabService:

    @pytest.fixture
    def settings(self):
        return GitLabSettings(token="glpat", project_id="acme/orders", base_url="https://gitlab.example.com/api/v4", branch="main")

    def test_author_info_from_line_groups(self, settings):
        requests = []
        blame = [
            {"commit": {"author_name": "Bob", "author_email": "bob@example.com", "committed_date": "2024-01-01T00:00:00Z", "message": "init"},
             "lines": ["a", "b", "c"]},
            {"commit": {"author_name": "Alice", "author_email": "alice@example.com", "committed_date": "2024-02-01T00:00:00Z", "message": "fix"},
             "lines": ["d", "e"]},
        ]

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=blame)

        service = GitLabService(settings, http_client=client_for(handler))

        assert service.get_author_info("myapp/orders.py", 3).name == "Bob"
        author = service.get_author_info("myapp/orders.py", 4)
        assert author.name == "Alice"
        assert author.commit_message == "fix"
        assert service.get_author_info("myapp/orders.py", 6) is None

        request = requests[0]
        assert request.headers["PRIVATE-TOKEN"] == "glpat"
        assert request.url.params["ref"] == "main"
        assert "/projects/acme%2Forders/repository/files/myapp%2Forders.py/blame" in str(request.url)

    def test_unexpected_payload_yields_none(self, settings):
        service = GitLabService(settings, http_client=client_for(lambda r: httpx.Response(200, json={"message": "?"})))

        assert service.get_author_info("a.py", 1) is None

    def test_unconfigured(self):
        assert GitLabService(GitLabSettings()).is_configured() is False


class TestGiteeService:

    @pytest.fixture
    def settings(self):
        return GiteeSettings(token="gitee-token", repo_owner="acme", repo_name="orders", branch="master")

    def test_score_path_match(self):
        assert score_path_match("myapp/orders.py", "myapp/orders.py") == 1000
        assert score_path_match("src/myapp/orders.py", "myapp/orders.py") > score_path_match("other/orders.py", "myapp/orders.py")
        assert score_path_match("docs/readme.md", "myapp/orders.py") == 0

    def test_resolves_path_then_blames(self, settings):
        requests = []
        tree = {"tree": [
            {"path": "src", "type": "tree"},
            {"path": "src/myapp/orders.py", "type": "blob"},
            {"path": "tests/orders.py", "type": "blob"},
        ]}
        blame = [
            {"commit": {"message": "init", "committer": {"name": "Bob", "email": "bob@example.com", "date": "2024-01-01T00:00:00+08:00"}},
             "lines": ["a", "b"]},
            {"commit": {"message": "fix", "committer": {"name": "Alice", "email": "alice@example.com", "date": "2024-02-01T00:00:00+08:00"}},
             "lines": ["c"]},
        ]

        def handler(request):
            requests.append(request)
            if "/git/trees/" in request.url.path:
                return httpx.Response(200, json=tree)
            return httpx.Response(200, json=blame)

        service = GiteeService(settings, http_client=client_for(handler))

        author = service.get_author_info("myapp/orders.py", 3)

        assert author.name == "Alice"
        assert author.file_name == "src/myapp/orders.py"
        assert requests[0].url.params["recursive"] == "1"
        assert requests[1].url.path == "/api/v5/repos/acme/orders/blame/src/myapp/orders.py"
        assert requests[1].url.params["access_token"] == "gitee-token"

        service.get_author_info("myapp/orders.py", 1)
        tree_requests = [r for r in requests if "/git/trees/" in r.url.path]
        assert len(tree_requests) == 1

    def test_unresolvable_path_yields_none(self, settings):
        tree = {"tree": [{"path": "docs/readme.md", "type": "blob"}]}
        service = GiteeService(settings, http_client=client_for(lambda r: httpx.Response(200, json=tree)))

        assert service.get_author_info("myapp/orders.py", 1) is None
