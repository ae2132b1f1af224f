# tests/unit/remote/test_github_client.py
"""Tests for the GitHub REST adapter using httpx.MockTransport."""

import json

import httpx
import pytest

from fork_orchestrator.core.retry import RetryConfig
from fork_orchestrator.exceptions import (
    RateLimitedError,
    RemoteAPIError,
    RetryExhaustedError,
    TransientRemoteError,
)
from fork_orchestrator.remote.github import GitHubClient, github_client_factory, is_rate_limited
from fork_orchestrator.rotation.identities import Identity
from fork_orchestrator.rotation.proxies import ProxyBinding


TOKEN = "ghp_testtoken1234567890"


class Recorder:
    """MockTransport handler replaying queued responses per path."""

    def __init__(self, routes: dict[tuple[str, str], list[httpx.Response | Exception]]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes[(request.method, request.url.path)]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item


def make_client(recorder: Recorder, sleeps: list[float], attempts: int = 3) -> GitHubClient:
    return GitHubClient(
        TOKEN,
        retry=RetryConfig(max_attempts=attempts, initial_delay=1.0, max_delay=30.0),
        sleep=sleeps.append,
        transport=httpx.MockTransport(recorder),
    )


@pytest.mark.unit
class TestRequests:
    """Tests for endpoints and headers."""

    def test_headers_and_username(self, sleeps: list[float]) -> None:
        recorder = Recorder({("GET", "/user"): [httpx.Response(200, json={"login": "octocat"})]})

        with make_client(recorder, sleeps) as client:
            assert client.get_username() == "octocat"

        request = recorder.requests[0]
        assert request.headers["Authorization"] == f"Bearer {TOKEN}"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert "X-GitHub-Api-Version" in request.headers
        assert str(request.url) == "https://api.github.com/user"

    def test_exists(self, sleeps: list[float]) -> None:
        recorder = Recorder(
            {
                ("GET", "/repos/octocat/present"): [httpx.Response(200, json={})],
                ("GET", "/repos/octocat/missing"): [httpx.Response(404, json={})],
            }
        )
        client = make_client(recorder, sleeps)

        assert client.exists("octocat/present") is True
        assert client.exists("octocat/missing") is False
        assert sleeps == []

    def test_create_fork(self, sleeps: list[float]) -> None:
        recorder = Recorder(
            {
                ("POST", "/repos/upstream/project/forks"): [
                    httpx.Response(202, json={"full_name": "octocat/project"})
                ]
            }
        )

        assert make_client(recorder, sleeps).create_fork("upstream/project") == "octocat/project"

    def test_delete_treats_missing_repo_as_done(self, sleeps: list[float]) -> None:
        recorder = Recorder({("DELETE", "/repos/octocat/gone"): [httpx.Response(404)]})
        make_client(recorder, sleeps).delete("octocat/gone")
        assert len(recorder.requests) == 1

    def test_trigger_lookup_by_file_hint(self, sleeps: list[float]) -> None:
        workflows = {
            "workflows": [
                {"id": 1, "path": ".github/workflows/ci.yml"},
                {"id": 42, "path": ".github/workflows/nexus.yml"},
            ]
        }
        recorder = Recorder(
            {
                ("GET", "/repos/octocat/project/actions/workflows"): [
                    httpx.Response(200, json=workflows)
                ],
                ("GET", "/repos/octocat/empty/actions/workflows"): [httpx.Response(404)],
            }
        )
        client = make_client(recorder, sleeps)

        assert client.get_automation_trigger_id("octocat/project", "nexus.yml") == 42
        assert client.get_automation_trigger_id("octocat/project", "deploy.yml") is None
        assert client.get_automation_trigger_id("octocat/empty", "nexus.yml") is None

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(204),
            httpx.Response(422, json={"message": "Workflow is already disabled"}),
        ],
    )
    def test_disable_is_idempotent(self, sleeps: list[float], response: httpx.Response) -> None:
        recorder = Recorder(
            {("PUT", "/repos/octocat/project/actions/workflows/42/disable"): [response]}
        )
        make_client(recorder, sleeps).disable_automation("octocat/project", 42)

    def test_enable(self, sleeps: list[float]) -> None:
        recorder = Recorder(
            {("PUT", "/repos/octocat/project/actions/workflows/42/enable"): [httpx.Response(204)]}
        )
        make_client(recorder, sleeps).enable_automation("octocat/project", 42)
        assert len(recorder.requests) == 1

    def test_get_usage(self, sleeps: list[float]) -> None:
        body = {
            "usageItems": [
                {"product": "actions", "unitType": "Minutes", "quantity": 120},
                {"product": "actions", "unitType": "Minutes", "quantity": 30.5},
            ]
        }
        recorder = Recorder(
            {("GET", "/users/octocat/settings/billing/usage"): [httpx.Response(200, json=body)]}
        )

        items = make_client(recorder, sleeps).get_usage("octocat")

        assert [item.quantity for item in items] == [120.0, 30.5]
        assert items[0].unit_type == "Minutes"

    def test_dispatch_and_runs(self, sleeps: list[float]) -> None:
        recorder = Recorder(
            {
                ("POST", "/repos/o/p/actions/workflows/nexus.yml/dispatches"): [
                    httpx.Response(204)
                ],
                ("GET", "/repos/o/p/actions/runs"): [
                    httpx.Response(200, json={"workflow_runs": [{"id": 99}]})
                ],
                ("GET", "/repos/o/p/actions/runs/99"): [
                    httpx.Response(200, json={"status": "completed", "conclusion": "success"})
                ],
            }
        )
        client = make_client(recorder, sleeps)

        client.trigger_automation("o/p", "nexus.yml", "main")
        assert client.get_latest_run_id("o/p") == 99
        status = client.get_run_status("o/p", 99)

        assert json.loads(recorder.requests[0].content) == {"ref": "main"}
        assert recorder.requests[1].url.params["per_page"] == "1"
        assert status.is_completed
        assert status.conclusion == "success"


@pytest.mark.unit
class TestClassification:
    """Tests for retry classification of responses."""

    def test_server_errors_are_retried(self, sleeps: list[float]) -> None:
        recorder = Recorder(
            {
                ("GET", "/user"): [
                    httpx.Response(502),
                    httpx.Response(503),
                    httpx.Response(200, json={"login": "octocat"}),
                ]
            }
        )

        assert make_client(recorder, sleeps).get_username() == "octocat"
        assert sleeps == [1.0, 2.0]

    def test_transport_errors_are_retried(self, sleeps: list[float]) -> None:
        recorder = Recorder(
            {
                ("GET", "/repos/o/p"): [
                    httpx.ConnectTimeout("timed out"),
                    httpx.Response(200, json={}),
                ]
            }
        )

        assert make_client(recorder, sleeps).exists("o/p") is True
        assert len(recorder.requests) == 2

    def test_rate_limit_exhaustion(self, sleeps: list[float]) -> None:
        recorder = Recorder(
            {
                ("GET", "/user"): [
                    httpx.Response(403, headers={"x-ratelimit-remaining": "0"}, json={}),
                ]
            }
        )

        with pytest.raises(RetryExhaustedError) as exc_info:
            make_client(recorder, sleeps).get_username()

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.cause, RateLimitedError)
        assert len(recorder.requests) == 3

    def test_persistent_transport_failure(self, sleeps: list[float]) -> None:
        recorder = Recorder({("GET", "/user"): [httpx.ConnectError("refused")]})

        with pytest.raises(RetryExhaustedError) as exc_info:
            make_client(recorder, sleeps, attempts=2).get_username()

        assert isinstance(exc_info.value.cause, TransientRemoteError)
        assert sleeps == [1.0]

    def test_client_error_is_not_retried(self, sleeps: list[float]) -> None:
        recorder = Recorder({("GET", "/user"): [httpx.Response(401, json={"message": "Bad"})]})

        with pytest.raises(RemoteAPIError) as exc_info:
            make_client(recorder, sleeps).get_username()

        assert exc_info.value.status_code == 401
        assert len(recorder.requests) == 1
        assert sleeps == []

    @pytest.mark.parametrize(
        ("response", "expected"),
        [
            (httpx.Response(429), True),
            (httpx.Response(403, headers={"x-ratelimit-remaining": "0"}), True),
            (httpx.Response(403, text="API rate limit exceeded for user"), True),
            (httpx.Response(403, text="Resource not accessible"), False),
            (httpx.Response(404), False),
            (httpx.Response(200), False),
        ],
    )
    def test_is_rate_limited(self, response: httpx.Response, expected: bool) -> None:
        assert is_rate_limited(response) is expected


@pytest.mark.unit
def test_factory_builds_clients_per_identity() -> None:
    factory = github_client_factory(retry=RetryConfig(), api_url="https://ghe.example/api/v3")
    identity = Identity(index=0, token=TOKEN, name="octocat")
    binding = ProxyBinding.from_url("http://u:p@proxy.example:8080")

    with factory(identity, binding) as client:
        assert isinstance(client, GitHubClient)
