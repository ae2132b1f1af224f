"""GitHub REST implementation of the remote workspace boundary.

Each call makes a single HTTP request inside the retry executor. Responses
are classified before they leave the attempt:

- timeouts and transport errors, 5xx -> TransientRemoteError (retried)
- 429, or 403 carrying a rate-limit signal -> RateLimitedError (retried)
- 404 -> terminal; methods return an empty result where that is meaningful
- any other error status -> RemoteAPIError, raised on the first attempt
- "already enabled/disabled" replies -> success
"""

import time
from collections.abc import Callable
from typing import Any

import httpx
from structlog import get_logger

from fork_orchestrator.core.retry import RetryConfig, SleepFn, execute
from fork_orchestrator.exceptions import (
    RateLimitedError,
    RemoteAPIError,
    TransientRemoteError,
)
from fork_orchestrator.remote.base import (
    ClientFactory,
    RemoteWorkspaceClient,
    RunStatus,
    UsageItem,
)
from fork_orchestrator.rotation.identities import Identity
from fork_orchestrator.rotation.proxies import ProxyBinding


logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"

# Reply fragments meaning the trigger is already in the requested state
ALREADY_IN_STATE_MARKERS = ("already disabled", "not enabled", "already enabled")


def is_rate_limited(response: httpx.Response) -> bool:
    """Check if a response signals rate limiting."""
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in response.text.lower()


class GitHubClient(RemoteWorkspaceClient):
    """GitHub API client bound to one token and optional egress proxy."""

    def __init__(
        self,
        token: str,
        proxy: ProxyBinding | None = None,
        *,
        retry: RetryConfig | None = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        sleep: SleepFn = time.sleep,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Identity token used as bearer credential
            proxy: Egress proxy for every request
            retry: Backoff policy for each call
            api_url: API base URL
            timeout: Per-request timeout in seconds
            sleep: Suspend function used between retries
            transport: Explicit transport (tests); bypasses the proxy
        """
        self._retry = retry or RetryConfig()
        self._sleep = sleep

        client_kwargs: dict[str, Any] = {
            "base_url": api_url,
            "timeout": timeout,
            "headers": {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            },
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        elif proxy is not None:
            client_kwargs["proxy"] = proxy.url

        self._client = httpx.Client(**client_kwargs)

    def close(self) -> None:
        self._client.close()

    # --- Transport helpers ---

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Perform one request and raise for retryable outcomes."""
        logger.debug("github_request", method=method, endpoint=endpoint)
        try:
            response = self._client.request(method, endpoint, json=json, params=params)
        except httpx.TimeoutException as e:
            raise TransientRemoteError(
                f"Request to {endpoint} timed out", details={"endpoint": endpoint}
            ) from e
        except httpx.TransportError as e:
            raise TransientRemoteError(
                f"Request to {endpoint} failed: {e}", details={"endpoint": endpoint}
            ) from e

        if is_rate_limited(response):
            logger.warning("github_rate_limited", endpoint=endpoint)
            raise RateLimitedError(endpoint, response.headers.get("retry-after"))

        if response.status_code >= 500:
            raise TransientRemoteError(
                f"Server error {response.status_code} on {endpoint}",
                details={"endpoint": endpoint, "status_code": response.status_code},
            )

        return response

    def _call(self, label: str, operation: Callable[[], Any]) -> Any:
        return execute(
            self._retry,
            label,
            operation,
            sleep=self._sleep,
            retry_on=(TransientRemoteError,),
        )

    @staticmethod
    def _json(response: httpx.Response, endpoint: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteAPIError(endpoint, response.status_code, response.text) from e

    # --- Identity ---

    def get_username(self) -> str:
        endpoint = "/user"

        def operation() -> str:
            response = self._request("GET", endpoint)
            if response.status_code != 200:
                raise RemoteAPIError(endpoint, response.status_code, response.text)
            login = self._json(response, endpoint).get("login")
            if not login:
                raise RemoteAPIError(endpoint, response.status_code, "login missing")
            return str(login)

        result: str = self._call("get username", operation)
        return result

    def get_usage(self, username: str) -> list[UsageItem]:
        endpoint = f"/users/{username}/settings/billing/usage"

        def operation() -> list[UsageItem]:
            response = self._request("GET", endpoint)
            if response.status_code != 200:
                raise RemoteAPIError(endpoint, response.status_code, response.text)
            data = self._json(response, endpoint)
            try:
                return [UsageItem.from_dict(item) for item in data.get("usageItems", [])]
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise RemoteAPIError(endpoint, response.status_code, str(e)) from e

        result: list[UsageItem] = self._call(f"get usage for {username}", operation)
        return result

    # --- Workspaces ---

    def exists(self, repo: str) -> bool:
        endpoint = f"/repos/{repo}"

        def operation() -> bool:
            response = self._request("GET", endpoint)
            if response.status_code == 200:
                return True
            if response.status_code == 404:
                return False
            raise RemoteAPIError(endpoint, response.status_code, response.text)

        result: bool = self._call(f"check {repo} exists", operation)
        return result

    def create_fork(self, parent_repo: str) -> str:
        endpoint = f"/repos/{parent_repo}/forks"

        def operation() -> str:
            response = self._request("POST", endpoint, json={})
            if response.status_code not in (200, 202):
                raise RemoteAPIError(endpoint, response.status_code, response.text)
            full_name = self._json(response, endpoint).get("full_name")
            if not full_name:
                raise RemoteAPIError(endpoint, response.status_code, "full_name missing")
            return str(full_name)

        result: str = self._call(f"fork {parent_repo}", operation)
        logger.info("fork_requested", parent=parent_repo, fork=result)
        return result

    def delete(self, repo: str) -> None:
        endpoint = f"/repos/{repo}"

        def operation() -> None:
            response = self._request("DELETE", endpoint)
            if response.status_code == 404:
                logger.info("repo_already_deleted", repo=repo)
                return
            if response.status_code not in (200, 202, 204):
                raise RemoteAPIError(endpoint, response.status_code, response.text)

        self._call(f"delete {repo}", operation)

    # --- Automation ---

    def get_automation_trigger_id(self, repo: str, file_hint: str) -> int | None:
        endpoint = f"/repos/{repo}/actions/workflows"

        def operation() -> int | None:
            response = self._request("GET", endpoint)
            if response.status_code == 404:
                return None
            if response.status_code != 200:
                raise RemoteAPIError(endpoint, response.status_code, response.text)
            for workflow in self._json(response, endpoint).get("workflows", []):
                if file_hint in str(workflow.get("path", "")):
                    return int(workflow["id"])
            return None

        result: int | None = self._call(f"find workflow {file_hint} in {repo}", operation)
        return result

    def _set_automation_state(self, repo: str, trigger_id: int, action: str) -> None:
        endpoint = f"/repos/{repo}/actions/workflows/{trigger_id}/{action}"

        def operation() -> None:
            response = self._request("PUT", endpoint)
            if response.status_code in (200, 204):
                return
            body = response.text.lower()
            if any(marker in body for marker in ALREADY_IN_STATE_MARKERS):
                logger.debug("workflow_already_in_state", repo=repo, action=action)
                return
            raise RemoteAPIError(endpoint, response.status_code, response.text)

        self._call(f"{action} workflow {trigger_id} in {repo}", operation)

    def enable_automation(self, repo: str, trigger_id: int) -> None:
        self._set_automation_state(repo, trigger_id, "enable")

    def disable_automation(self, repo: str, trigger_id: int) -> None:
        self._set_automation_state(repo, trigger_id, "disable")

    def trigger_automation(self, repo: str, file_hint: str, ref: str) -> None:
        endpoint = f"/repos/{repo}/actions/workflows/{file_hint}/dispatches"

        def operation() -> None:
            response = self._request("POST", endpoint, json={"ref": ref})
            if response.status_code not in (200, 204):
                raise RemoteAPIError(endpoint, response.status_code, response.text)

        self._call(f"trigger {file_hint} in {repo}", operation)

    def get_latest_run_id(self, repo: str) -> int | None:
        endpoint = f"/repos/{repo}/actions/runs"

        def operation() -> int | None:
            response = self._request("GET", endpoint, params={"per_page": 1})
            if response.status_code == 404:
                return None
            if response.status_code != 200:
                raise RemoteAPIError(endpoint, response.status_code, response.text)
            runs = self._json(response, endpoint).get("workflow_runs") or []
            return int(runs[0]["id"]) if runs else None

        result: int | None = self._call(f"latest run in {repo}", operation)
        return result

    def get_run_status(self, repo: str, run_id: int) -> RunStatus:
        endpoint = f"/repos/{repo}/actions/runs/{run_id}"

        def operation() -> RunStatus:
            response = self._request("GET", endpoint)
            if response.status_code != 200:
                raise RemoteAPIError(endpoint, response.status_code, response.text)
            data = self._json(response, endpoint)
            return RunStatus(
                status=str(data.get("status", "unknown")),
                conclusion=data.get("conclusion"),
            )

        result: RunStatus = self._call(f"status of run {run_id} in {repo}", operation)
        return result


def github_client_factory(
    *,
    retry: RetryConfig,
    api_url: str = DEFAULT_API_URL,
    timeout: float = 30.0,
    sleep: SleepFn = time.sleep,
) -> ClientFactory:
    """Build a factory producing one GitHubClient per identity and proxy."""

    def factory(identity: Identity, proxy: ProxyBinding | None) -> RemoteWorkspaceClient:
        return GitHubClient(
            identity.token,
            proxy,
            retry=retry,
            api_url=api_url,
            timeout=timeout,
            sleep=sleep,
        )

    return factory
