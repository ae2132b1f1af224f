"""Consolidated exception hierarchy for the fork orchestrator.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum for type safety and autocompletion.

Every error that reaches the command surface names the affected resource
(repository, token prefix or identity index) in its message.
"""

from enum import StrEnum
from typing import Any


class ErrorType(StrEnum):
    """Error type codes used in structured log output and CLI rendering."""

    CONFIGURATION = "configuration_error"
    STATE = "state_error"
    REMOTE = "remote_error"
    RATE_LIMIT = "rate_limit_error"
    TRANSIENT = "transient_error"
    RETRY_EXHAUSTED = "retry_exhausted_error"
    LIFECYCLE = "lifecycle_error"
    TIMEOUT = "timeout_error"
    NOT_FOUND = "not_found_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors.

    Supports a typed error code and structured error details.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | str = ErrorType.CONFIGURATION,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if isinstance(error_type, str) and not isinstance(error_type, ErrorType):
            try:
                self.error_type = ErrorType(error_type)
            except ValueError:
                self.error_type = error_type  # type: ignore[assignment]
        else:
            self.error_type = error_type
        self.details = details or {}


# ============================================================================
# Configuration Errors (fatal, never retried)
# ============================================================================


class ConfigurationError(OrchestratorError):
    """Malformed input files, invalid settings or inconsistent pools."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message, error_type=ErrorType.CONFIGURATION, details=details
        )


class StateCorruptedError(ConfigurationError):
    """The persisted state file exists but cannot be parsed."""

    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(
            f"State file {path} is corrupt: {cause}",
            details={"path": path, "cause": str(cause)},
        )
        self.path = path
        self.cause = cause


class ProxyCountMismatchError(ConfigurationError):
    """Fewer proxy entries than identities."""

    def __init__(self, identities: int, proxies: int) -> None:
        super().__init__(
            f"Not enough proxies: {proxies} proxies for {identities} identities",
            details={"identities": identities, "proxies": proxies},
        )
        self.identities = identities
        self.proxies = proxies


class ProxyParseError(ConfigurationError):
    """A proxy entry could not be parsed."""

    def __init__(self, line_number: int, text: str, reason: str) -> None:
        super().__init__(
            f"Invalid proxy URL at line {line_number}: {text} ({reason})",
            details={"line": line_number, "text": text, "reason": reason},
        )
        self.line_number = line_number
        self.text = text
        self.reason = reason


class IdentityNotFoundError(ConfigurationError):
    """No identity is configured at the requested pool index."""

    def __init__(self, index: int) -> None:
        super().__init__(
            f"Identity index {index} is not in the configured pool",
            details={"index": index},
        )
        self.index = index


class NoValidIdentitiesError(ConfigurationError):
    """Validation left no usable identity in the pool."""

    pass


# ============================================================================
# Remote Errors
# ============================================================================


class RemoteError(OrchestratorError):
    """Base exception for remote service failures."""

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | str = ErrorType.REMOTE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_type=error_type, details=details)


class RemoteAPIError(RemoteError):
    """The remote service answered with a non-success status."""

    def __init__(self, endpoint: str, status_code: int, body: str = "") -> None:
        super().__init__(
            f"API call {endpoint} failed with status {status_code}: {body[:200]}",
            details={"endpoint": endpoint, "status_code": status_code},
        )
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body


class TransientRemoteError(RemoteError):
    """Timeouts, connection failures and 5xx replies."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_type=ErrorType.TRANSIENT, details=details)


class RateLimitedError(TransientRemoteError):
    """The remote service signalled rate limiting."""

    def __init__(self, endpoint: str, retry_after: str | None = None) -> None:
        super().__init__(
            f"Rate limit exceeded on {endpoint}",
            details={"endpoint": endpoint, "retry_after": retry_after},
        )
        self.error_type = ErrorType.RATE_LIMIT
        self.endpoint = endpoint
        self.retry_after = retry_after


class RetryExhaustedError(RemoteError):
    """An operation kept failing until the attempt budget ran out."""

    def __init__(self, label: str, attempts: int, cause: BaseException | None) -> None:
        super().__init__(
            f"{label} failed after {attempts} attempts: {cause}",
            error_type=ErrorType.RETRY_EXHAUSTED,
            details={"label": label, "attempts": attempts, "cause": str(cause)},
        )
        self.label = label
        self.attempts = attempts
        self.cause = cause


# ============================================================================
# Lifecycle Errors
# ============================================================================


class LifecycleError(OrchestratorError):
    """Base exception for fork lifecycle inconsistencies."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_type=ErrorType.LIFECYCLE, details=details)


class ForkNotReadyError(LifecycleError):
    """A freshly requested fork never showed up within the polling budget."""

    def __init__(self, repo: str, attempts: int) -> None:
        super().__init__(
            f"Timeout waiting for fork to be ready: {repo} ({attempts} checks)",
            details={"repo": repo, "attempts": attempts},
        )
        self.error_type = ErrorType.TIMEOUT
        self.repo = repo
        self.attempts = attempts


class ForkDeletionError(LifecycleError):
    """Remote deletion of a fork failed; the node keeps its status."""

    def __init__(self, repo: str, cause: Exception) -> None:
        super().__init__(
            f"Failed to delete fork {repo}: {cause}",
            details={"repo": repo, "cause": str(cause)},
        )
        self.repo = repo
        self.cause = cause


__all__ = [
    # Enums
    "ErrorType",
    # Base
    "OrchestratorError",
    # Configuration
    "ConfigurationError",
    "StateCorruptedError",
    "ProxyCountMismatchError",
    "ProxyParseError",
    "IdentityNotFoundError",
    "NoValidIdentitiesError",
    # Remote
    "RemoteError",
    "RemoteAPIError",
    "TransientRemoteError",
    "RateLimitedError",
    "RetryExhaustedError",
    # Lifecycle
    "LifecycleError",
    "ForkNotReadyError",
    "ForkDeletionError",
]
