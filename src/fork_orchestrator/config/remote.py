"""Remote call, proxy and fork lifecycle configuration."""

from pydantic import BaseModel, Field

from fork_orchestrator.core.retry import RetryConfig


DEFAULT_PROBE_URL = "https://api.github.com/"
DEFAULT_PROBE_TIMEOUT_SECONDS = 15.0


class RetrySettings(BaseModel):
    """Backoff policy applied to every remote call."""

    max_attempts: int = Field(default=3, ge=1, description="Attempts per call")
    initial_delay: float = Field(
        default=1.0, ge=0, description="Delay in seconds before the first retry"
    )
    max_delay: float = Field(
        default=30.0, ge=0, description="Upper bound for a single delay in seconds"
    )
    multiplier: float = Field(
        default=2.0, ge=1.0, description="Growth factor between consecutive delays"
    )

    def to_retry_config(self) -> RetryConfig:
        """Convert to the executor's config value."""
        return RetryConfig(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            multiplier=self.multiplier,
        )


class ProxySettings(BaseModel):
    """Egress proxy reachability checks."""

    probe_url: str = Field(
        default=DEFAULT_PROBE_URL,
        description="Known-good endpoint requested through each proxy",
    )
    probe_timeout: float = Field(
        default=DEFAULT_PROBE_TIMEOUT_SECONDS, gt=0, description="Probe timeout in seconds"
    )


class ForkSettings(BaseModel):
    """Fork lifecycle timings and automation names."""

    api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the remote workspace API",
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Per-request timeout in seconds"
    )
    workflow_file: str = Field(
        default="nexus.yml",
        description="File name used to locate the automation trigger",
    )
    default_branch: str = Field(
        default="main", description="Ref used when triggering automation"
    )
    ready_poll_interval: float = Field(
        default=5.0, ge=0, description="Seconds between fork readiness checks"
    )
    ready_max_attempts: int = Field(
        default=24, ge=1, description="Readiness checks before giving up"
    )
    teardown_settle_seconds: float = Field(
        default=3.0, ge=0, description="Wait between disabling automation and deletion"
    )
    rotation_settle_seconds: float = Field(
        default=5.0, ge=0, description="Wait after disabling automation on rotation"
    )
    workflow_poll_interval: float = Field(
        default=30.0, gt=0, description="Seconds between run status checks"
    )
    workflow_timeout_minutes: int = Field(
        default=60, ge=1, description="Maximum time to wait for a run to complete"
    )
