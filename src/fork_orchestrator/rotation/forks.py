"""Fork lifecycle: creation, readiness, automation control and teardown.

Node status machine::

    Source     (terminal, root workspace only)
    Active     -> Exhausted (quota spent) | Disabled (deleted)
    Exhausted  -> Disabled (cleanup)
    Disabled   (terminal)

Every state-changing operation persists the whole aggregate before it
returns, and a failing remote step leaves the node in its last consistent
status so the operation can be re-run.
"""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING

import httpx
from structlog import get_logger

from fork_orchestrator.config.remote import ForkSettings
from fork_orchestrator.core.retry import RetryConfig, SleepFn, execute
from fork_orchestrator.exceptions import (
    ConfigurationError,
    ForkDeletionError,
    ForkNotReadyError,
    LifecycleError,
    OrchestratorError,
    RetryExhaustedError,
)
from fork_orchestrator.rotation.constants import WORKFLOW_TIMEOUT_RESULT
from fork_orchestrator.rotation.state import (
    ForkChainNode,
    ForkStatus,
    OrchestratorState,
    StateStore,
)


if TYPE_CHECKING:
    from fork_orchestrator.remote.base import ClientFactory, RemoteWorkspaceClient
    from fork_orchestrator.rotation.identities import Identity, IdentityPool
    from fork_orchestrator.rotation.proxies import ProxyBinding, ProxyBindingManager

logger = get_logger(__name__)


class _RunPending(Exception):
    """An automation run has not completed yet."""


def split_repo(repo: str) -> tuple[str, str]:
    """Split ``owner/name``.

    Raises:
        ConfigurationError: If the identifier is not of that form
    """
    owner, sep, name = repo.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ConfigurationError(
            f"Repository identifier must be owner/name, got {repo!r}",
            details={"repo": repo},
        )
    return owner, name


def expected_fork_name(identity: Identity, parent_repo: str) -> str:
    """Deterministic identifier of the fork an identity makes of a parent."""
    _, name = split_repo(parent_repo)
    return f"{identity.name}/{name}"


class ForkLifecycleManager:
    """Creates, verifies and decommissions forks in the chain."""

    def __init__(
        self,
        store: StateStore,
        client_factory: ClientFactory,
        identities: IdentityPool,
        proxies: ProxyBindingManager | None = None,
        settings: ForkSettings | None = None,
        *,
        sleep: SleepFn = time.sleep,
    ) -> None:
        """Initialize the manager.

        Args:
            store: State persistence
            client_factory: Builds a remote client for an identity and binding
            identities: Pool used to resolve a node's owning identity
            proxies: Optional proxy bindings
            settings: Lifecycle timings and automation names
            sleep: Suspend function, injectable for tests
        """
        self.store = store
        self.identities = identities
        self.proxies = proxies
        self.settings = settings or ForkSettings()
        self._client_factory = client_factory
        self._sleep = sleep

    # --- Helpers ---

    def binding_for(self, identity: Identity) -> ProxyBinding | None:
        return self.proxies.lookup(identity.token) if self.proxies else None

    def _client(self, identity: Identity, binding: ProxyBinding | None) -> RemoteWorkspaceClient:
        return self._client_factory(identity, binding)

    def _disable_with(self, client: RemoteWorkspaceClient, repo: str) -> bool:
        trigger_id = client.get_automation_trigger_id(repo, self.settings.workflow_file)
        if trigger_id is None:
            logger.warning(
                "workflow_not_found",
                repo=repo,
                workflow_file=self.settings.workflow_file,
            )
            return False

        client.disable_automation(repo, trigger_id)
        logger.info("workflow_disabled", repo=repo, trigger_id=trigger_id)
        return True

    def _wait_until_ready(self, client: RemoteWorkspaceClient, repo: str) -> None:
        """Poll existence on a fixed interval until the fork shows up."""
        logger.info("waiting_for_fork", repo=repo)

        def probe() -> None:
            if not client.exists(repo):
                raise LifecycleError(f"Fork {repo} is not ready yet", details={"repo": repo})

        policy = RetryConfig.fixed(
            self.settings.ready_poll_interval, self.settings.ready_max_attempts
        )
        try:
            execute(policy, f"wait for fork {repo}", probe, sleep=self._sleep)
        except RetryExhaustedError as e:
            raise ForkNotReadyError(repo, e.attempts) from e

        logger.info("fork_ready", repo=repo)

    # --- Chain bookkeeping ---

    def register_source(
        self,
        state: OrchestratorState,
        repo: str,
        identity_index: int,
        total_identities: int | None = None,
    ) -> OrchestratorState:
        """Append the root Source node; no-op if the chain already has one."""
        owner, _ = split_repo(repo)

        existing = state.source_node()
        if existing is not None:
            logger.info("source_already_registered", repo=existing.repo)
            return state

        identity = self.identities.get(identity_index)
        pool_size = len(self.identities)
        new_state = state.copy_for_update()
        new_state.fork_chain.append(
            ForkChainNode(
                identity_index=identity.index,
                username=identity.name,
                repo=repo,
                status=ForkStatus.SOURCE,
            )
        )
        # An identity cannot fork its own repository
        if owner.lower() == identity.name.lower() and pool_size > 1:
            new_state.current_active_index = (identity.index + 1) % pool_size
        else:
            new_state.current_active_index = identity.index
        new_state.total_identities = total_identities or pool_size

        self.store.save(new_state)
        logger.info("source_registered", repo=repo, identity_index=identity.index)
        return new_state

    def next_parent_repo(self, state: OrchestratorState) -> str | None:
        """Newest Active or Exhausted fork, falling back to the Source repo."""
        for node in reversed(state.fork_chain):
            if node.status in (ForkStatus.ACTIVE, ForkStatus.EXHAUSTED):
                return node.repo

        source = state.source_node()
        return source.repo if source else None

    # --- Lifecycle ---

    def create(
        self,
        state: OrchestratorState,
        identity: Identity,
        parent_repo: str,
        binding: ProxyBinding | None = None,
    ) -> tuple[OrchestratorState, str]:
        """Create (or adopt) the identity's fork of parent_repo.

        Returns:
            Updated state and the fork identifier. When the fork already
            exists remotely and is tracked, the input state is returned as is.

        Raises:
            LifecycleError: If another fork is still Active, or the identity
                owns parent_repo or a finished chain entry of the same name
            ForkNotReadyError: If the new fork never becomes visible
        """
        split_repo(parent_repo)

        with self._client(identity, binding) as client:
            if not identity.is_resolved:
                identity = identity.with_name(client.get_username())

            repo = expected_fork_name(identity, parent_repo)
            logger.info(
                "creating_fork",
                repo=repo,
                parent=parent_repo,
                identity_index=identity.index,
            )

            if repo.lower() == parent_repo.lower():
                raise LifecycleError(
                    f"Identity {identity.index} owns {parent_repo} and cannot fork it",
                    details={"repo": repo, "identity_index": identity.index},
                )

            exists = client.exists(repo)
            if exists:
                tracked = state.find_repo(repo)
                if tracked is not None:
                    if tracked[1].status not in (ForkStatus.ACTIVE, ForkStatus.EXHAUSTED):
                        raise LifecycleError(
                            f"Cannot create fork {repo}: chain already holds it as "
                            f"{tracked[1].status}",
                            details={"repo": repo, "status": str(tracked[1].status)},
                        )
                    logger.info("fork_already_tracked", repo=repo, status=str(tracked[1].status))
                    return state, tracked[1].repo
                logger.info("fork_exists_untracked", repo=repo)

            active = state.active_node()
            if active is not None:
                raise LifecycleError(
                    f"Cannot create fork {repo}: {active[1].repo} is still active",
                    details={"repo": repo, "active_repo": active[1].repo},
                )

            if not exists:
                created = client.create_fork(parent_repo)
                if created.lower() != repo.lower():
                    logger.warning("fork_name_mismatch", expected=repo, actual=created)
                    repo = created
                self._wait_until_ready(client, repo)

        new_state = state.copy_for_update()
        new_state.fork_chain.append(
            ForkChainNode(
                identity_index=identity.index,
                username=identity.name,
                repo=repo,
                parent=parent_repo,
                status=ForkStatus.ACTIVE,
            )
        )
        new_state.current_active_index = identity.index
        new_state.total_identities = len(self.identities)
        self.store.save(new_state)

        logger.info("fork_added_to_chain", repo=repo, chain_length=len(new_state.fork_chain))
        return new_state, repo

    def disable_automation(
        self, repo: str, identity: Identity, binding: ProxyBinding | None = None
    ) -> bool:
        """Disable the fork's automation trigger.

        Returns:
            False when no trigger matches the workflow file (a warning, not an error)
        """
        with self._client(identity, binding) as client:
            return self._disable_with(client, repo)

    def enable_automation(
        self, repo: str, identity: Identity, binding: ProxyBinding | None = None
    ) -> bool:
        """Enable the fork's automation trigger; False if none is found."""
        with self._client(identity, binding) as client:
            trigger_id = client.get_automation_trigger_id(repo, self.settings.workflow_file)
            if trigger_id is None:
                logger.warning(
                    "workflow_not_found",
                    repo=repo,
                    workflow_file=self.settings.workflow_file,
                )
                return False

            client.enable_automation(repo, trigger_id)

        logger.info("workflow_enabled", repo=repo, trigger_id=trigger_id)
        return True

    def run_automation(
        self, repo: str, identity: Identity, binding: ProxyBinding | None = None
    ) -> int | None:
        """Dispatch the automation on the default branch.

        Returns:
            Identifier of the newest run once it is visible, or None
        """
        with self._client(identity, binding) as client:
            client.trigger_automation(
                repo, self.settings.workflow_file, self.settings.default_branch
            )
            logger.info("workflow_triggered", repo=repo, ref=self.settings.default_branch)

            def latest() -> int:
                run_id = client.get_latest_run_id(repo)
                if run_id is None:
                    raise _RunPending(f"No run visible in {repo} yet")
                return run_id

            policy = RetryConfig.fixed(
                self.settings.ready_poll_interval, self.settings.ready_max_attempts
            )
            try:
                return execute(
                    policy,
                    f"find run in {repo}",
                    latest,
                    sleep=self._sleep,
                    retry_on=(_RunPending,),
                )
            except RetryExhaustedError:
                logger.warning("workflow_run_not_found", repo=repo)
                return None

    def wait_for_run(
        self,
        repo: str,
        run_id: int,
        identity: Identity,
        binding: ProxyBinding | None = None,
        timeout_minutes: int | None = None,
    ) -> str:
        """Poll a run until it completes or the timeout elapses.

        Returns:
            The run conclusion (``"unknown"`` if the service reports none),
            or ``"timeout"``
        """
        timeout_minutes = timeout_minutes or self.settings.workflow_timeout_minutes
        interval = self.settings.workflow_poll_interval
        attempts = max(1, math.ceil(timeout_minutes * 60 / interval))

        logger.info("monitoring_run", repo=repo, run_id=run_id, timeout_minutes=timeout_minutes)

        with self._client(identity, binding) as client:

            def poll() -> str:
                status = client.get_run_status(repo, run_id)
                logger.debug("run_status", repo=repo, run_id=run_id, status=status.status)
                if not status.is_completed:
                    raise _RunPending(f"Run {run_id} in {repo} is {status.status}")
                return status.conclusion or "unknown"

            try:
                conclusion = execute(
                    RetryConfig.fixed(interval, attempts),
                    f"wait for run {run_id} in {repo}",
                    poll,
                    sleep=self._sleep,
                    retry_on=(_RunPending,),
                )
            except RetryExhaustedError:
                logger.warning("run_monitoring_timeout", repo=repo, run_id=run_id)
                return WORKFLOW_TIMEOUT_RESULT

        logger.info("run_completed", repo=repo, run_id=run_id, conclusion=conclusion)
        return conclusion

    def teardown(self, state: OrchestratorState, node_index: int) -> OrchestratorState:
        """Disable automation, wait, delete the fork and mark it Disabled.

        Raises:
            LifecycleError: If the node does not exist or is the Source
            ForkDeletionError: If remote deletion fails; the node is unchanged
        """
        try:
            node = state.fork_chain[node_index]
        except IndexError:
            raise LifecycleError(
                f"No fork at chain position {node_index}",
                details={"index": node_index},
            ) from None

        if node.status == ForkStatus.DISABLED:
            logger.info("fork_already_disabled", repo=node.repo)
            return state
        if node.status == ForkStatus.SOURCE:
            raise LifecycleError(
                f"Refusing to delete source repository {node.repo}",
                details={"repo": node.repo},
            )

        identity = self.identities.get(node.identity_index)
        binding = self.binding_for(identity)
        logger.info("deleting_fork", repo=node.repo, identity_index=identity.index)

        with self._client(identity, binding) as client:
            try:
                self._disable_with(client, node.repo)
            except (OrchestratorError, httpx.HTTPError) as e:
                logger.warning("teardown_disable_failed", repo=node.repo, error=str(e))

            self._sleep(self.settings.teardown_settle_seconds)

            try:
                client.delete(node.repo)
            except (OrchestratorError, httpx.HTTPError) as e:
                logger.error("fork_delete_failed", repo=node.repo, error=str(e))
                raise ForkDeletionError(node.repo, e) from e

        new_state = state.copy_for_update()
        new_state.fork_chain[node_index].transition(ForkStatus.DISABLED)
        self.store.save(new_state)

        logger.info("fork_deleted", repo=node.repo)
        return new_state

    def cleanup_exhausted(self, state: OrchestratorState) -> tuple[OrchestratorState, list[str]]:
        """Tear down every Exhausted node, continuing past failures.

        Returns:
            Final state and the repos that could not be torn down
        """
        exhausted = state.nodes_with_status(ForkStatus.EXHAUSTED)
        if not exhausted:
            logger.info("no_exhausted_forks")
            return state, []

        logger.info("cleanup_started", count=len(exhausted))

        failed: list[str] = []
        for index, node in exhausted:
            try:
                state = self.teardown(state, index)
            except OrchestratorError as e:
                logger.warning("cleanup_fork_failed", repo=node.repo, error=str(e))
                failed.append(node.repo)

        logger.info("cleanup_complete", deleted=len(exhausted) - len(failed), failed=len(failed))
        return state, failed
