"""Identity model and pool loading.

An identity is one worker credential from tokens.txt. Its index is its
position in that file and never changes for the lifetime of a run, even
when validation filters other identities out of the pool.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING

import orjson
from structlog import get_logger

from fork_orchestrator.core.files import atomic_write_json, read_json
from fork_orchestrator.exceptions import (
    ConfigurationError,
    IdentityNotFoundError,
    NoValidIdentitiesError,
    RemoteError,
)


if TYPE_CHECKING:
    from fork_orchestrator.remote.base import ClientFactory
    from fork_orchestrator.rotation.proxies import ProxyBindingManager

logger = get_logger(__name__)

TOKEN_PREFIXES = ("ghp_", "github_pat_")
PLACEHOLDER_NAME_PATTERN = re.compile(r"^user_\d+$")
TOKEN_PREFIX_LENGTH = 12


def token_prefix(token: str) -> str:
    """Loggable prefix of a token."""
    return token[:TOKEN_PREFIX_LENGTH]


@dataclass(frozen=True)
class Identity:
    """A worker credential drawn from the configured pool."""

    index: int
    token: str
    name: str

    @property
    def token_prefix(self) -> str:
        return token_prefix(self.token)

    @property
    def is_resolved(self) -> bool:
        """Whether the display name came from the remote service."""
        return not PLACEHOLDER_NAME_PATTERN.match(self.name)

    def with_name(self, name: str) -> Identity:
        return replace(self, name=name)

    def __repr__(self) -> str:
        return f"Identity(index={self.index}, name={self.name!r}, token={self.token_prefix}...)"


class IdentityPool:
    """Immutable, index-addressed collection of identities."""

    def __init__(
        self,
        identities: Iterable[Identity],
        name_cache_path: Path | None = None,
    ) -> None:
        self._identities: tuple[Identity, ...] = tuple(identities)
        self._by_index = {identity.index: identity for identity in self._identities}
        self._name_cache_path = name_cache_path

    def __iter__(self) -> Iterator[Identity]:
        return iter(self._identities)

    def __len__(self) -> int:
        return len(self._identities)

    @property
    def size(self) -> int:
        return len(self._identities)

    def find(self, index: int) -> Identity | None:
        return self._by_index.get(index)

    def get(self, index: int) -> Identity:
        """Get the identity at a stable pool index.

        Raises:
            IdentityNotFoundError: If no identity carries that index
        """
        identity = self._by_index.get(index)
        if identity is None:
            raise IdentityNotFoundError(index)
        return identity

    def validate(
        self,
        client_factory: ClientFactory,
        proxies: ProxyBindingManager | None = None,
        *,
        pause: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> IdentityPool:
        """Resolve display names remotely and drop identities that fail.

        Args:
            client_factory: Builds a remote client for an identity
            proxies: Optional proxy bindings used for each lookup
            pause: Seconds to wait between lookups
            sleep: Suspend function, injectable for tests

        Returns:
            New pool holding only the valid identities, indices preserved

        Raises:
            NoValidIdentitiesError: If no identity could be resolved
        """
        logger.info("validating_identities", count=len(self._identities))

        valid: list[Identity] = []
        name_cache: dict[str, str] = {}

        for position, identity in enumerate(self._identities):
            if position:
                sleep(pause)

            binding = proxies.lookup(identity.token) if proxies else None
            try:
                with client_factory(identity, binding) as client:
                    name = client.get_username()
            except RemoteError as e:
                logger.warning(
                    "identity_invalid",
                    index=identity.index,
                    token_prefix=identity.token_prefix,
                    error=str(e),
                )
                continue

            logger.info("identity_valid", index=identity.index, name=name)
            valid.append(identity.with_name(name))
            name_cache[identity.token] = name

        if not valid:
            raise NoValidIdentitiesError("No valid identities found after validation")

        logger.info(
            "identity_validation_complete",
            valid=len(valid),
            total=len(self._identities),
        )

        if self._name_cache_path is not None:
            save_name_cache(self._name_cache_path, name_cache)

        return IdentityPool(valid, self._name_cache_path)


def load_name_cache(path: Path) -> dict[str, str]:
    """Load the token to display-name cache; unreadable caches are ignored."""
    if not path.exists():
        return {}
    try:
        data = read_json(path)
    except (OSError, orjson.JSONDecodeError) as e:
        logger.warning("name_cache_unreadable", path=str(path), error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("name_cache_invalid", path=str(path))
        return {}
    return {str(k): str(v) for k, v in data.items()}


def save_name_cache(path: Path, cache: dict[str, str]) -> None:
    atomic_write_json(path, cache)
    logger.debug("name_cache_saved", path=str(path), count=len(cache))


def parse_tokens(lines: Iterable[str]) -> list[str]:
    """Keep non-empty lines that look like identity tokens."""
    tokens = []
    for line in lines:
        token = line.strip()
        if token and token.startswith(TOKEN_PREFIXES):
            tokens.append(token)
    return tokens


def load_identity_pool(tokens_file: Path, name_cache_file: Path | None = None) -> IdentityPool:
    """Load the identity pool from tokens.txt.

    Args:
        tokens_file: File with one token per line
        name_cache_file: Optional token to display-name cache

    Returns:
        IdentityPool with names from the cache or ``user_<index>`` placeholders

    Raises:
        ConfigurationError: If the file is missing or holds no valid token
    """
    try:
        content = tokens_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read tokens file {tokens_file}: {e}",
            details={"path": str(tokens_file)},
        ) from e

    tokens = parse_tokens(content.splitlines())
    if not tokens:
        raise ConfigurationError(
            f"No valid tokens found in {tokens_file}",
            details={"path": str(tokens_file)},
        )

    cached_names = load_name_cache(name_cache_file) if name_cache_file else {}
    identities = [
        Identity(index=i, token=token, name=cached_names.get(token, f"user_{i}"))
        for i, token in enumerate(tokens)
    ]

    logger.info("identities_loaded", path=str(tokens_file), count=len(identities))
    return IdentityPool(identities, name_cache_file)
