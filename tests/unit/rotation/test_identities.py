# tests/unit/rotation/test_identities.py
"""Tests for identity loading and validation."""

from pathlib import Path

import pytest

from fakes import TOKENS, FakeRemoteService
from fork_orchestrator.core.files import atomic_write_json, read_json
from fork_orchestrator.exceptions import (
    ConfigurationError,
    IdentityNotFoundError,
    NoValidIdentitiesError,
)
from fork_orchestrator.rotation.identities import (
    Identity,
    IdentityPool,
    load_identity_pool,
    parse_tokens,
)


@pytest.mark.unit
class TestLoadIdentityPool:
    """Tests for load_identity_pool."""

    def test_loads_tokens_in_file_order(self, config_dir: Path) -> None:
        pool = load_identity_pool(config_dir / "tokens.txt")

        assert [identity.token for identity in pool] == TOKENS
        assert [identity.index for identity in pool] == [0, 1, 2]
        assert [identity.name for identity in pool] == ["user_0", "user_1", "user_2"]
        assert not any(identity.is_resolved for identity in pool)

    def test_names_come_from_cache(self, config_dir: Path) -> None:
        cache = config_dir / "cache" / "tokenmap.json"
        atomic_write_json(cache, {TOKENS[1]: "bob"})

        pool = load_identity_pool(config_dir / "tokens.txt", cache)

        assert pool.get(1).name == "bob"
        assert pool.get(1).is_resolved
        assert pool.get(0).name == "user_0"

    def test_ignores_blank_and_foreign_lines(self) -> None:
        lines = ["", "  ghp_one  ", "# comment", "github_pat_two", "token"]
        assert parse_tokens(lines) == ["ghp_one", "github_pat_two"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="tokens.txt"):
            load_identity_pool(tmp_path / "tokens.txt")

    def test_file_without_tokens(self, tmp_path: Path) -> None:
        tokens = tmp_path / "tokens.txt"
        tokens.write_text("\n\nnot-a-token\n")

        with pytest.raises(ConfigurationError, match="No valid tokens"):
            load_identity_pool(tokens)


@pytest.mark.unit
class TestIdentity:
    """Tests for Identity."""

    def test_repr_hides_token(self) -> None:
        identity = Identity(index=0, token="ghp_abcdefghijklmnopqrstuvwxyz", name="alice")

        assert "ghp_abcdefgh" in repr(identity)
        assert "ijklmnop" not in repr(identity)
        assert identity.token_prefix == "ghp_abcdefgh"

    def test_get_unknown_index(self, identities: IdentityPool) -> None:
        with pytest.raises(IdentityNotFoundError, match="7"):
            identities.get(7)


@pytest.mark.unit
class TestValidate:
    """Tests for IdentityPool.validate."""

    def test_resolves_names_and_drops_invalid(
        self,
        config_dir: Path,
        remote: FakeRemoteService,
        sleeps: list[float],
    ) -> None:
        del remote.logins[TOKENS[1]]
        cache = config_dir / "cache" / "tokenmap.json"
        pool = load_identity_pool(config_dir / "tokens.txt", cache)

        valid = pool.validate(remote.factory(), pause=1.5, sleep=sleeps.append)

        assert [identity.index for identity in valid] == [0, 2]
        assert [identity.name for identity in valid] == ["alice", "carol"]
        assert valid.find(1) is None
        assert read_json(cache) == {TOKENS[0]: "alice", TOKENS[2]: "carol"}
        assert sleeps == [1.5, 1.5]
        assert remote.closed == 3

    def test_original_pool_is_unchanged(
        self, config_dir: Path, remote: FakeRemoteService, sleeps: list[float]
    ) -> None:
        pool = load_identity_pool(config_dir / "tokens.txt")

        pool.validate(remote.factory(), sleep=sleeps.append)

        assert len(pool) == 3
        assert pool.get(0).name == "user_0"

    def test_no_valid_identity(
        self, config_dir: Path, remote: FakeRemoteService, sleeps: list[float]
    ) -> None:
        remote.logins.clear()
        pool = load_identity_pool(config_dir / "tokens.txt")

        with pytest.raises(NoValidIdentitiesError):
            pool.validate(remote.factory(), sleep=sleeps.append)
