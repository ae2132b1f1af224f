"""File-system layout configuration."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class PathSettings(BaseModel):
    """Locations of the input files, caches and the persisted state.

    Everything lives under ``config_dir``; caches and state under
    ``config_dir/cache``.
    """

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory holding tokens.txt, proxies.txt and the cache",
    )

    tokens_filename: str = Field(
        default="tokens.txt",
        description="Identity tokens, one per line",
    )

    proxies_filename: str = Field(
        default="proxies.txt",
        description="Proxy URLs, one per line, paired with tokens by position",
    )

    @field_validator("config_dir", mode="before")
    @classmethod
    def expand_config_dir(cls, v: str | Path) -> Path:
        """Expand ~ in the configured directory."""
        return Path(v).expanduser()

    @property
    def cache_dir(self) -> Path:
        return self.config_dir / "cache"

    @property
    def state_file(self) -> Path:
        return self.cache_dir / "active.json"

    @property
    def proxy_cache_file(self) -> Path:
        return self.cache_dir / "proxymap.json"

    @property
    def name_cache_file(self) -> Path:
        return self.cache_dir / "tokenmap.json"

    @property
    def tokens_file(self) -> Path:
        return self.config_dir / self.tokens_filename

    @property
    def proxies_file(self) -> Path:
        return self.config_dir / self.proxies_filename
