"""Location of the optional TOML configuration file."""

from pathlib import Path

import platformdirs


APP_NAME = "fork_orchestrator"
CONFIG_FILENAMES = (".fork_orchestrator.toml", "fork_orchestrator.toml")


def get_orchestrator_config_dir() -> Path:
    """Per-user configuration directory (platform-specific, via platformdirs)."""
    return Path(platformdirs.user_config_dir(APP_NAME))


def find_toml_config_file(search_dir: Path | None = None) -> Path | None:
    """Find the TOML configuration file.

    Searches in the following order:
    1. .fork_orchestrator.toml in the search directory (default: cwd)
    2. fork_orchestrator.toml in the search directory
    3. config.toml in the user config directory
    """
    base = (search_dir or Path.cwd()).resolve()
    candidates = [base / name for name in CONFIG_FILENAMES]
    candidates.append(get_orchestrator_config_dir() / "config.toml")

    return next((c for c in candidates if c.is_file()), None)
