# tests/unit/core/test_files.py
"""Tests for atomic JSON file helpers."""

from pathlib import Path
from unittest.mock import patch

import orjson
import pytest

from fork_orchestrator.core.files import atomic_write_json, read_json


@pytest.mark.unit
class TestAtomicWriteJson:
    """Tests for atomic_write_json."""

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        target = tmp_path / "cache" / "nested" / "data.json"

        atomic_write_json(target, {"a": 1})

        assert read_json(target) == {"a": 1}

    def test_replaces_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "data.json"
        target.write_text('{"old": true}')

        atomic_write_json(target, {"new": True})

        assert read_json(target) == {"new": True}

    def test_leaves_no_temporary_files(self, tmp_path: Path) -> None:
        target = tmp_path / "data.json"

        atomic_write_json(target, [1, 2, 3])

        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_failed_rename_keeps_previous_content(self, tmp_path: Path) -> None:
        """A crash before the rename never exposes a partial document."""
        target = tmp_path / "data.json"
        target.write_text('{"version": 1}')

        with (
            patch("fork_orchestrator.core.files.os.replace", side_effect=OSError("disk")),
            pytest.raises(OSError),
        ):
            atomic_write_json(target, {"version": 2})

        assert read_json(target) == {"version": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_read_json_rejects_invalid_content(self, tmp_path: Path) -> None:
        target = tmp_path / "broken.json"
        target.write_text("{not json")

        with pytest.raises(orjson.JSONDecodeError):
            read_json(target)
