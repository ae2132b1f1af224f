"""JSON file helpers shared by the state store and the caches.

Writes go to a temporary file in the destination directory followed by an
atomic rename, so readers only ever see a complete document.
"""

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Any

import orjson
from structlog import get_logger


logger = get_logger(__name__)


def read_json(path: Path) -> Any:
    """Read and decode a JSON document.

    Args:
        path: File to read

    Returns:
        Decoded JSON value

    Raises:
        FileNotFoundError: If the file does not exist
        orjson.JSONDecodeError: If the file is not valid JSON
    """
    return orjson.loads(path.read_bytes())


def atomic_write_json(path: Path, data: Any) -> None:
    """Serialize data and atomically replace path with it.

    Args:
        path: Destination file
        data: JSON-serializable value

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = orjson.dumps(data, option=orjson.OPT_INDENT_2)

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise

    logger.debug("json_file_written", path=str(path), size=len(payload))
