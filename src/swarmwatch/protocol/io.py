"""Protocol IO helpers with atomic writes."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=False) + "\n"


def read_json(path: Path, default: Any) -> Any:
    """Read a JSON file, returning *default* when absent, unreadable or malformed.

    Another process may be mid-write; a torn read must not crash the
    observer, so parse errors degrade to the default.
    """
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Unreadable JSON at %s: %s", path, exc)
        return default


def temp_path_for(path: Path) -> Path:
    return path.with_name(f"{path.name}.tmp.{os.getpid()}.{time.time_ns()}")


def is_temp_path(path: str | Path) -> bool:
    return ".tmp" in Path(path).name


def write_json_atomic(path: Path, data: Any) -> None:
    """Replace *path* with *data* so readers never observe a partial file."""
    ensure_parent(path)
    payload = dump_json(data)
    tmp = temp_path_for(path)
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError as exc:
                logger.warning("Could not remove temp file %s: %s", tmp, exc)
