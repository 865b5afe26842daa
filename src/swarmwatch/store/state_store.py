"""Named JSON state documents with crash-safe replace semantics."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from swarmwatch.errors import InvalidArgumentError
from swarmwatch.protocol.io import is_temp_path, read_json, write_json_atomic

logger = logging.getLogger(__name__)

_MISSING = object()


def normalize_document_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidArgumentError("Document name is required")
    cleaned = name.strip()
    if "/" in cleaned or "\\" in cleaned or cleaned in (".", "..") or cleaned.startswith(".."):
        raise InvalidArgumentError(f"Invalid document name: {name!r}")
    if not cleaned.endswith(".json"):
        cleaned = f"{cleaned}.json"
    return cleaned


class StateStore:
    """Read/write access to the ``*.json`` documents of one state directory.

    A document that is absent, unreadable or malformed reads as ``None``
    (NotFound); callers wanting a value use :meth:`read_or_default`.
    """

    def __init__(self, state_dir: str | Path) -> None:
        self.state_dir = Path(state_dir)

    def path_for(self, name: str) -> Path:
        return self.state_dir / normalize_document_name(name)

    def read(self, name: str) -> Any | None:
        value = read_json(self.path_for(name), default=_MISSING)
        if value is _MISSING:
            return None
        return value

    def read_or_default(self, name: str, default: Any) -> Any:
        value = self.read(name)
        return default if value is None else value

    def write(self, name: str, document: Any) -> Path:
        path = self.path_for(name)
        write_json_atomic(path, document)
        logger.debug("Wrote state document %s", path.name)
        return path

    def list_documents(self) -> list[str]:
        if not self.state_dir.is_dir():
            return []
        return sorted(
            p.name
            for p in self.state_dir.iterdir()
            if p.is_file() and p.suffix == ".json" and not is_temp_path(p)
        )
