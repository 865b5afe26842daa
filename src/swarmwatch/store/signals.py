"""Zero-byte signal files used by agents to wake one another."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any

from swarmwatch.errors import InvalidArgumentError, SignalingError
from swarmwatch.protocol.models import Signal

logger = logging.getLogger(__name__)


def normalize_signal_name(name: Any) -> str:
    """Return the dot-prefixed file name for *name* (``build`` -> ``.build``)."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidArgumentError("Signal name is required")
    trimmed = name.strip()
    if "/" in trimmed or "\\" in trimmed or trimmed in (".", ".."):
        raise InvalidArgumentError(f"Invalid signal name: {name!r}")
    return trimmed if trimmed.startswith(".") else f".{trimmed}"


class SignalChannel:
    def __init__(self, signal_dir: str | Path) -> None:
        self.signal_dir = Path(signal_dir)

    def touch(self, name: str) -> Signal:
        normalized = normalize_signal_name(name)
        path = self.signal_dir / normalized
        try:
            self.signal_dir.mkdir(parents=True, exist_ok=True)
            now = time.time()
            with path.open("a", encoding="utf-8"):
                pass
            os.utime(path, (now, now))
        except OSError as exc:
            raise SignalingError(
                f"Failed to touch signal {normalized}: {exc}", signal_name=normalized,
            ) from exc
        logger.debug("Touched signal %s", path)
        return Signal(name=normalized, path=path, last_touched=now, age_seconds=0.0)

    def list(self, now: float | None = None) -> list[Signal]:
        if not self.signal_dir.is_dir():
            return []
        now = time.time() if now is None else now
        out: list[Signal] = []
        for entry in sorted(self.signal_dir.iterdir()):
            if not entry.name.startswith(".") or not entry.is_file():
                continue
            try:
                mtime = entry.stat().st_mtime
            except OSError:
                # deleted between iterdir() and stat()
                continue
            out.append(Signal(
                name=entry.name,
                path=entry,
                last_touched=mtime,
                age_seconds=max(now - mtime, 0.0),
            ))
        return out
