"""Incremental, cursor-based reads of a growing log file.

Only newline-terminated lines are returned. The cursor offset advances to
just past the last newline seen, so a half-written final line is held back
and returned whole on a later poll. ``LogCursor.size`` records the end of
the byte range already examined; a file smaller than that has been
truncated or rotated and is re-read from offset 0.

Each poll reads at most ``max_bytes``. A line longer than that is read whole
up to ``LONG_LINE_FACTOR`` caps; beyond that it is returned in pieces.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from swarmwatch.protocol.models import LogCursor

logger = logging.getLogger(__name__)

DEFAULT_MAX_READ_BYTES = 1_048_576
LONG_LINE_FACTOR = 16  # a single line may take up to this many read caps


@dataclass(frozen=True, slots=True)
class PollResult:
    lines: list[str] = field(default_factory=list)
    cursor: LogCursor = field(default_factory=lambda: LogCursor(Path()))
    rotated: bool = False
    more_pending: bool = False


def read_new_lines(cursor: LogCursor, max_bytes: int | None = None) -> PollResult:
    """Return completed lines appended since *cursor* and the advanced cursor."""
    path = cursor.path
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return PollResult(cursor=cursor)
    except OSError as exc:
        logger.debug("stat failed for %s: %s", path, exc)
        return PollResult(cursor=cursor)

    offset = cursor.offset
    examined = cursor.size
    rotated = False
    if size < examined:
        logger.info("Log %s shrank from %d to %d bytes; rereading from start", path, examined, size)
        offset = 0
        examined = 0
        rotated = True
    if size <= examined:
        return PollResult(cursor=LogCursor(path, offset, examined), rotated=rotated)

    limit = size - offset
    ceiling = limit
    if max_bytes is not None and max_bytes > 0:
        limit = min(limit, max_bytes)
        ceiling = min(ceiling, max_bytes * LONG_LINE_FACTOR)
    try:
        with path.open("rb") as handle:
            handle.seek(offset)
            data = handle.read(limit)
            if b"\n" not in data and offset + len(data) < size:
                # One line longer than the read cap: take it whole up to the ceiling.
                data += handle.read(ceiling - len(data))
    except FileNotFoundError:
        return PollResult(cursor=cursor)
    except OSError as exc:
        logger.debug("read failed for %s: %s", path, exc)
        return PollResult(cursor=cursor)

    end = offset + len(data)
    last_newline = data.rfind(b"\n")
    if last_newline < 0:
        if end < size and len(data) >= ceiling:
            # No newline within the ceiling: emit the fragment so the cursor keeps moving.
            logger.warning("Line at offset %d of %s exceeds %d bytes; splitting it", offset, path, ceiling)
            return PollResult(
                lines=[data.decode("utf-8", errors="replace")],
                cursor=LogCursor(path, end, end),
                rotated=rotated,
                more_pending=True,
            )
        return PollResult(
            cursor=LogCursor(path, offset, end), rotated=rotated, more_pending=end < size,
        )

    complete = data[: last_newline + 1].decode("utf-8", errors="replace")
    lines = [line.rstrip("\r") for line in complete.split("\n")]
    return PollResult(
        lines=[line for line in lines if line.strip()],
        cursor=LogCursor(path, offset + last_newline + 1, end),
        rotated=rotated,
        more_pending=end < size,
    )


class LogTailer:
    """Owns exactly one cursor per watched log path for the process lifetime."""

    def __init__(self, max_read_bytes: int = DEFAULT_MAX_READ_BYTES) -> None:
        self.max_read_bytes = max_read_bytes
        self._cursors: dict[Path, LogCursor] = {}

    def cursor(self, path: str | Path) -> LogCursor:
        key = Path(path)
        cur = self._cursors.get(key)
        if cur is None:
            cur = LogCursor(key)
            self._cursors[key] = cur
        return cur

    def poll(self, path: str | Path) -> PollResult:
        result = read_new_lines(self.cursor(path), self.max_read_bytes)
        self._cursors[Path(path)] = result.cursor
        if result.lines:
            logger.debug("Read %d new lines from %s", len(result.lines), path)
        return result

    def reset(self, path: str | Path) -> None:
        self._cursors[Path(path)] = LogCursor(Path(path))

    def forget(self, path: str | Path) -> None:
        self._cursors.pop(Path(path), None)

    @property
    def paths(self) -> list[Path]:
        return list(self._cursors)
