"""Debounced filesystem watch scopes built on watchdog.

Each :class:`WatchScope` owns one watchdog observer thread. The thread only
forwards raw paths into the event loop (``call_soon_threadsafe``) where a
per-scope queue is drained by a single consumer task. The consumer keeps
one debounce timer per path and calls ``on_change(path)`` once that path
has been quiet for the stability window, so a write-then-rename burst
produces one notification.

``stop()`` is synchronous: it joins the observer, cancels every pending
timer and the consumer, and marks the scope closed so that nothing already
queued on the loop can still fire.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterable
from enum import StrEnum
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from swarmwatch.errors import WatcherSetupError
from swarmwatch.protocol.io import is_temp_path

logger = logging.getLogger(__name__)

_RELEVANT_EVENTS = {"created", "modified", "moved", "closed", "deleted"}


class ScopeKind(StrEnum):
    STATE = "state"
    LOG = "log"
    KNOWLEDGE = "knowledge"
    SIGNALS = "signals"


ChangeCallback = Callable[[Path], Any]
PathFilter = Callable[[Path], bool]


class _ScopeHandler(FileSystemEventHandler):
    """Runs on the watchdog thread; hands paths to the owning scope."""

    def __init__(self, scope: WatchScope) -> None:
        super().__init__()
        self._scope = scope

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return
        raw = getattr(event, "dest_path", "") if event.event_type == "moved" else event.src_path
        if not raw:
            return
        self._scope.enqueue(Path(os.fsdecode(raw)))


class WatchScope:
    def __init__(
        self,
        kind: ScopeKind,
        path: str | Path,
        on_change: ChangeCallback,
        *,
        stability_seconds: float = 0.1,
        recursive: bool = False,
        accept: PathFilter | None = None,
        watch_dir: str | Path | None = None,
        observer_factory: Callable[[], Any] = Observer,
        join_timeout: float = 2.0,
    ) -> None:
        self.kind = kind
        self.path = Path(path)
        self.watch_dir = Path(watch_dir) if watch_dir is not None else self.path
        self.on_change = on_change
        self.stability_seconds = stability_seconds
        self.recursive = recursive
        self._accept = accept
        self._observer_factory = observer_factory
        self._join_timeout = join_timeout

        self._observer: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[Path] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._timers: dict[Path, asyncio.TimerHandle] = {}
        self._closed = True
        self.fired = 0

    @property
    def running(self) -> bool:
        return not self._closed

    @property
    def pending(self) -> int:
        return len(self._timers)

    def start(self) -> None:
        """Start watching. Must be called from inside the running event loop."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        if not self.watch_dir.is_dir():
            raise WatcherSetupError(
                f"{self.kind} watch path does not exist: {self.watch_dir}", scope=str(self.kind),
            )
        observer = self._observer_factory()
        try:
            observer.schedule(_ScopeHandler(self), str(self.watch_dir), recursive=self.recursive)
            observer.start()
        except (OSError, RuntimeError) as exc:
            raise WatcherSetupError(
                f"Could not watch {self.watch_dir}: {exc}", scope=str(self.kind),
            ) from exc

        self._loop = loop
        self._observer = observer
        self._queue = asyncio.Queue()
        self._closed = False
        self._consumer = loop.create_task(self._consume(), name=f"watch-{self.kind}")
        logger.debug("Started %s scope on %s", self.kind, self.watch_dir)

    def stop(self) -> None:
        """Stop watching; idempotent, and no callback fires after it returns."""
        self._closed = True
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            try:
                observer.join(self._join_timeout)
            except RuntimeError:
                # observer thread was never started
                pass
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        if self._consumer is not None:
            self._consumer.cancel()
            self._consumer = None
        self._queue = None
        if observer is not None:
            logger.debug("Stopped %s scope on %s", self.kind, self.watch_dir)

    def enqueue(self, path: Path) -> None:
        """Thread-safe entry point used by the watchdog handler."""
        loop = self._loop
        if self._closed or loop is None:
            return
        if self._accept is not None and not self._accept(path):
            return
        try:
            loop.call_soon_threadsafe(self._put, path)
        except RuntimeError:
            # loop already closed during shutdown
            pass

    def _put(self, path: Path) -> None:
        if self._closed or self._queue is None:
            return
        self._queue.put_nowait(path)

    async def _consume(self) -> None:
        queue = self._queue
        loop = self._loop
        assert queue is not None and loop is not None
        while True:
            path = await queue.get()
            if self._closed:
                return
            previous = self._timers.pop(path, None)
            if previous is not None:
                previous.cancel()
            self._timers[path] = loop.call_later(self.stability_seconds, self._fire, path)

    def _fire(self, path: Path) -> None:
        self._timers.pop(path, None)
        if self._closed:
            return
        self.fired += 1
        try:
            self.on_change(path)
        except Exception:
            logger.exception("%s change handler failed for %s", self.kind, path)


class ScopeSet:
    """The independently start/stoppable scopes belonging to one project."""

    def __init__(self, scopes: Iterable[WatchScope]) -> None:
        self._scopes: dict[ScopeKind, WatchScope] = {s.kind: s for s in scopes}

    def __getitem__(self, kind: ScopeKind) -> WatchScope:
        return self._scopes[kind]

    def __iter__(self):  # noqa: ANN204
        return iter(self._scopes.values())

    @property
    def running(self) -> list[ScopeKind]:
        return [k for k, s in self._scopes.items() if s.running]

    @property
    def missing(self) -> list[ScopeKind]:
        return [k for k, s in self._scopes.items() if not s.running]

    def start_all(self) -> list[WatcherSetupError]:
        failures: list[WatcherSetupError] = []
        for scope in self._scopes.values():
            try:
                scope.start()
            except WatcherSetupError as exc:
                failures.append(exc)
        return failures

    def retry_missing(self) -> list[ScopeKind]:
        """Start scopes whose paths have appeared since the last attempt."""
        started: list[ScopeKind] = []
        for kind, scope in self._scopes.items():
            if scope.running or not scope.watch_dir.is_dir():
                continue
            try:
                scope.start()
            except WatcherSetupError as exc:
                logger.debug("Retry of %s scope failed: %s", kind, exc)
                continue
            started.append(kind)
        return started

    def stop_all(self) -> None:
        for scope in self._scopes.values():
            scope.stop()
