"""Per-project observer: stores, log journal and watch scopes for one root."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.observers import Observer

from swarmwatch.config.schema import SwarmWatchConfig
from swarmwatch.coordinator.event_bus import NotificationBus, NotificationKind
from swarmwatch.coordinator.health import aggregate_health
from swarmwatch.observe.tailer import LogTailer
from swarmwatch.observe.watcher import ScopeKind, ScopeSet, WatchScope
from swarmwatch.protocol.io import is_temp_path
from swarmwatch.protocol.models import HealthReport, LogEvent, Phase, ProjectEntry, ProjectLayout
from swarmwatch.store.knowledge import KnowledgeStore
from swarmwatch.store.signals import SignalChannel
from swarmwatch.store.state_store import StateStore
from swarmwatch.timeline.parser import EventJournal, filter_by_token
from swarmwatch.timeline.reconstruct import reconstruct_phases

logger = logging.getLogger(__name__)


class ProjectSession:
    """Everything observed for one project while it is active.

    ``start()`` must run inside the event loop; ``stop()`` is synchronous
    and safe to call more than once.
    """

    def __init__(
        self,
        entry: ProjectEntry,
        layout: ProjectLayout,
        bus: NotificationBus,
        config: SwarmWatchConfig | None = None,
        *,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.entry = entry
        self.layout = layout
        self.bus = bus
        self.config = config or SwarmWatchConfig()

        self.state = StateStore(layout.state_dir)
        self.signals = SignalChannel(layout.signals_dir)
        self.knowledge = KnowledgeStore(layout.knowledge_dir)
        self.tailer = LogTailer(self.config.tail.max_read_bytes)
        self.journal = EventJournal(self.config.tail.max_journal_events)
        self.scopes = ScopeSet(self._build_scopes(observer_factory))
        self.warnings: list[str] = []

        self._primed = False
        self._running = False
        self._log_pending = False
        self._last_health: tuple[Any, ...] | None = None
        self._maintenance: asyncio.Task[None] | None = None

    @property
    def project(self) -> str:
        return str(self.entry.path)

    @property
    def running(self) -> bool:
        return self._running

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        if self._running:
            return
        loop = asyncio.get_running_loop()
        self.prime()
        for failure in self.scopes.start_all():
            self._warn(str(failure), scope=failure.scope)
        self._last_health = self._health_key(self.health())
        self._maintenance = loop.create_task(self._maintain(), name=f"maintain-{self.entry.name}")
        self._running = True
        logger.info(
            "Watching %s (%d scopes running, %d events primed)",
            self.project, len(self.scopes.running), len(self.journal),
        )

    def stop(self) -> None:
        self.scopes.stop_all()
        if self._maintenance is not None:
            self._maintenance.cancel()
            self._maintenance = None
        if self._running:
            logger.info("Stopped watching %s", self.project)
        self._running = False

    def prime(self) -> None:
        """Load the log's current contents into the journal without notifying."""
        if self._primed:
            return
        self._primed = True
        self.sync_log(broadcast=False, drain=True)

    # -- log -------------------------------------------------------------

    def sync_log(self, *, broadcast: bool = True, drain: bool = False) -> list[LogEvent]:
        """Poll the log once (or until caught up with ``drain``) into the journal."""
        if not self._primed:
            self.prime()
        added: list[LogEvent] = []
        while True:
            result = self.tailer.poll(self.layout.log_file)
            if result.rotated:
                self.journal.clear()
            events = self.journal.ingest(result.lines)
            added.extend(events)
            if broadcast and (result.lines or result.rotated):
                self.bus.publish(
                    NotificationKind.NEW_LOG_LINES,
                    self.project,
                    lines=result.lines,
                    events=events,
                    rotated=result.rotated,
                )
            self._log_pending = result.more_pending
            if not (drain and result.more_pending):
                return added

    # -- queries ---------------------------------------------------------

    def recent_events(self, token: str | None = None, limit: int = 100) -> list[LogEvent]:
        self.sync_log()
        events = filter_by_token(self.journal.events(), token)
        return events[-limit:] if limit > 0 else []

    def timeline(self, token: str | None = None, now: float | None = None) -> list[Phase]:
        self.sync_log()
        return reconstruct_phases(
            filter_by_token(self.journal.events(), token), now=now, config=self.config.timeline,
        )

    def health(self, now: float | None = None) -> HealthReport:
        document = self.state.read(self.layout.health_document)
        return aggregate_health(document, now=now, config=self.config.health)

    # -- watcher callbacks -----------------------------------------------

    def _build_scopes(self, observer_factory: Callable[[], Any]) -> list[WatchScope]:
        watch = self.config.watch
        layout = self.layout
        return [
            WatchScope(
                ScopeKind.STATE, layout.state_dir, self._on_state_change,
                stability_seconds=watch.state_stability_ms / 1000,
                accept=self._accept_state, observer_factory=observer_factory,
            ),
            WatchScope(
                ScopeKind.LOG, layout.log_file, self._on_log_change,
                stability_seconds=watch.log_stability_ms / 1000,
                accept=lambda p: p == layout.log_file,
                watch_dir=layout.log_file.parent, observer_factory=observer_factory,
            ),
            WatchScope(
                ScopeKind.KNOWLEDGE, layout.knowledge_dir, self._on_knowledge_change,
                stability_seconds=watch.knowledge_stability_ms / 1000, recursive=True,
                accept=self._accept_knowledge, observer_factory=observer_factory,
            ),
            WatchScope(
                ScopeKind.SIGNALS, layout.signals_dir, self._on_signal,
                stability_seconds=watch.signal_stability_ms / 1000,
                accept=self._accept_signal, observer_factory=observer_factory,
            ),
        ]

    def _accept_state(self, path: Path) -> bool:
        return path.parent == self.layout.state_dir and path.suffix == ".json" and not is_temp_path(path)

    def _accept_knowledge(self, path: Path) -> bool:
        try:
            rel = path.relative_to(self.layout.knowledge_dir)
        except ValueError:
            return False
        if path.name == ".gitkeep" or is_temp_path(path):
            return False
        return len(rel.parts) <= self.config.watch.knowledge_depth + 1

    def _accept_signal(self, path: Path) -> bool:
        return (
            path.parent == self.layout.signals_dir
            and path.name.startswith(".")
            and not is_temp_path(path)
        )

    def _on_state_change(self, path: Path) -> None:
        name = path.name
        self.bus.publish(
            NotificationKind.STATE_CHANGED, self.project, document=name, value=self.state.read(name),
        )
        if name == self.layout.health_document:
            self._publish_health(self.health())

    def _on_log_change(self, path: Path) -> None:
        self.sync_log(broadcast=True)

    def _on_signal(self, path: Path) -> None:
        try:
            touched = path.stat().st_mtime
        except OSError:
            # removed again before the debounce window closed
            return
        self.bus.publish(NotificationKind.SIGNAL_FIRED, self.project, name=path.name, timestamp=touched)

    def _on_knowledge_change(self, path: Path) -> None:
        rel = path.relative_to(self.layout.knowledge_dir).as_posix()
        self.bus.publish(
            NotificationKind.KNOWLEDGE_CHANGED, self.project, name=rel, exists=path.exists(),
        )

    # -- maintenance -----------------------------------------------------

    async def _maintain(self) -> None:
        interval = self.config.watch.maintenance_interval_seconds
        drain_delay = self.config.watch.log_stability_ms / 1000
        while True:
            await asyncio.sleep(drain_delay if self._log_pending else interval)
            try:
                self.maintenance_tick()
            except Exception:
                logger.exception("Maintenance failed for %s", self.project)

    def maintenance_tick(self) -> None:
        """Retry missing scopes, drain a backlogged log, refresh derived health."""
        for kind in self.scopes.retry_missing():
            logger.info("%s scope for %s is now running", kind, self.project)
            if kind is ScopeKind.LOG:
                self.sync_log(broadcast=True)
        if self._log_pending:
            self.sync_log(broadcast=True)
        report = self.health()
        key = self._health_key(report)
        if key != self._last_health:
            self._publish_health(report, key)

    def _publish_health(self, report: HealthReport, key: tuple[Any, ...] | None = None) -> None:
        self._last_health = key if key is not None else self._health_key(report)
        self.bus.publish(NotificationKind.HEALTH_UPDATED, self.project, report=report)

    @staticmethod
    def _health_key(report: HealthReport) -> tuple[Any, ...]:
        return (
            tuple((r.agent_id, r.status, r.reset_imminent, r.level) for r in report.records),
            tuple(report.deferred_resets),
        )

    def _warn(self, message: str, *, scope: str | None = None) -> None:
        logger.warning("%s: %s", self.project, message)
        self.warnings.append(message)
        self.bus.publish(NotificationKind.WATCH_WARNING, self.project, message=message, scope=scope)
