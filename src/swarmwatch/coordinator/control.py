"""Control surface over the active project.

``ControlCenter`` is what a front-end talks to. Read operations degrade to
empty values when no project is active; operations that change something
raise :class:`~swarmwatch.errors.NoActiveProjectError`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from watchdog.observers import Observer

from swarmwatch.config.schema import SwarmWatchConfig
from swarmwatch.coordinator.event_bus import Callback, NotificationBus, Subscription
from swarmwatch.coordinator.health import aggregate_health
from swarmwatch.coordinator.registry import ProjectListing, ProjectRegistry, SwitchResult
from swarmwatch.errors import NoActiveProjectError
from swarmwatch.protocol.models import HealthReport, LogEvent, Phase, ProjectEntry, ProjectLayout, Signal
from swarmwatch.store.knowledge import KnowledgeFile, KnowledgeStore
from swarmwatch.store.manifest import LauncherManifest, read_manifest
from swarmwatch.store.signals import SignalChannel
from swarmwatch.store.state_store import StateStore
from swarmwatch.timeline.parser import (
    MasterReadiness,
    list_request_ids,
    master_readiness,
    request_status,
    tier_classifications,
)
from swarmwatch.timeline.stats import SessionStats, compute_session_stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RequestSummary:
    request_id: str
    status: str
    tier: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"request_id": self.request_id, "status": self.status, "tier": self.tier}


@dataclass(slots=True)
class ProjectCheck:
    path: Path
    checks: dict[str, bool] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)

    @property
    def needs_setup(self) -> bool:
        return not (
            self.checks.get("has_agent_dir")
            and self.checks.get("has_shared_state")
            and self.checks.get("has_manifest")
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "needs_setup": self.needs_setup,
            "checks": dict(self.checks),
            "missing": list(self.missing),
            "documents": list(self.documents),
        }


class ControlCenter:
    def __init__(
        self,
        config: SwarmWatchConfig | None = None,
        *,
        bus: NotificationBus | None = None,
        watch: bool = True,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.config = config or SwarmWatchConfig()
        self.bus = bus or NotificationBus()
        self.registry = ProjectRegistry(
            self.bus, self.config, watch=watch, observer_factory=observer_factory,
        )

    # -- projects --------------------------------------------------------

    def add_project(self, path: str | Path, repo_url: str | None = None) -> ProjectEntry:
        return self.registry.add(path, repo_url)

    def switch_project(self, path: str | Path) -> SwitchResult:
        return self.registry.switch_active(path)

    def remove_project(self, path: str | Path) -> bool:
        return self.registry.remove(path)

    def list_projects(self) -> list[ProjectListing]:
        return self.registry.list()

    def check_project(self, path: str | Path | None = None) -> ProjectCheck:
        target = path if path is not None else self.registry.active_path
        if target is None:
            raise NoActiveProjectError()
        layout = self.registry.layout_for(target)
        checks = {
            "project_exists": layout.root.is_dir(),
            "has_agent_dir": layout.agent_dir.is_dir(),
            "has_shared_state": layout.state_dir.is_dir(),
            "has_manifest": layout.manifest.is_file(),
            "has_log": layout.log_file.is_file(),
            "has_signals": layout.signals_dir.is_dir(),
            "has_knowledge": layout.knowledge_dir.is_dir(),
        }
        labels = {
            "project_exists": "project directory",
            "has_agent_dir": f"{layout.agent_dir.name} directory",
            "has_shared_state": f"{layout.state_dir.name} directory",
            "has_manifest": "launcher manifest",
            "has_log": "activity log",
            "has_signals": "signals directory",
            "has_knowledge": "knowledge directory",
        }
        return ProjectCheck(
            path=layout.root,
            checks=checks,
            missing=[labels[k] for k, ok in checks.items() if not ok],
            documents=StateStore(layout.state_dir).list_documents(),
        )

    def shutdown(self) -> None:
        self.registry.shutdown()

    # -- state documents and signals -------------------------------------

    def get_document(self, name: str) -> Any | None:
        layout = self._layout()
        if layout is None:
            return None
        return StateStore(layout.state_dir).read(name)

    def write_document(self, name: str, value: Any) -> Path:
        return StateStore(self._require_layout().state_dir).write(name, value)

    def list_documents(self) -> list[str]:
        layout = self._layout()
        return StateStore(layout.state_dir).list_documents() if layout else []

    def list_signals(self) -> list[Signal]:
        layout = self._layout()
        return SignalChannel(layout.signals_dir).list() if layout else []

    def touch_signal(self, name: str) -> Signal:
        return SignalChannel(self._require_layout().signals_dir).touch(name)

    # -- log derived views -----------------------------------------------

    def get_recent_events(self, token: str | None = None, limit: int = 100) -> list[LogEvent]:
        session = self.registry.session
        return session.recent_events(token, limit) if session else []

    def get_timeline(self, token: str | None = None, now: float | None = None) -> list[Phase]:
        session = self.registry.session
        return session.timeline(token, now) if session else []

    def list_requests(self) -> list[RequestSummary]:
        session = self.registry.session
        if session is None:
            return []
        session.sync_log()
        events = session.journal.events()
        tiers = tier_classifications(events)
        handoff = session.state.read(session.layout.handoff_document)
        return [
            RequestSummary(
                request_id=rid,
                status=request_status(events, rid),
                tier=tiers[rid].tier if rid in tiers else None,
            )
            for rid in list_request_ids(events, handoff if isinstance(handoff, dict) else None)
        ]

    def get_stats(self) -> SessionStats:
        session = self.registry.session
        if session is None:
            return compute_session_stats([])
        session.sync_log()
        return compute_session_stats(
            session.journal.events(),
            signal_count=len(session.signals.list()),
            knowledge_count=len(session.knowledge.list()),
        )

    def get_health(self, now: float | None = None) -> HealthReport:
        session = self.registry.session
        if session is not None:
            return session.health(now)
        layout = self._layout()
        if layout is None:
            return HealthReport(generated_at=time.time() if now is None else now)
        document = StateStore(layout.state_dir).read(layout.health_document)
        return aggregate_health(document, now=now, config=self.config.health)

    def get_master_readiness(self) -> MasterReadiness:
        session = self.registry.session
        if session is None:
            return MasterReadiness()
        session.sync_log()
        return master_readiness(
            session.journal.events(),
            session.state.read(session.layout.health_document),
            session.state.read(session.layout.codebase_map_document),
        )

    # -- knowledge and launcher ------------------------------------------

    def list_knowledge(self) -> list[KnowledgeFile]:
        layout = self._layout()
        return KnowledgeStore(layout.knowledge_dir).list() if layout else []

    def read_knowledge(self, name: str) -> str | None:
        layout = self._layout()
        return KnowledgeStore(layout.knowledge_dir).read(name) if layout else None

    def get_launcher_manifest(self, path: str | Path | None = None) -> LauncherManifest | None:
        if path is not None:
            return read_manifest(self.registry.layout_for(path).manifest)
        layout = self._layout()
        return read_manifest(layout.manifest) if layout else None

    # -- notifications ---------------------------------------------------

    def subscribe(
        self,
        on_state_changed: Callback | None = None,
        on_new_log_lines: Callback | None = None,
        on_signal_fired: Callback | None = None,
        on_knowledge_changed: Callback | None = None,
        on_health: Callback | None = None,
        on_warning: Callback | None = None,
        *,
        on_any: Callback | None = None,
    ) -> Subscription:
        return self.bus.subscribe(
            on_state_changed, on_new_log_lines, on_signal_fired,
            on_knowledge_changed, on_health, on_warning, on_any=on_any,
        )

    def unsubscribe(self, subscription: Subscription) -> None:
        self.bus.unsubscribe(subscription)

    # -- helpers ---------------------------------------------------------

    def _layout(self) -> ProjectLayout | None:
        session = self.registry.session
        if session is not None:
            return session.layout
        active = self.registry.active_path
        return self.registry.layout_for(active) if active is not None else None

    def _require_layout(self) -> ProjectLayout:
        layout = self._layout()
        if layout is None:
            raise NoActiveProjectError()
        return layout
