"""Filesystem protocol types for swarmwatch."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from swarmwatch.config.schema import LayoutConfig

HealthLevel = Literal["ok", "warn", "critical"]


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_timestamp(ts: Any) -> float | None:
    """Normalize an ISO-8601 string or epoch number to a float epoch.

    Naive timestamps are taken as UTC. Returns ``None`` when unparseable.
    """
    if isinstance(ts, bool):
        return None
    if isinstance(ts, (int, float)):
        try:
            value = float(ts)
        except OverflowError:
            return None
        return value if math.isfinite(value) else None
    if isinstance(ts, str) and ts:
        try:
            dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return dt.timestamp()
    return None


def epoch_to_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, UTC).isoformat()


@dataclass(frozen=True, slots=True)
class LogCursor:
    path: Path
    offset: int = 0
    size: int = 0


@dataclass(frozen=True, slots=True)
class LogEvent:
    timestamp: float
    agent: str
    action: str
    detail: str
    raw: str = ""
    seq: int = 0  # append position within the session journal

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": epoch_to_iso(self.timestamp),
            "agent": self.agent,
            "action": self.action,
            "detail": self.detail,
            "seq": self.seq,
        }


@dataclass(frozen=True, slots=True)
class Recognized:
    event: LogEvent


@dataclass(frozen=True, slots=True)
class Unrecognized:
    raw: str


ParseResult = Recognized | Unrecognized


@dataclass(slots=True)
class Phase:
    name: str
    start: float
    end: float
    agent: str
    open: bool = False
    dead_time_before: float = 0.0

    @property
    def duration(self) -> float:
        return max(self.end - self.start, 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.name,
            "agent": self.agent,
            "start": epoch_to_iso(self.start),
            "end": epoch_to_iso(self.end),
            "duration_s": round(self.duration, 3),
            "open": self.open,
            "dead_time_before_s": round(self.dead_time_before, 3),
        }


@dataclass(frozen=True, slots=True)
class Signal:
    name: str
    path: Path
    last_touched: float
    age_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "last_touched": epoch_to_iso(self.last_touched),
            "age_seconds": round(self.age_seconds, 3),
        }


@dataclass(frozen=True, slots=True)
class AgentHealthRecord:
    agent_id: str
    role: str
    status: str
    reset_imminent: bool
    level: HealthLevel = "ok"
    budget_percent: int | None = None
    remaining: dict[str, int] = field(default_factory=dict)
    uptime_minutes: int | None = None
    heartbeat_age_seconds: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class HealthReport:
    records: list[AgentHealthRecord] = field(default_factory=list)
    deferred_resets: list[str] = field(default_factory=list)
    generated_at: float = 0.0

    def get(self, agent_id: str) -> AgentHealthRecord | None:
        return next((r for r in self.records if r.agent_id == agent_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": epoch_to_iso(self.generated_at) if self.generated_at else "",
            "deferred_resets": list(self.deferred_resets),
            "records": [r.to_dict() for r in self.records],
        }


@dataclass(slots=True)
class ProjectEntry:
    path: Path
    name: str
    repo_url: str | None = None
    added_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "name": self.name,
            "repo_url": self.repo_url,
            "added_at": self.added_at,
        }


@dataclass(frozen=True, slots=True)
class ProjectLayout:
    root: Path
    state_dir: Path
    agent_dir: Path
    log_file: Path
    signals_dir: Path
    knowledge_dir: Path
    manifest: Path
    health_document: str
    handoff_document: str
    codebase_map_document: str = "codebase-map.json"

    @classmethod
    def from_root(cls, root: str | Path, layout: LayoutConfig | None = None) -> ProjectLayout:
        cfg = layout or LayoutConfig()
        root_path = Path(root)
        agent_dir = root_path / cfg.resolved_agent_dir()
        return cls(
            root=root_path,
            state_dir=root_path / cfg.resolved_state_dir(),
            agent_dir=agent_dir,
            log_file=agent_dir / cfg.log_file,
            signals_dir=agent_dir / cfg.signals_dir,
            knowledge_dir=agent_dir / cfg.knowledge_dir,
            manifest=agent_dir / cfg.manifest_file,
            health_document=cfg.health_document,
            handoff_document=cfg.handoff_document,
            codebase_map_document=cfg.codebase_map_document,
        )

    @property
    def has_coordination(self) -> bool:
        return self.state_dir.is_dir()
