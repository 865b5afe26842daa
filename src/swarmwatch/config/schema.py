"""Configuration schema for swarmwatch YAML files."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class LayoutConfig:
    flavor: str = "claude"  # "claude" | "codex"; picks the default directory names
    state_dir: str = ""  # empty = ".<flavor>-shared-state"
    agent_dir: str = ""  # empty = ".<flavor>"
    log_file: str = "logs/activity.log"
    signals_dir: str = "signals"
    knowledge_dir: str = "knowledge"
    manifest_file: str = "launchers/manifest.json"
    health_document: str = "agent-health.json"
    handoff_document: str = "handoff.json"
    codebase_map_document: str = "codebase-map.json"

    def resolved_state_dir(self) -> str:
        return self.state_dir or f".{self.flavor}-shared-state"

    def resolved_agent_dir(self) -> str:
        return self.agent_dir or f".{self.flavor}"


@dataclass(slots=True)
class WatchConfig:
    state_stability_ms: int = 100
    log_stability_ms: int = 50
    knowledge_stability_ms: int = 200
    signal_stability_ms: int = 50
    knowledge_depth: int = 2
    maintenance_interval_seconds: float = 3.0  # health refresh + missing scope retry


@dataclass(slots=True)
class TailConfig:
    max_read_bytes: int = 1_048_576
    max_journal_events: int = 50_000


@dataclass(slots=True)
class TimelineConfig:
    dead_time_seconds: float = 5.0
    allocation_settle_seconds: float = 2.0
    integration_lead_seconds: float = 5.0


@dataclass(slots=True)
class RoleHealthConfig:
    role: str  # key in the health document ("master-2") or "worker" for workers.*
    label: str = ""
    counters: dict[str, int] = field(default_factory=dict)  # field -> quota
    counter_reset_margin: int = 1  # reset imminent once remaining <= margin
    budget_field: str = ""
    budget_max: int = 0
    budget_reset_percent: int = 90
    uptime_field: str = ""
    uptime_reset_minutes: float = 0.0
    heartbeat_field: str = ""
    heartbeat_stale_seconds: float = 0.0
    default_status: str = "active"
    staggered: bool = True  # resets of staggered roles defer each other


def _default_roles() -> list[RoleHealthConfig]:
    return [
        RoleHealthConfig(
            role="master-2",
            label="Architect",
            counters={"tier1_count": 4, "decomposition_count": 6},
        ),
        RoleHealthConfig(
            role="master-3",
            label="Allocator",
            budget_field="context_budget",
            budget_max=5000,
            uptime_field="started_at",
            uptime_reset_minutes=18.0,
        ),
        RoleHealthConfig(
            role="worker",
            label="Worker",
            counters={"tasks_completed": 6},
            budget_field="context_budget",
            budget_max=8000,
            heartbeat_field="last_heartbeat",
            heartbeat_stale_seconds=90.0,
            default_status="idle",
            staggered=False,
        ),
    ]


@dataclass(slots=True)
class HealthConfig:
    warn_percent: int = 60
    critical_percent: int = 85
    roles: list[RoleHealthConfig] = field(default_factory=_default_roles)


@dataclass(slots=True)
class SwarmWatchConfig:
    version: int = 1
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    tail: TailConfig = field(default_factory=TailConfig)
    timeline: TimelineConfig = field(default_factory=TimelineConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
