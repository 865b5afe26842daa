"""YAML config loader for swarmwatch."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from swarmwatch.config.schema import (
    HealthConfig,
    LayoutConfig,
    RoleHealthConfig,
    SwarmWatchConfig,
    TailConfig,
    TimelineConfig,
    WatchConfig,
)


def load_config(path: str | Path | None) -> SwarmWatchConfig:
    if path is None:
        return SwarmWatchConfig()
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8")) if p.exists() else {}
    if not isinstance(raw, dict):
        raw = {}

    layout_raw = _section(raw, "layout")
    watch_raw = _section(raw, "watch")
    tail_raw = _section(raw, "tail")
    timeline_raw = _section(raw, "timeline")
    health_raw = _section(raw, "health")

    health = HealthConfig(**_pick(health_raw, HealthConfig, exclude={"roles"}))
    raw_roles = health_raw.get("roles")
    if isinstance(raw_roles, list):
        # Listed roles override the defaults of the same name; others are kept.
        overrides: dict[str, RoleHealthConfig] = {}
        for item in raw_roles:
            if isinstance(item, dict) and "role" in item:
                overrides[str(item["role"])] = RoleHealthConfig(**_pick(item, RoleHealthConfig))
        merged = [overrides.pop(r.role, r) for r in health.roles]
        health.roles = merged + list(overrides.values())

    return SwarmWatchConfig(
        version=int(raw.get("version", 1)),
        layout=LayoutConfig(**_pick(layout_raw, LayoutConfig)),
        watch=WatchConfig(**_pick(watch_raw, WatchConfig)),
        tail=TailConfig(**_pick(tail_raw, TailConfig)),
        timeline=TimelineConfig(**_pick(timeline_raw, TimelineConfig)),
        health=health,
    )


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {})
    return value if isinstance(value, dict) else {}


def _pick(
    raw: dict[str, Any], model_type: type[Any], exclude: set[str] | None = None,
) -> dict[str, Any]:
    allowed = set(model_type.__dataclass_fields__.keys()) - (exclude or set())
    return {k: v for k, v in raw.items() if k in allowed}
