"""Launcher manifest reader (read-only input for the launch layer)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LauncherAgent:
    id: str
    role: str = ""
    group: str = ""
    cwd: str = ""
    command_fresh: str = ""
    command_continue: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class LauncherManifest:
    agents: list[LauncherAgent] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    def agents_in_group(self, group: str) -> list[LauncherAgent]:
        return [a for a in self.agents if a.group == group]


_KNOWN = {"id", "role", "group", "cwd", "command_fresh", "command_continue"}


def read_manifest(path: Path) -> LauncherManifest | None:
    """Parse the launcher manifest, or ``None`` if absent or malformed.

    Manifests written on Windows may carry unescaped backslashes in paths;
    they are rewritten to forward slashes before parsing.
    """
    if not path.exists():
        return None
    try:
        text = path.read_text(encoding="utf-8").replace("\\", "/")
        raw = json.loads(text)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Failed to read manifest %s: %s", path, exc)
        return None
    if not isinstance(raw, dict):
        return None

    agents: list[LauncherAgent] = []
    for item in raw.get("agents", []) if isinstance(raw.get("agents"), list) else []:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        agents.append(LauncherAgent(
            id=str(item["id"]),
            role=str(item.get("role", "")),
            group=str(item.get("group", "")),
            cwd=str(item.get("cwd", "")),
            command_fresh=str(item.get("command_fresh", "")),
            command_continue=str(item.get("command_continue", "")),
            extra={k: v for k, v in item.items() if k not in _KNOWN},
        ))
    return LauncherManifest(agents=agents, raw=raw)
