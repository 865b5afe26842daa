"""Tracked projects and the single active observation session."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from watchdog.observers import Observer

from swarmwatch.config.schema import SwarmWatchConfig
from swarmwatch.coordinator.event_bus import NotificationBus
from swarmwatch.coordinator.session import ProjectSession
from swarmwatch.errors import ProjectNotFoundError
from swarmwatch.protocol.models import ProjectEntry, ProjectLayout

logger = logging.getLogger(__name__)

_ORIGIN_URL = re.compile(r'\[remote\s+"origin"\][^\[]*?^\s*url\s*=\s*(\S+)', re.MULTILINE)


def detect_repo_url(root: Path) -> str | None:
    """Return the ``origin`` remote URL from ``.git/config``, if any."""
    config = root / ".git" / "config"
    try:
        text = config.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    match = _ORIGIN_URL.search(text)
    return match.group(1) if match else None


def _canonical(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


@dataclass(slots=True)
class SwitchResult:
    path: Path
    needs_setup: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ProjectListing:
    entry: ProjectEntry
    is_active: bool
    has_manifest: bool
    needs_setup: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.entry.to_dict(),
            "is_active": self.is_active,
            "has_manifest": self.has_manifest,
            "needs_setup": self.needs_setup,
        }


class ProjectRegistry:
    """Owns the path -> entry map and the session of the active project.

    At most one project is observed at a time. With ``watch=False`` sessions
    are created and primed for queries but no watchers are started, which
    lets one-shot commands run outside an event loop.
    """

    def __init__(
        self,
        bus: NotificationBus,
        config: SwarmWatchConfig | None = None,
        *,
        watch: bool = True,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.bus = bus
        self.config = config or SwarmWatchConfig()
        self.watch = watch
        self._observer_factory = observer_factory
        self._entries: dict[Path, ProjectEntry] = {}
        self._active: Path | None = None
        self._session: ProjectSession | None = None

    @property
    def active_path(self) -> Path | None:
        return self._active

    @property
    def session(self) -> ProjectSession | None:
        return self._session

    def layout_for(self, path: str | Path) -> ProjectLayout:
        return ProjectLayout.from_root(_canonical(path), self.config.layout)

    def add(self, path: str | Path, repo_url: str | None = None) -> ProjectEntry:
        root = _canonical(path)
        if not root.is_dir():
            raise ProjectNotFoundError(str(path))
        entry = self._entries.get(root)
        if entry is None:
            entry = ProjectEntry(path=root, name=root.name, repo_url=repo_url or detect_repo_url(root))
            self._entries[root] = entry
            logger.info("Added project %s", root)
        elif repo_url:
            entry.repo_url = repo_url
        if self._active is None:
            self.switch_active(root)
        return entry

    def switch_active(self, path: str | Path) -> SwitchResult:
        root = _canonical(path)
        if not root.is_dir():
            raise ProjectNotFoundError(str(path))
        layout = self.layout_for(root)
        if root not in self._entries:
            # only set-up directories can be picked up on switch; others need add() first
            if not layout.has_coordination:
                raise ProjectNotFoundError(
                    str(path), "is not tracked and has no coordination directory",
                )
            self._entries[root] = ProjectEntry(path=root, name=root.name, repo_url=detect_repo_url(root))

        self._stop_session()
        self._active = root
        result = SwitchResult(path=root, needs_setup=not layout.has_coordination)
        if result.needs_setup:
            logger.info("Project %s has no coordination directory; not watching", root)
            return result

        session = ProjectSession(
            self._entries[root], layout, self.bus, self.config,
            observer_factory=self._observer_factory,
        )
        self._session = session
        if self.watch:
            session.start()
        else:
            session.prime()
        result.warnings = list(session.warnings)
        logger.info("Switched to project %s", root)
        return result

    def remove(self, path: str | Path) -> bool:
        root = _canonical(path)
        if self._entries.pop(root, None) is None:
            return False
        logger.info("Removed project %s", root)
        if self._active == root:
            self._stop_session()
            self._active = None
            for candidate in list(self._entries):
                if candidate.is_dir():
                    self.switch_active(candidate)
                    break
        return True

    def list(self) -> list[ProjectListing]:
        out: list[ProjectListing] = []
        for root, entry in self._entries.items():
            layout = self.layout_for(root)
            out.append(ProjectListing(
                entry=entry,
                is_active=root == self._active,
                has_manifest=layout.manifest.is_file(),
                needs_setup=not layout.has_coordination,
            ))
        return out

    def shutdown(self) -> None:
        self._stop_session()

    def _stop_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.stop()
