"""Global test fixtures for swarmwatch."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from swarmwatch.protocol.models import ProjectLayout


class FakeObserver:
    """Stands in for a watchdog Observer; tests dispatch events by hand."""

    instances: list[FakeObserver] = []

    def __init__(self) -> None:
        self.handlers: list[tuple[Any, str, bool]] = []
        self.started = False
        self.stopped = False
        self.joined = False
        FakeObserver.instances.append(self)

    def schedule(self, handler: Any, path: str, recursive: bool = False) -> None:
        self.handlers.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        self.joined = True

    def dispatch(self, event: Any) -> None:
        for handler, _path, _recursive in self.handlers:
            handler.dispatch(event)


@pytest.fixture
def tmp_workdir(tmp_path: Path) -> Path:
    """Provide a temporary working directory for file operation tests."""
    return tmp_path


@pytest.fixture
def fake_observer() -> type[FakeObserver]:
    FakeObserver.instances = []
    return FakeObserver


@pytest.fixture
def project(tmp_path: Path) -> ProjectLayout:
    """A project root with the full coordination layout in place."""
    root = tmp_path / "proj"
    layout = ProjectLayout.from_root(root)
    for directory in (layout.state_dir, layout.log_file.parent, layout.signals_dir, layout.knowledge_dir):
        directory.mkdir(parents=True)
    layout.log_file.touch()
    return layout
