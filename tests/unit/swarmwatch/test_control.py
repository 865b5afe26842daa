"""Tests for the ControlCenter facade."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from swarmwatch.coordinator.control import ControlCenter
from swarmwatch.coordinator.event_bus import Notification
from swarmwatch.errors import InvalidArgumentError, NoActiveProjectError

LOG_LINES = [
    "[2026-01-05T10:00:00Z] [master-1] [REQUEST] id=req-1 add search",
    "[2026-01-05T10:00:04Z] [master-2] [TIER_CLASSIFY] id=req-1 tier=2 small feature",
    "[2026-01-05T10:00:05Z] [master-2] [TIER2_ASSIGN] id=req-1 -> worker-1",
    "[2026-01-05T10:00:06Z] [worker-1] [TASK_CLAIMED] id=req-1 task-1",
    "[2026-01-05T10:00:20Z] [worker-1] [COMPLETE] id=req-1 task-1",
    "[2026-01-05T10:00:30Z] [master-1] [REQUEST] id=req-2 fix typo",
    "[2026-01-05T10:00:31Z] [worker-2] [CONTEXT_RESET] budget exhausted",
    "garbage line from a crashed writer",
]


def make_swarm(base: Path) -> Path:
    root = base / "swarm"
    state = root / ".claude-shared-state"
    agent = root / ".claude"
    for d in (state, agent / "logs", agent / "signals", agent / "knowledge" / "domain", agent / "launchers"):
        d.mkdir(parents=True)
    (agent / "logs" / "activity.log").write_text("\n".join(LOG_LINES) + "\n", encoding="utf-8")
    (state / "handoff.json").write_text(json.dumps({"request_id": "req-3", "status": "pending"}), encoding="utf-8")
    (state / "agent-health.json").write_text(
        json.dumps({"master-2": {"tier1_count": 1}, "master-3": {"status": "resetting"}}), encoding="utf-8",
    )
    (agent / "knowledge" / "patterns.md").write_text("word " * 800, encoding="utf-8")
    (agent / "knowledge" / "domain" / "auth.md").write_text("tokens expire hourly", encoding="utf-8")
    (agent / "knowledge" / ".gitkeep").touch()
    (agent / "signals" / ".worker-1-wake").touch()
    (agent / "launchers" / "manifest.json").write_text(
        '{"agents": [{"id": "master-1", "group": "masters", "cwd": "C:\\Users\\dev\\swarm"}]}',
        encoding="utf-8",
    )
    return root.resolve()


@pytest.fixture
def control(tmp_path: Path, fake_observer) -> ControlCenter:  # type: ignore[no-untyped-def]
    center = ControlCenter(watch=False, observer_factory=fake_observer)
    center.add_project(make_swarm(tmp_path))
    return center


class TestNoProject:
    def test_reads_return_empty_defaults(self, fake_observer) -> None:  # type: ignore[no-untyped-def]
        center = ControlCenter(watch=False, observer_factory=fake_observer)
        assert center.get_document("handoff") is None
        assert center.list_signals() == []
        assert center.get_recent_events() == []
        assert center.get_timeline() == []
        assert center.get_health().records == []
        assert center.get_master_readiness().to_dict() == {"master-2": False, "master-3": False}
        assert center.list_knowledge() == []
        assert center.list_requests() == []
        assert center.get_stats().total_events == 0
        assert center.get_launcher_manifest() is None
        assert center.list_projects() == []

    def test_writes_require_a_project(self, fake_observer) -> None:  # type: ignore[no-untyped-def]
        center = ControlCenter(watch=False, observer_factory=fake_observer)
        with pytest.raises(NoActiveProjectError):
            center.write_document("handoff", {})
        with pytest.raises(NoActiveProjectError):
            center.touch_signal("build")
        with pytest.raises(NoActiveProjectError):
            center.check_project()


class TestDocumentsAndSignals:
    def test_document_round_trip(self, control: ControlCenter) -> None:
        control.write_document("fix-queue", {"fixes": [{"id": "f1"}]})
        assert control.get_document("fix-queue.json") == {"fixes": [{"id": "f1"}]}
        assert "fix-queue.json" in control.list_documents()

    def test_invalid_document_name(self, control: ControlCenter) -> None:
        with pytest.raises(InvalidArgumentError):
            control.write_document("../escape", {})

    def test_touch_and_list_signals(self, control: ControlCenter) -> None:
        control.touch_signal("build")
        assert [s.name for s in control.list_signals()] == [".build", ".worker-1-wake"]


class TestLogViews:
    def test_recent_events_by_token(self, control: ControlCenter) -> None:
        events = control.get_recent_events("req-1")
        assert [e.action for e in events] == [
            "REQUEST", "TIER_CLASSIFY", "TIER2_ASSIGN", "TASK_CLAIMED", "COMPLETE",
        ]
        assert len(control.get_recent_events(limit=2)) == 2

    def test_timeline_for_request(self, control: ControlCenter) -> None:
        phases = control.get_timeline("req-1")
        assert [p.name for p in phases] == ["handoff", "triage", "worker"]
        assert not any(p.open for p in phases)

    def test_list_requests(self, control: ControlCenter) -> None:
        summaries = {s.request_id: s for s in control.list_requests()}
        assert list(summaries) == ["req-3", "req-1", "req-2"]
        assert summaries["req-1"].status == "completed"
        assert summaries["req-1"].tier == 2
        assert summaries["req-2"].status == "request"
        assert summaries["req-3"].status == "pending"

    def test_stats(self, control: ControlCenter) -> None:
        stats = control.get_stats()
        assert stats.total_events == 7
        assert stats.tiers[2] == ["req-1"]
        assert stats.resets == {"master-2": 0, "master-3": 0, "workers": 1}
        assert stats.signal_count == 1
        assert stats.knowledge_count == 2
        assert "- Tier 2: 1" in stats.to_markdown()


class TestHealthKnowledgeManifest:
    def test_health(self, control: ControlCenter) -> None:
        report = control.get_health()
        assert [r.agent_id for r in report.records] == ["master-2", "master-3"]
        assert report.deferred_resets == ["master-2"]

    def test_master_readiness(self, control: ControlCenter) -> None:
        readiness = control.get_master_readiness()
        assert not readiness.architect and not readiness.allocator
        control.write_document("codebase-map", {"src": ["search.py"]})
        session = control.registry.session
        assert session is not None
        with session.layout.log_file.open("a", encoding="utf-8") as handle:
            handle.write("[2026-01-05T10:02:00Z] [master-3] [SCAN_COMPLETE] 4 workers registered\n")
        readiness = control.get_master_readiness()
        assert readiness.architect and readiness.allocator

    def test_knowledge(self, control: ControlCenter) -> None:
        files = {f.name: f for f in control.list_knowledge()}
        assert set(files) == {"patterns.md", "domain/auth.md"}
        assert files["patterns.md"].token_estimate == 1040
        assert files["patterns.md"].over_budget
        assert files["domain/auth.md"].budget == 800
        assert control.read_knowledge("domain/auth.md") == "tokens expire hourly"
        with pytest.raises(InvalidArgumentError):
            control.read_knowledge("../../../etc/passwd")

    def test_manifest(self, control: ControlCenter) -> None:
        manifest = control.get_launcher_manifest()
        assert manifest is not None
        assert manifest.agents[0].cwd == "C:/Users/dev/swarm"
        assert [a.id for a in manifest.agents_in_group("masters")] == ["master-1"]

    def test_check_project(self, control: ControlCenter, tmp_path: Path) -> None:
        check = control.check_project()
        assert not check.needs_setup
        assert "handoff.json" in check.documents
        bare = tmp_path / "bare"
        bare.mkdir()
        bare_check = control.check_project(bare)
        assert bare_check.needs_setup
        assert "launcher manifest" in bare_check.missing


class TestSubscribe:
    def test_subscribe_receives_log_lines(self, control: ControlCenter) -> None:
        received: list[Notification] = []
        sub = control.subscribe(on_new_log_lines=received.append)
        session = control.registry.session
        assert session is not None
        with session.layout.log_file.open("a", encoding="utf-8") as handle:
            handle.write("[2026-01-05T10:01:00Z] [master-3] [MERGE_PR] id=req-1\n")
        control.get_recent_events()
        assert len(received) == 1
        control.unsubscribe(sub)
