"""Tests for agent health aggregation."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from swarmwatch.config.schema import HealthConfig, RoleHealthConfig
from swarmwatch.coordinator.health import aggregate_health, health_level, stale_agents

NOW = datetime(2026, 1, 5, 12, 0, 0, tzinfo=UTC).timestamp()


def iso(seconds_ago: float) -> str:
    return datetime.fromtimestamp(NOW - seconds_ago, UTC).isoformat()


class TestArchitect:
    def test_quota_remaining_and_reset(self) -> None:
        report = aggregate_health({"master-2": {"tier1_count": 3, "decomposition_count": 1}}, now=NOW)
        m2 = report.get("master-2")
        assert m2 is not None
        assert m2.remaining == {"tier1_count": 1, "decomposition_count": 5}
        assert m2.reset_imminent
        assert m2.status == "active"
        assert m2.level == "warn"  # 75% of tier-1 quota

    def test_fresh_architect_is_healthy(self) -> None:
        m2 = aggregate_health({"master-2": {}}, now=NOW).get("master-2")
        assert m2 is not None
        assert not m2.reset_imminent
        assert m2.level == "ok"


class TestAllocator:
    def test_budget_percent_is_capped(self) -> None:
        m3 = aggregate_health({"master-3": {"context_budget": 9000}}, now=NOW).get("master-3")
        assert m3 is not None
        assert m3.budget_percent == 100
        assert m3.reset_imminent
        assert m3.level == "critical"

    def test_uptime_triggers_reset(self) -> None:
        doc = {"master-3": {"context_budget": 100, "started_at": iso(18 * 60 + 5)}}
        m3 = aggregate_health(doc, now=NOW).get("master-3")
        assert m3 is not None
        assert m3.uptime_minutes == 18
        assert m3.reset_imminent

    def test_budget_threshold(self) -> None:
        below = aggregate_health({"master-3": {"context_budget": 4449}}, now=NOW).get("master-3")
        at = aggregate_health({"master-3": {"context_budget": 4500}}, now=NOW).get("master-3")
        assert below is not None and at is not None
        assert below.budget_percent == 88 and not below.reset_imminent
        assert at.budget_percent == 90 and at.reset_imminent


class TestWorkers:
    def test_worker_records_sorted_and_evaluated(self) -> None:
        doc = {
            "workers": {
                "worker-2": {"context_budget": 7200, "tasks_completed": 1, "last_heartbeat": iso(10)},
                "worker-1": {"context_budget": 800, "tasks_completed": 5, "last_heartbeat": iso(5)},
            }
        }
        report = aggregate_health(doc, now=NOW)
        assert [r.agent_id for r in report.records] == ["worker-1", "worker-2"]
        w1, w2 = report.records
        assert w1.budget_percent == 10 and w1.reset_imminent
        assert w2.budget_percent == 90 and w2.reset_imminent
        assert w1.status == "idle"
        assert w1.heartbeat_age_seconds == 5

    def test_stale_heartbeat_is_dead(self) -> None:
        doc = {"workers": {"worker-1": {"status": "busy", "last_heartbeat": iso(91)}}}
        report = aggregate_health(doc, now=NOW)
        assert report.records[0].status == "dead"
        assert stale_agents(report) == ["worker-1"]

    def test_recent_heartbeat_keeps_document_status(self) -> None:
        doc = {"workers": {"worker-1": {"status": "busy", "last_heartbeat": iso(90)}}}
        assert aggregate_health(doc, now=NOW).records[0].status == "busy"

    def test_bad_values_are_tolerated(self) -> None:
        doc = {"workers": {"w": {"context_budget": "lots", "last_heartbeat": "yesterday"}, "x": 3}}
        report = aggregate_health(doc, now=NOW)
        assert len(report.records) == 1
        assert report.records[0].budget_percent == 0
        assert report.records[0].heartbeat_age_seconds is None

    @pytest.mark.parametrize(
        "raw",
        [
            '{"master-2": {"tier1_count": 1e999, "decomposition_count": NaN}}',
            '{"master-3": {"context_budget": -Infinity, "started_at": NaN}}',
            '{"workers": {"w": {"tasks_completed": 1e999, "last_heartbeat": Infinity}}}',
        ],
    )
    def test_non_finite_numbers_are_dropped(self, raw: str) -> None:
        report = aggregate_health(json.loads(raw), now=NOW)
        assert len(report.records) == 1
        record = report.records[0]
        assert record.uptime_minutes is None
        assert record.heartbeat_age_seconds is None
        assert not record.reset_imminent
        assert record.level == "ok"


class TestReport:
    @pytest.mark.parametrize("document", [None, [], "text", 42])
    def test_absent_or_malformed_document_is_empty(self, document) -> None:  # type: ignore[no-untyped-def]
        report = aggregate_health(document, now=NOW)
        assert report.records == []
        assert report.generated_at == NOW

    def test_resetting_master_defers_the_other(self) -> None:
        doc = {"master-2": {"status": "resetting"}, "master-3": {"status": "active"}, "workers": {"w": {}}}
        report = aggregate_health(doc, now=NOW)
        assert report.deferred_resets == ["master-3"]

    def test_no_deferral_without_resets(self) -> None:
        doc = {"master-2": {}, "master-3": {}}
        assert aggregate_health(doc, now=NOW).deferred_resets == []

    def test_custom_role_rule(self) -> None:
        cfg = HealthConfig(roles=[RoleHealthConfig(role="reviewer", counters={"reviews": 10})])
        report = aggregate_health({"reviewer": {"reviews": 9}, "master-2": {}}, now=NOW, config=cfg)
        assert [r.agent_id for r in report.records] == ["reviewer"]
        assert report.records[0].reset_imminent
        assert report.records[0].level == "critical"

    def test_to_dict(self) -> None:
        data = aggregate_health({"master-2": {"tier1_count": 1}}, now=NOW).to_dict()
        assert data["records"][0]["agent_id"] == "master-2"
        assert data["generated_at"].startswith("2026-01-05T12:00:00")


@pytest.mark.parametrize(("pct", "level"), [(0, "ok"), (59.9, "ok"), (60, "warn"), (84, "warn"), (85, "critical")])
def test_health_level(pct: float, level: str) -> None:
    assert health_level(pct) == level
