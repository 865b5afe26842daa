"""Agent health aggregation from the shared health document.

The health document is written by the agents themselves::

    {
      "master-2": {"status": "active", "tier1_count": 2, "decomposition_count": 1},
      "master-3": {"status": "active", "context_budget": 3100, "started_at": "..."},
      "workers": {"worker-1": {"context_budget": 4000, "tasks_completed": 3,
                               "last_heartbeat": "..."}}
    }

Everything here is a pure function of that document and ``now``; nothing is
cached between calls.
"""

from __future__ import annotations

import math
import time
from typing import Any

from swarmwatch.config.schema import HealthConfig, RoleHealthConfig
from swarmwatch.protocol.models import AgentHealthRecord, HealthLevel, HealthReport, parse_timestamp

WORKER_ROLE = "worker"
WORKERS_KEY = "workers"


def health_level(percent: float, config: HealthConfig | None = None) -> HealthLevel:
    cfg = config or HealthConfig()
    if percent < cfg.warn_percent:
        return "ok"
    if percent < cfg.critical_percent:
        return "warn"
    return "critical"


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return 0
    if not isinstance(value, (int, float)):
        return 0
    try:
        number = float(value)
    except OverflowError:
        return 0
    # json.loads yields inf and nan for 1e999 and NaN
    return int(number) if math.isfinite(number) else 0


def evaluate_agent(
    agent_id: str,
    entry: dict[str, Any],
    rule: RoleHealthConfig,
    now: float,
    config: HealthConfig | None = None,
) -> AgentHealthRecord:
    """Derive one agent's health record from its raw document entry."""
    cfg = config or HealthConfig()
    percents: list[float] = []
    reset = False

    remaining: dict[str, int] = {}
    for counter, quota in rule.counters.items():
        used = _as_int(entry.get(counter))
        remaining[counter] = quota - used
        if quota > 0:
            percents.append(used / quota * 100)
        if remaining[counter] <= rule.counter_reset_margin:
            reset = True

    budget_percent: int | None = None
    if rule.budget_field and rule.budget_max > 0:
        used = _as_int(entry.get(rule.budget_field))
        budget_percent = min(100, math.floor(used / rule.budget_max * 100))
        percents.append(budget_percent)
        if budget_percent >= rule.budget_reset_percent:
            reset = True

    uptime_minutes: int | None = None
    if rule.uptime_field:
        started = parse_timestamp(entry.get(rule.uptime_field))
        if started is not None:
            uptime_minutes = max(math.floor((now - started) / 60), 0)
            if rule.uptime_reset_minutes > 0:
                percents.append(min(uptime_minutes / rule.uptime_reset_minutes * 100, 100.0))
                if uptime_minutes >= rule.uptime_reset_minutes:
                    reset = True

    heartbeat_age: int | None = None
    dead = False
    if rule.heartbeat_field:
        beat = parse_timestamp(entry.get(rule.heartbeat_field))
        if beat is not None:
            heartbeat_age = max(round(now - beat), 0)
            dead = rule.heartbeat_stale_seconds > 0 and heartbeat_age > rule.heartbeat_stale_seconds

    if dead:
        status = "dead"
    else:
        raw_status = entry.get("status")
        status = raw_status if isinstance(raw_status, str) and raw_status else rule.default_status

    return AgentHealthRecord(
        agent_id=agent_id,
        role=rule.role,
        status=status,
        reset_imminent=reset,
        level=health_level(max(percents, default=0.0), cfg),
        budget_percent=budget_percent,
        remaining=remaining,
        uptime_minutes=uptime_minutes,
        heartbeat_age_seconds=heartbeat_age,
        raw=dict(entry),
    )


def _entries_for(document: dict[str, Any], rule: RoleHealthConfig) -> list[tuple[str, dict[str, Any]]]:
    if rule.role == WORKER_ROLE:
        workers = document.get(WORKERS_KEY)
        if not isinstance(workers, dict):
            return []
        return [(wid, w) for wid, w in sorted(workers.items()) if isinstance(w, dict)]
    entry = document.get(rule.role)
    return [(rule.role, entry)] if isinstance(entry, dict) else []


def aggregate_health(
    document: Any,
    now: float | None = None,
    config: HealthConfig | None = None,
) -> HealthReport:
    cfg = config or HealthConfig()
    now = time.time() if now is None else now
    if not isinstance(document, dict):
        return HealthReport(generated_at=now)

    records: list[AgentHealthRecord] = []
    staggered: list[str] = []
    for rule in cfg.roles:
        for agent_id, entry in _entries_for(document, rule):
            records.append(evaluate_agent(agent_id, entry, rule, now, cfg))
            if rule.staggered:
                staggered.append(agent_id)

    resetting = [r.agent_id for r in records if r.agent_id in staggered and r.status == "resetting"]
    deferred = [a for a in staggered if a not in resetting] if resetting else []
    return HealthReport(records=records, deferred_resets=deferred, generated_at=now)


def stale_agents(report: HealthReport) -> list[str]:
    return [r.agent_id for r in report.records if r.status == "dead"]
