"""Phase timeline reconstruction from parsed activity events.

Phases are inferred from a table of ``(agent, action) -> (phase,
transition)`` rules applied in log order:

- ``OPEN`` starts a phase owned by the event's agent. A fresh trigger while
  the same phase is already open for that agent closes the old one at the
  new trigger's timestamp, so same-named phases never overlap per agent.
- ``CLOSE`` ends the open phase, either the event agent's own or, when the
  rule names an ``owner``, every open phase of that name whose agent
  matches the owner (the architect closing the requester's handoff).
- ``SPAN`` folds every trigger into one interval from the earliest to the
  latest trigger plus a settle margin.
- ``MARK`` records a fixed-length interval ending at the event.

Phases still open at the end are provisional and end at ``now``.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from swarmwatch.config.schema import TimelineConfig
from swarmwatch.protocol.models import LogEvent, Phase


class Transition(StrEnum):
    OPEN = "open"
    CLOSE = "close"
    SPAN = "span"
    MARK = "mark"


@dataclass(frozen=True, slots=True)
class PhaseRule:
    agent: str  # substring of the emitting agent id
    actions: tuple[str, ...]
    phase: str
    transition: Transition
    owner: str | None = None
    margin: float | None = None  # SPAN settle / MARK lead; None = config default

    def matches(self, event: LogEvent) -> bool:
        return event.action in self.actions and self.agent in event.agent


PHASE_RULES: tuple[PhaseRule, ...] = (
    PhaseRule("master-1", ("REQUEST",), "handoff", Transition.OPEN),
    PhaseRule("master-2", ("TIER_CLASSIFY",), "handoff", Transition.CLOSE, owner="master-1"),
    PhaseRule("master-2", ("TIER_CLASSIFY",), "triage", Transition.OPEN),
    PhaseRule(
        "master-2", ("TIER1_EXECUTE", "TIER2_ASSIGN", "DECOMPOSE_START"), "triage", Transition.CLOSE,
    ),
    PhaseRule("master-2", ("DECOMPOSE_START",), "decomposition", Transition.OPEN),
    PhaseRule("master-2", ("DECOMPOSE_DONE",), "decomposition", Transition.CLOSE),
    PhaseRule("master-3", ("ALLOCATE",), "allocation", Transition.SPAN),
    PhaseRule("worker", ("TASK_CLAIMED",), "worker", Transition.OPEN),
    PhaseRule("worker", ("COMPLETE",), "worker", Transition.CLOSE),
    PhaseRule("master-3", ("MERGE_PR",), "integration", Transition.MARK),
)


@dataclass(slots=True)
class _Span:
    agent: str
    first: float
    last: float
    margin: float


def reconstruct_phases(
    events: Iterable[LogEvent],
    now: float | None = None,
    rules: Sequence[PhaseRule] = PHASE_RULES,
    config: TimelineConfig | None = None,
) -> list[Phase]:
    cfg = config or TimelineConfig()
    now = time.time() if now is None else now

    phases: list[Phase] = []
    open_phases: dict[tuple[str, str], float] = {}
    spans: dict[str, _Span] = {}

    for event in events:
        t = event.timestamp
        for rule in rules:
            if not rule.matches(event):
                continue
            if rule.transition is Transition.OPEN:
                key = (event.agent, rule.phase)
                prior = open_phases.pop(key, None)
                if prior is not None:
                    phases.append(Phase(rule.phase, prior, t, event.agent))
                open_phases[key] = t
            elif rule.transition is Transition.CLOSE:
                if rule.owner is None:
                    keys = [(event.agent, rule.phase)]
                else:
                    keys = [k for k in open_phases if k[1] == rule.phase and rule.owner in k[0]]
                for key in keys:
                    start = open_phases.pop(key, None)
                    if start is not None:
                        phases.append(Phase(rule.phase, start, t, key[0]))
            elif rule.transition is Transition.SPAN:
                margin = cfg.allocation_settle_seconds if rule.margin is None else rule.margin
                span = spans.get(rule.phase)
                if span is None:
                    spans[rule.phase] = _Span(event.agent, t, t, margin)
                else:
                    span.first = min(span.first, t)
                    span.last = max(span.last, t)
            elif rule.transition is Transition.MARK:
                lead = cfg.integration_lead_seconds if rule.margin is None else rule.margin
                phases.append(Phase(rule.phase, t - lead, t, event.agent))

    for name, span in spans.items():
        phases.append(Phase(name, span.first, span.last + span.margin, span.agent))
    for (agent, name), start in open_phases.items():
        phases.append(Phase(name, start, max(now, start), agent, open=True))

    phases.sort(key=lambda p: p.start)
    annotate_dead_time(phases, cfg.dead_time_seconds)
    return phases


def annotate_dead_time(phases: list[Phase], threshold_seconds: float) -> None:
    """Mark idle gaps above the threshold on the phase that follows them."""
    lanes: dict[str, list[Phase]] = {}
    for phase in phases:
        lanes.setdefault(phase.agent, []).append(phase)
    for lane in lanes.values():
        lane.sort(key=lambda p: p.start)
        for prev, cur in zip(lane, lane[1:]):
            gap = cur.start - prev.end
            cur.dead_time_before = gap if gap > threshold_seconds else 0.0


@dataclass(slots=True)
class TimelineSummary:
    start: float = 0.0
    end: float = 0.0
    longest: Phase | None = None
    lanes: list[str] = field(default_factory=list)
    dead_time_seconds: float = 0.0
    dead_time_gaps: int = 0

    @property
    def total_seconds(self) -> float:
        return max(self.end - self.start, 0.0)


def summarize_timeline(phases: Sequence[Phase]) -> TimelineSummary:
    if not phases:
        return TimelineSummary()
    lanes: list[str] = []
    for phase in phases:
        if phase.agent not in lanes:
            lanes.append(phase.agent)
    gaps = [p.dead_time_before for p in phases if p.dead_time_before > 0]
    return TimelineSummary(
        start=min(p.start for p in phases),
        end=max(p.end for p in phases),
        longest=max(phases, key=lambda p: p.duration),
        lanes=lanes,
        dead_time_seconds=sum(gaps),
        dead_time_gaps=len(gaps),
    )


def format_duration(seconds: float) -> str:
    s = round(seconds)
    if s >= 3600:
        return f"{s // 3600}h {(s % 3600) // 60}m"
    if s >= 60:
        return f"{s // 60}m {s % 60}s"
    return f"{s}s"
