"""Activity log grammar and the append-ordered event journal.

Grammar v1, one event per line::

    [<ISO-8601 timestamp>] [<agent id>] [<ACTION>] <free text>

Lines that do not match are kept as :class:`Unrecognized` results rather
than raised, because concurrent writers can leave blank or torn lines.
The pattern is searched rather than anchored, so an event is still recovered
from a line whose start was torn by an interleaved write.
Events keep file order; producer clocks may be skewed, so timestamps are
never used to reorder them.
"""

from __future__ import annotations

import re
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from swarmwatch.protocol.models import LogEvent, ParseResult, Recognized, Unrecognized, parse_timestamp

LINE_PATTERN = re.compile(
    r"\[(?P<ts>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?)\]"
    r"\s*\[(?P<agent>[^\]]+)\]"
    r"\s*\[(?P<action>[^\]]+)\]"
    r"\s*(?P<detail>.*)$"
)

REQUEST_ID_PATTERN = re.compile(r"(?:request_id|id)[=:\s]*([^\s,\]]+)", re.IGNORECASE)
TIER_PATTERN = re.compile(r"tier[=:\s]*(\d)", re.IGNORECASE)


def parse_line(raw: str, seq: int = 0) -> ParseResult:
    match = LINE_PATTERN.search(raw)
    if not match:
        return Unrecognized(raw)
    ts = parse_timestamp(match.group("ts"))
    if ts is None:
        return Unrecognized(raw)
    return Recognized(LogEvent(
        timestamp=ts,
        agent=match.group("agent").strip(),
        action=match.group("action").strip(),
        detail=match.group("detail").strip(),
        raw=raw,
        seq=seq,
    ))


class EventJournal:
    """Session-local, append-ordered store of recognized events.

    Re-derived from the log's bytes each session; never persisted.
    """

    def __init__(self, max_events: int = 50_000) -> None:
        self._events: deque[LogEvent] = deque(maxlen=max_events)
        self._seq = 0
        self.recognized = 0
        self.unrecognized = 0

    def __len__(self) -> int:
        return len(self._events)

    def ingest(self, lines: Iterable[str]) -> list[LogEvent]:
        added: list[LogEvent] = []
        for line in lines:
            result = parse_line(line, seq=self._seq + 1)
            if isinstance(result, Unrecognized):
                self.unrecognized += 1
                continue
            self._seq += 1
            self.recognized += 1
            self._events.append(result.event)
            added.append(result.event)
        return added

    def events(self) -> list[LogEvent]:
        return list(self._events)

    def recent(self, limit: int = 100) -> list[LogEvent]:
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def clear(self) -> None:
        self._events.clear()

    @property
    def failure_rate(self) -> float:
        total = self.recognized + self.unrecognized
        return self.unrecognized / total if total else 0.0


def matches_token(event: LogEvent, token: str) -> bool:
    """Best-effort correlation: producers embed request ids as free text."""
    return token in event.detail or f"id={token}" in event.detail


def filter_by_token(events: Iterable[LogEvent], token: str | None) -> list[LogEvent]:
    if not token:
        return list(events)
    return [e for e in events if matches_token(e, token)]


def extract_request_id(detail: str) -> str | None:
    match = REQUEST_ID_PATTERN.search(detail)
    return match.group(1) if match else None


def list_request_ids(
    events: Iterable[LogEvent], handoff: dict[str, Any] | None = None,
) -> list[str]:
    """Unique request ids in first-seen order; the live handoff goes first."""
    seen: list[str] = []
    for event in events:
        rid = extract_request_id(event.detail)
        if rid and rid not in seen:
            seen.append(rid)
    current = (handoff or {}).get("request_id") if isinstance(handoff, dict) else None
    if isinstance(current, str) and current and current not in seen:
        seen.insert(0, current)
    return seen


_STATUS_BY_ACTION = {
    "COMPLETE": "completed",
    "MERGE_PR": "completed",
    "TASK_CLAIMED": "executing",
    "ALLOCATE": "allocating",
    "DECOMPOSE_START": "decomposing",
    "TIER_CLASSIFY": "classified",
}


def request_status(events: Iterable[LogEvent], request_id: str) -> str:
    last: LogEvent | None = None
    for event in events:
        if request_id in event.detail:
            last = event
    if last is None:
        return "pending"
    return _STATUS_BY_ACTION.get(last.action, last.action.lower())


@dataclass(frozen=True, slots=True)
class MasterReadiness:
    architect: bool = False
    allocator: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"master-2": self.architect, "master-3": self.allocator}


def _status_of(health: Any, agent: str) -> str | None:
    entry = health.get(agent) if isinstance(health, dict) else None
    status = entry.get("status") if isinstance(entry, dict) else None
    return status if isinstance(status, str) else None


def master_readiness(
    events: Iterable[LogEvent],
    health: Any = None,
    codebase_map: Any = None,
) -> MasterReadiness:
    """Whether the architect and allocator have finished their startup scan.

    A master counts as ready once it logs ``SCAN_COMPLETE`` or mentions its
    main loop, or once the health document reports it ``active``. A
    non-empty codebase map also means the architect's scan is done.
    """
    architect = _status_of(health, "master-2") == "active" or (
        isinstance(codebase_map, dict) and bool(codebase_map)
    )
    allocator = _status_of(health, "master-3") == "active"
    for event in events:
        detail = event.detail.lower()
        if "master-2" in event.agent and (
            event.action == "SCAN_COMPLETE" or "loop" in detail or "architect" in detail
        ):
            architect = True
        elif "master-3" in event.agent and (
            event.action == "SCAN_COMPLETE" or "loop" in detail or "allocat" in detail
        ):
            allocator = True
    return MasterReadiness(architect=architect, allocator=allocator)


@dataclass(frozen=True, slots=True)
class TierClassification:
    request_id: str
    tier: int
    reasoning: str
    timestamp: float


def tier_classifications(events: Iterable[LogEvent]) -> dict[str, TierClassification]:
    out: dict[str, TierClassification] = {}
    for event in events:
        if event.action != "TIER_CLASSIFY" or "master-2" not in event.agent:
            continue
        tier_match = TIER_PATTERN.search(event.detail)
        rid = extract_request_id(event.detail)
        if not tier_match or not rid:
            continue
        out[rid] = TierClassification(
            request_id=rid,
            tier=int(tier_match.group(1)),
            reasoning=event.detail,
            timestamp=event.timestamp,
        )
    return out
