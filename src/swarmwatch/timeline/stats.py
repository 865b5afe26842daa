"""Session statistics derived from the event journal."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from swarmwatch.protocol.models import LogEvent, epoch_to_iso
from swarmwatch.timeline.parser import TIER_PATTERN, extract_request_id

RESET_ACTIONS = frozenset({"RESET", "CONTEXT_RESET"})


def _empty_tiers() -> dict[int, list[str]]:
    return {1: [], 2: [], 3: []}


def _empty_resets() -> dict[str, int]:
    return {"master-2": 0, "master-3": 0, "workers": 0}


@dataclass(slots=True)
class SessionStats:
    session_start: float | None = None
    request_ids: list[str] = field(default_factory=list)
    tiers: dict[int, list[str]] = field(default_factory=_empty_tiers)
    resets: dict[str, int] = field(default_factory=_empty_resets)
    total_events: int = 0
    signal_count: int = 0
    knowledge_count: int = 0

    @property
    def total_resets(self) -> int:
        return sum(self.resets.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_start": epoch_to_iso(self.session_start) if self.session_start is not None else None,
            "request_ids": list(self.request_ids),
            "tiers": {str(k): list(v) for k, v in self.tiers.items()},
            "resets": dict(self.resets),
            "total_resets": self.total_resets,
            "total_events": self.total_events,
            "signal_count": self.signal_count,
            "knowledge_count": self.knowledge_count,
        }

    def to_markdown(self) -> str:
        return (
            "# Session Stats\n\n"
            f"- Requests: {len(self.request_ids)}\n"
            f"- Tier 1: {len(self.tiers[1])}\n"
            f"- Tier 2: {len(self.tiers[2])}\n"
            f"- Tier 3: {len(self.tiers[3])}\n"
            f"- Resets: M2={self.resets['master-2']} M3={self.resets['master-3']} "
            f"Workers={self.resets['workers']}\n"
            f"- Events: {self.total_events}\n"
        )


def compute_session_stats(
    events: Sequence[LogEvent], signal_count: int = 0, knowledge_count: int = 0,
) -> SessionStats:
    stats = SessionStats(
        total_events=len(events), signal_count=signal_count, knowledge_count=knowledge_count,
    )
    if not events:
        return stats
    stats.session_start = events[0].timestamp

    for event in events:
        rid = extract_request_id(event.detail)
        if rid and rid not in stats.request_ids:
            stats.request_ids.append(rid)

        if event.action == "TIER_CLASSIFY":
            tier = TIER_PATTERN.search(event.detail)
            if tier and rid and int(tier.group(1)) in stats.tiers:
                stats.tiers[int(tier.group(1))].append(rid)
        elif event.action in RESET_ACTIONS:
            if "master-2" in event.agent:
                stats.resets["master-2"] += 1
            elif "master-3" in event.agent:
                stats.resets["master-3"] += 1
            elif "worker" in event.agent:
                stats.resets["workers"] += 1
    return stats
