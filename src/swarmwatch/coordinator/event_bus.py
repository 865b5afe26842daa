"""In-process notification bus for observed project changes.

Sessions emit :class:`Notification` objects; front-ends subscribe with one
callback per kind they care about. Subscriber failures are logged and never
reach the emitting watcher.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    STATE_CHANGED = "state_changed"
    NEW_LOG_LINES = "new_log_lines"
    SIGNAL_FIRED = "signal_fired"
    KNOWLEDGE_CHANGED = "knowledge_changed"
    HEALTH_UPDATED = "health_updated"
    WATCH_WARNING = "watch_warning"


@dataclass(frozen=True, slots=True)
class Notification:
    kind: NotificationKind
    project: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Callback = Callable[[Notification], Any]


@dataclass(frozen=True, slots=True)
class Subscription:
    id: int
    handlers: dict[NotificationKind, Callback]


class NotificationBus:
    def __init__(self, history_size: int = 500) -> None:
        self._subscriptions: dict[int, Subscription] = {}
        self._next_id = 1
        self._history: deque[Notification] = deque(maxlen=history_size)

    def subscribe(
        self,
        on_state_changed: Callback | None = None,
        on_new_log_lines: Callback | None = None,
        on_signal_fired: Callback | None = None,
        on_knowledge_changed: Callback | None = None,
        on_health: Callback | None = None,
        on_warning: Callback | None = None,
        *,
        on_any: Callback | None = None,
    ) -> Subscription:
        """Register callbacks; ``on_any`` receives every kind not handled explicitly."""
        given = {
            NotificationKind.STATE_CHANGED: on_state_changed,
            NotificationKind.NEW_LOG_LINES: on_new_log_lines,
            NotificationKind.SIGNAL_FIRED: on_signal_fired,
            NotificationKind.KNOWLEDGE_CHANGED: on_knowledge_changed,
            NotificationKind.HEALTH_UPDATED: on_health,
            NotificationKind.WATCH_WARNING: on_warning,
        }
        handlers: dict[NotificationKind, Callback] = {}
        for kind, cb in given.items():
            chosen = cb or on_any
            if chosen is not None:
                handlers[kind] = chosen
        sub = Subscription(id=self._next_id, handlers=handlers)
        self._next_id += 1
        self._subscriptions[sub.id] = sub
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    def emit(self, notification: Notification) -> None:
        self._history.append(notification)
        for sub in list(self._subscriptions.values()):
            cb = sub.handlers.get(notification.kind)
            if cb is None:
                continue
            try:
                cb(notification)
            except Exception as exc:
                logger.debug("NotificationBus subscriber error (%s): %s", notification.kind, exc)

    def publish(self, kind: NotificationKind, project: str = "", **payload: Any) -> Notification:
        notification = Notification(kind=kind, project=project, payload=payload)
        self.emit(notification)
        return notification

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    def recent(self, n: int = 20, kind: NotificationKind | None = None) -> list[Notification]:
        """Return the *n* most recent notifications, optionally of one kind."""
        items = [x for x in self._history if kind is None or x.kind == kind]
        return items[-n:] if n > 0 else []
