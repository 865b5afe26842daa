"""Tests for the notification bus."""

from __future__ import annotations

from swarmwatch.coordinator.event_bus import Notification, NotificationBus, NotificationKind


class TestNotificationBus:
    def test_routes_by_kind(self) -> None:
        bus = NotificationBus()
        states: list[Notification] = []
        signals: list[Notification] = []
        bus.subscribe(on_state_changed=states.append, on_signal_fired=signals.append)
        bus.publish(NotificationKind.STATE_CHANGED, "/p", document="handoff.json")
        bus.publish(NotificationKind.SIGNAL_FIRED, "/p", name=".build")
        bus.publish(NotificationKind.NEW_LOG_LINES, "/p", lines=["x"])
        assert [n.payload["document"] for n in states] == ["handoff.json"]
        assert [n.payload["name"] for n in signals] == [".build"]

    def test_on_any_fills_unhandled_kinds(self) -> None:
        bus = NotificationBus()
        warnings: list[Notification] = []
        rest: list[Notification] = []
        bus.subscribe(on_warning=warnings.append, on_any=rest.append)
        for kind in NotificationKind:
            bus.publish(kind)
        assert [n.kind for n in warnings] == [NotificationKind.WATCH_WARNING]
        assert len(rest) == len(NotificationKind) - 1

    def test_unsubscribe(self) -> None:
        bus = NotificationBus()
        received: list[Notification] = []
        sub = bus.subscribe(on_any=received.append)
        assert bus.subscriber_count == 1
        bus.unsubscribe(sub)
        bus.unsubscribe(sub)
        bus.publish(NotificationKind.HEALTH_UPDATED)
        assert received == []
        assert bus.subscriber_count == 0

    def test_subscriber_error_does_not_propagate(self) -> None:
        bus = NotificationBus()
        received: list[Notification] = []

        def bad_callback(n: Notification) -> None:
            raise RuntimeError("boom")

        bus.subscribe(on_any=bad_callback)
        bus.subscribe(on_any=received.append)
        bus.publish(NotificationKind.STATE_CHANGED)
        assert len(received) == 1
        assert len(bus.history) == 1

    def test_history_is_bounded(self) -> None:
        bus = NotificationBus(history_size=3)
        for i in range(5):
            bus.publish(NotificationKind.NEW_LOG_LINES, lines=[str(i)])
        assert [n.payload["lines"][0] for n in bus.history] == ["2", "3", "4"]

    def test_recent_by_kind(self) -> None:
        bus = NotificationBus()
        bus.publish(NotificationKind.STATE_CHANGED)
        bus.publish(NotificationKind.SIGNAL_FIRED)
        bus.publish(NotificationKind.STATE_CHANGED)
        assert len(bus.recent(10, NotificationKind.STATE_CHANGED)) == 2
        assert bus.recent(1)[0].kind is NotificationKind.STATE_CHANGED
        assert bus.recent(0) == []

    def test_timestamp_auto_set(self) -> None:
        bus = NotificationBus()
        note = bus.publish(NotificationKind.STATE_CHANGED)
        assert note.timestamp > 0
