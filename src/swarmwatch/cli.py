"""CLI entrypoint for swarmwatch."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click

from swarmwatch.config.loader import load_config
from swarmwatch.config.schema import SwarmWatchConfig
from swarmwatch.coordinator.control import ControlCenter
from swarmwatch.coordinator.event_bus import Notification, NotificationKind
from swarmwatch.coordinator.health import stale_agents
from swarmwatch.errors import SwarmWatchError
from swarmwatch.protocol.models import epoch_to_iso
from swarmwatch.timeline.reconstruct import format_duration, summarize_timeline
from swarmwatch.utils.logger import setup_logging

logger = logging.getLogger(__name__)

_ROOT = click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
_JSON = click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="YAML config file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, debug: bool, json_logs: bool) -> None:
    """Observe and drive a file-coordinated multi-agent workspace."""
    # stdout carries command output; only warnings reach stderr unless --debug
    setup_logging(debug=debug, json_output=json_logs, level=None if debug else logging.WARNING)
    ctx.obj = load_config(config_path)
    if config_path is not None:
        logger.debug("Loaded config from %s", config_path)


def _open(cfg: SwarmWatchConfig, root: Path) -> ControlCenter:
    control = ControlCenter(cfg, watch=False)
    try:
        control.add_project(root)
    except SwarmWatchError as exc:
        raise click.ClickException(str(exc)) from exc
    return control


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@main.command("watch")
@click.argument("roots", nargs=-1, required=True,
                type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--active", "active_root", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Project to observe first (defaults to the first ROOT)")
@click.option("--duration", type=float, default=None, help="Stop after this many seconds")
@click.pass_obj
def watch_command(cfg: SwarmWatchConfig, roots: tuple[Path, ...], active_root: Path | None,
                  duration: float | None) -> None:
    """Watch projects and print notifications as they happen."""
    try:
        asyncio.run(_watch(cfg, roots, active_root, duration))
    except KeyboardInterrupt:
        click.echo("Stopped.")


async def _watch(cfg: SwarmWatchConfig, roots: tuple[Path, ...], active_root: Path | None,
                 duration: float | None) -> None:
    control = ControlCenter(cfg)
    control.subscribe(on_any=lambda n: click.echo(format_notification(n)))
    try:
        for root in roots:
            control.add_project(root)
        if active_root is not None:
            result = control.switch_project(active_root)
            if result.needs_setup:
                click.echo(f"{result.path}: no coordination directory, nothing to watch yet")
        for listing in control.list_projects():
            marker = "*" if listing.is_active else " "
            click.echo(f"{marker} {listing.entry.name} {listing.entry.path}")
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    except SwarmWatchError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        control.shutdown()


def format_notification(n: Notification) -> str:
    p = n.payload
    if n.kind is NotificationKind.NEW_LOG_LINES:
        prefix = "[log rotated] " if p.get("rotated") else ""
        return prefix + "\n".join(p.get("lines", []))
    if n.kind is NotificationKind.STATE_CHANGED:
        return f"[state] {p.get('document')} changed"
    if n.kind is NotificationKind.SIGNAL_FIRED:
        return f"[signal] {p.get('name')} at {epoch_to_iso(p.get('timestamp', n.timestamp))}"
    if n.kind is NotificationKind.KNOWLEDGE_CHANGED:
        return f"[knowledge] {p.get('name')} changed"
    if n.kind is NotificationKind.HEALTH_UPDATED:
        report = p.get("report")
        records = report.records if report is not None else []
        parts = [f"{r.agent_id}={r.status}{'!' if r.reset_imminent else ''}" for r in records]
        return "[health] " + (" ".join(parts) or "no agents")
    return f"[warning] {p.get('message', '')}"


@main.command("events")
@_ROOT
@click.option("--request", "request_id", default=None, help="Only events mentioning this request id")
@click.option("--limit", default=100, show_default=True, help="How many recent events to show")
@_JSON
@click.pass_obj
def events_command(cfg: SwarmWatchConfig, root: Path, request_id: str | None, limit: int,
                   as_json: bool) -> None:
    """Show recent activity log events."""
    events = _open(cfg, root).get_recent_events(request_id, limit)
    if as_json:
        _echo_json([e.to_dict() for e in events])
        return
    for event in events:
        click.echo(f"{epoch_to_iso(event.timestamp)} {event.agent:<10} {event.action:<16} {event.detail}")


@main.command("timeline")
@_ROOT
@click.option("--request", "request_id", default=None, help="Only phases for this request id")
@_JSON
@click.pass_obj
def timeline_command(cfg: SwarmWatchConfig, root: Path, request_id: str | None, as_json: bool) -> None:
    """Reconstruct the phase timeline from the activity log."""
    phases = _open(cfg, root).get_timeline(request_id)
    if as_json:
        _echo_json([p.to_dict() for p in phases])
        return
    if not phases:
        click.echo("No phases found.")
        return
    summary = summarize_timeline(phases)
    click.echo(
        f"Total {format_duration(summary.total_seconds)}, "
        f"dead time {format_duration(summary.dead_time_seconds)} in {summary.dead_time_gaps} gaps"
    )
    for phase in phases:
        tail = " (open)" if phase.open else ""
        gap = f" after {format_duration(phase.dead_time_before)} idle" if phase.dead_time_before else ""
        click.echo(
            f"  {phase.agent:<10} {phase.name:<14} {format_duration(phase.duration):>8}{tail}{gap}"
        )


@main.command("health")
@_ROOT
@_JSON
@click.pass_obj
def health_command(cfg: SwarmWatchConfig, root: Path, as_json: bool) -> None:
    """Summarize agent health from the health document."""
    control = _open(cfg, root)
    report = control.get_health()
    readiness = control.get_master_readiness()
    if as_json:
        _echo_json({**report.to_dict(), "masters_ready": readiness.to_dict()})
        return
    click.echo("Masters ready: " + " ".join(
        f"{agent}={'yes' if ready else 'no'}" for agent, ready in readiness.to_dict().items()
    ))
    if not report.records:
        click.echo("No agent health data.")
        return
    if report.deferred_resets:
        click.echo(f"Resets deferred for: {', '.join(report.deferred_resets)}")
    stale = stale_agents(report)
    if stale:
        click.echo(f"Stale heartbeats: {', '.join(stale)}")
    for r in report.records:
        bits = [f"status={r.status}", f"level={r.level}"]
        if r.budget_percent is not None:
            bits.append(f"budget={r.budget_percent}%")
        bits.extend(f"{k}_remaining={v}" for k, v in r.remaining.items())
        if r.uptime_minutes is not None:
            bits.append(f"uptime={r.uptime_minutes}m")
        if r.heartbeat_age_seconds is not None:
            bits.append(f"heartbeat={r.heartbeat_age_seconds}s")
        if r.reset_imminent:
            bits.append("RESET IMMINENT")
        click.echo(f"{r.agent_id:<10} " + " ".join(bits))


@main.command("signals")
@_ROOT
@click.pass_obj
def signals_command(cfg: SwarmWatchConfig, root: Path) -> None:
    """List signal files and how long ago each was touched."""
    signals = _open(cfg, root).list_signals()
    if not signals:
        click.echo("No signals.")
    for sig in signals:
        click.echo(f"{sig.name:<28} {format_duration(sig.age_seconds)} ago")


@main.command("touch")
@_ROOT
@click.argument("name")
@click.pass_obj
def touch_command(cfg: SwarmWatchConfig, root: Path, name: str) -> None:
    """Fire a signal by touching its file."""
    try:
        sig = _open(cfg, root).touch_signal(name)
    except SwarmWatchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Touched {sig.path}")


@main.command("state-get")
@_ROOT
@click.argument("name")
@click.pass_obj
def state_get_command(cfg: SwarmWatchConfig, root: Path, name: str) -> None:
    """Print one state document."""
    try:
        value = _open(cfg, root).get_document(name)
    except SwarmWatchError as exc:
        raise click.ClickException(str(exc)) from exc
    if value is None:
        raise click.ClickException(f"Document not found or unreadable: {name}")
    _echo_json(value)


@main.command("state-put")
@_ROOT
@click.argument("name")
@click.argument("document")
@click.pass_obj
def state_put_command(cfg: SwarmWatchConfig, root: Path, name: str, document: str) -> None:
    """Atomically replace a state document with DOCUMENT (JSON text)."""
    try:
        value = json.loads(document)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"DOCUMENT is not valid JSON: {exc}") from exc
    try:
        path = _open(cfg, root).write_document(name, value)
    except SwarmWatchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Wrote {path}")


@main.command("knowledge")
@_ROOT
@click.argument("name", required=False)
@click.pass_obj
def knowledge_command(cfg: SwarmWatchConfig, root: Path, name: str | None) -> None:
    """List knowledge files with token budgets, or print one."""
    control = _open(cfg, root)
    if name:
        try:
            text = control.read_knowledge(name)
        except SwarmWatchError as exc:
            raise click.ClickException(str(exc)) from exc
        if text is None:
            raise click.ClickException(f"Knowledge file not found: {name}")
        click.echo(text, nl=False)
        return
    files = control.list_knowledge()
    if not files:
        click.echo("No knowledge files.")
    for kf in files:
        budget = f"{kf.token_estimate}/{kf.budget}" if kf.budget else str(kf.token_estimate)
        flag = " OVER BUDGET" if kf.over_budget else ""
        click.echo(f"{kf.name:<36} {budget:>11} tokens{flag}")


@main.command("requests")
@_ROOT
@click.pass_obj
def requests_command(cfg: SwarmWatchConfig, root: Path) -> None:
    """List request ids seen in the log with their latest status."""
    summaries = _open(cfg, root).list_requests()
    if not summaries:
        click.echo("No requests.")
    for s in summaries:
        tier = f"tier {s.tier}" if s.tier is not None else "untiered"
        click.echo(f"{s.request_id:<24} {s.status:<12} {tier}")


@main.command("stats")
@_ROOT
@click.option("--format", "fmt", type=click.Choice(["text", "json", "md"]), default="text")
@click.pass_obj
def stats_command(cfg: SwarmWatchConfig, root: Path, fmt: str) -> None:
    """Session statistics: requests, tiers and resets."""
    stats = _open(cfg, root).get_stats()
    if fmt == "json":
        _echo_json(stats.to_dict())
        return
    if fmt == "md":
        click.echo(stats.to_markdown(), nl=False)
        return
    if not stats.total_events:
        click.echo("No session data available. Activity log is empty.")
        return
    click.echo(f"Since {epoch_to_iso(stats.session_start or 0)}")
    click.echo(f"Requests: {len(stats.request_ids)}")
    click.echo("Tiers: " + " ".join(f"T{k}={len(v)}" for k, v in stats.tiers.items()))
    click.echo(f"Resets: {stats.total_resets} " + " ".join(f"{k}={v}" for k, v in stats.resets.items()))
    click.echo(f"Events: {stats.total_events} Signals: {stats.signal_count} Knowledge: {stats.knowledge_count}")


@main.command("doctor")
@_ROOT
@click.pass_obj
def doctor_command(cfg: SwarmWatchConfig, root: Path) -> None:
    """Check that a project has the coordination layout."""
    check = _open(cfg, root).check_project(root)
    click.echo(f"Project setup check: {check.path}")
    for key, ok in check.checks.items():
        click.echo(f"  [{'OK' if ok else 'FAIL'}] {key}")
    if check.documents:
        click.echo(f"  documents: {', '.join(check.documents)}")
    raise SystemExit(1 if check.needs_setup else 0)


if __name__ == "__main__":
    main()
