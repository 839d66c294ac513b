import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from utils.config_validator import MonitorConfiguration
from utils.crash_supervisor import CrashSupervisor
from utils.errors import SourceUnavailable
from utils.log_parser import LogEvents, parse_log_window
from utils.metrics import MetricsAggregator
from utils.persistence import SnapshotStore
from utils.uptime import UptimeTracker
from utils.victories import VictoryTracker


@dataclass
class RoundSummary:
    match_duration: Any = "N/A"
    bases_captured: Any = "N/A"
    players_killed: Any = "N/A"
    last_round_winner: str = "N/A"


class MonitorContext:
    """Owns every piece of state the monitoring task mutates."""

    def __init__(
        self,
        settings: MonitorConfiguration,
        log_source,
        supervisor: Optional[CrashSupervisor] = None,
        metrics: Optional[MetricsAggregator] = None,
        victories: Optional[VictoryTracker] = None,
        uptime: Optional[UptimeTracker] = None,
        store: Optional[SnapshotStore] = None,
    ):
        self.settings = settings
        self.log_source = log_source
        self.supervisor = supervisor
        self.metrics = metrics or MetricsAggregator()
        self.victories = victories or VictoryTracker(settings.VICTORY_DUPLICATE_CHECK_MINUTES)
        self.uptime = uptime or UptimeTracker(settings.LOG_SOURCE.LOCAL_PATH)
        self.store = store or SnapshotStore(settings.DATA_DIR)
        self.round_summary = RoundSummary()
        self.latest_fps: Optional[float] = None
        self.latest_players: Optional[int] = None
        self.last_log_path: Optional[str] = None
        # Serializes snapshot writes from the tick and the snapshot timer
        self.save_lock = asyncio.Lock()

    def load_snapshot(self):
        self.store.load(self.metrics, self.victories, self.uptime)
        self.latest_fps = self.metrics.latest("fps")
        latest_players = self.metrics.latest("players")
        self.latest_players = int(latest_players) if latest_players is not None else None

    def collect_snapshot(self, now: Optional[datetime] = None):
        return self.store.collect(self.metrics, self.victories, self.uptime, now)

    async def save_snapshot(self, now: Optional[datetime] = None):
        """Copies state on the event loop, then writes the files in a worker thread."""
        payloads = self.collect_snapshot(now)
        async with self.save_lock:
            await asyncio.to_thread(self.store.write, payloads)


async def resolve_log_path(ctx: MonitorContext) -> Optional[str]:
    """The remote path, or the log file inside the newest local log directory."""
    source = ctx.settings.LOG_SOURCE
    if source.TYPE == "remote":
        return source.REMOTE_PATH

    latest_dir = await asyncio.to_thread(ctx.uptime.refresh)
    if latest_dir is None:
        return None
    return os.path.join(latest_dir.path, source.LOG_FILE_NAME)


def apply_events(ctx: MonitorContext, events: LogEvents, now: datetime):
    """
    Feeds one tick's parsed events into the metrics, victories and round summary.
    Runs without awaiting, so a snapshot never sees half of a tick.
    """
    if events.has_performance:
        ctx.metrics.record("fps", events.fps, now)
        ctx.metrics.record("players", events.players, now)
        ctx.latest_fps = events.fps
        ctx.latest_players = events.players

    if events.victory:
        ctx.victories.record_victory(events.victory, now)

    summary = ctx.round_summary
    if events.match_duration is not None:
        summary.match_duration = events.match_duration
    if events.bases_captured is not None:
        summary.bases_captured = events.bases_captured
    if events.players_killed is not None:
        summary.players_killed = events.players_killed
    if events.admin_winner:
        summary.last_round_winner = events.admin_winner
        if ctx.supervisor:
            ctx.supervisor.state.last_round_winner = events.admin_winner
        logging.info(f"[VICTORY DETECTED] {events.admin_winner} won the round!")
        if events.admin_winner != events.victory:
            ctx.victories.record_victory(events.admin_winner, now)


async def run_tick(ctx: MonitorContext, now: Optional[datetime] = None) -> Optional[LogEvents]:
    """
    One monitoring pass. The crash check always runs before regular parsing
    and a crash ends the tick.

    Returns:
        The parsed events, or None if no log could be located.
    """
    now = now or datetime.now()
    supervisor = ctx.supervisor

    log_path = await resolve_log_path(ctx)

    if supervisor:
        await supervisor.refresh_process(now)

    if log_path is None:
        logging.info("No log directory found. Will check again in the next interval.")
        return None
    if log_path != ctx.last_log_path:
        logging.info(f"Monitoring log: {log_path}")
        ctx.last_log_path = log_path

    window = ctx.settings.LOG_WINDOW_LINES
    try:
        lines = await ctx.log_source.read_tail(log_path, window)
    except SourceUnavailable as e:
        logging.info(f"No log update this tick: {e}")
        lines = []

    keywords = supervisor.settings.CRASH_KEYWORDS if supervisor else ()
    events = parse_log_window(lines, keywords, window)

    if supervisor and events.crash_keyword:
        restarted = await supervisor.handle_crash(events.crash_keyword, log_path, now)
        if restarted:
            logging.info("Server restarted successfully. Continuing monitoring...")
        return events

    apply_events(ctx, events, now)
    if supervisor and events.has_performance:
        await supervisor.record_stats(events.fps, events.players, now)

    if events.fps is not None:
        logging.info(f"Latest FPS: {events.fps}")
    if events.players is not None:
        logging.info(f"Latest Player Count: {events.players}")
    return events
