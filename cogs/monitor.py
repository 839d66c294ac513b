from discord.ext import commands, tasks
import discord
import asyncio
import logging
from datetime import datetime
from typing import Optional

import config
from utils.config_validator import MonitorConfiguration, load_monitor_settings
from utils.crash_supervisor import CrashSupervisor
from utils.errors import PersistenceFailure
from utils.log_source import LocalLogSource, RemoteLogSource
from utils.monitor import MonitorContext, run_tick
from utils.process_backend import ProcessBackend, PsutilProcessBackend
from utils.stats_provider import MonitorStatsProvider


async def _no_remote_fetch(path: str) -> Optional[str]:
    return None


class MonitorCog(commands.Cog, name="Monitor"):
    """Runs the monitoring, snapshot and status refresh loops for the game server."""

    def __init__(
        self,
        bot,
        settings: MonitorConfiguration,
        log_source=None,
        backend: Optional[ProcessBackend] = None,
    ):
        self.bot = bot
        self._ = bot._
        self.settings = settings

        supervisor = None
        crash_settings = settings.CRASH_MONITOR
        if crash_settings and crash_settings.ENABLED:
            supervisor = CrashSupervisor(crash_settings, backend or PsutilProcessBackend())

        self.ctx = MonitorContext(settings, log_source or self._build_log_source(), supervisor=supervisor)
        self.stats = MonitorStatsProvider(self.ctx)
        # Other cogs and the API layer read through this
        bot.monitor_stats = self.stats
        self._initialized = False

        self.monitor_task.change_interval(seconds=settings.UPDATE_INTERVAL_SECONDS)
        self.snapshot_task.change_interval(seconds=settings.SAVE_INTERVAL_SECONDS)
        if not self.monitor_task.is_running():
            self.monitor_task.start()
        if not self.snapshot_task.is_running():
            self.snapshot_task.start()
        if settings.STATUS_REFRESH_SECONDS:
            self.status_task.change_interval(seconds=settings.STATUS_REFRESH_SECONDS)
            if not self.status_task.is_running():
                self.status_task.start()

    def _build_log_source(self):
        source = self.settings.LOG_SOURCE
        if source.TYPE == "remote":
            fetcher = getattr(self.bot, "remote_log_fetcher", None)
            if fetcher is None:
                logging.error("LOG_SOURCE is 'remote' but no remote log fetcher is attached to the bot.")
                fetcher = _no_remote_fetch
            logging.info(f"[LOG SOURCE] Remote log fetching configured ({source.REMOTE_PATH})")
            return RemoteLogSource(fetcher, source.REMOTE_PATH)
        logging.info("[LOG SOURCE] Using local log files")
        return LocalLogSource()

    async def async_init(self):
        """
        Restores the last snapshot and lets the supervisor adopt a running server.
        Called once, before the first monitoring tick.
        """
        if self._initialized:
            return
        self._initialized = True
        await asyncio.to_thread(self.ctx.load_snapshot)
        if self.ctx.supervisor:
            logging.info("Initializing crash monitor...")
            await self.ctx.supervisor.startup()

    async def cog_unload(self):
        """
        Cancels the loops and performs one bounded, best-effort flush:
        shutdown incident, final snapshot and presence reset.
        """
        self.monitor_task.cancel()
        self.snapshot_task.cancel()
        self.status_task.cancel()
        try:
            await asyncio.wait_for(self._flush(), timeout=self.settings.SHUTDOWN_FLUSH_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logging.warning("Shutdown flush timed out.")
        except Exception as e:
            logging.error(f"Error during shutdown flush: {e}", exc_info=True)

    async def _flush(self):
        if self.ctx.supervisor:
            await self.ctx.supervisor.shutdown()
        await self._save_snapshot()
        await self.bot.change_presence(activity=None)

    async def _save_snapshot(self):
        try:
            await self.ctx.save_snapshot()
        except PersistenceFailure as e:
            logging.error(f"Error saving data to files: {e}")
        except Exception as e:
            # An exception escaping a tasks.loop stops it for good
            logging.error(f"Unexpected error while saving snapshot: {e}", exc_info=True)

    @tasks.loop(seconds=30)
    async def monitor_task(self):
        """
        The main task: one monitoring tick, then a snapshot.
        A failing tick is logged and the loop keeps running.
        """
        try:
            await run_tick(self.ctx, datetime.now())
        except Exception as e:
            logging.error(f"Monitoring tick failed: {e}", exc_info=True)

        await self._save_snapshot()
        if not self.status_task.is_running():
            await self._update_presence()

    @monitor_task.before_loop
    async def before_monitor_task(self):
        await self.bot.wait_until_ready()
        await self.async_init()

    @tasks.loop(seconds=30)
    async def snapshot_task(self):
        await self._save_snapshot()

    @snapshot_task.before_loop
    async def before_snapshot_task(self):
        await self.bot.wait_until_ready()

    @tasks.loop(seconds=15)
    async def status_task(self):
        await self._update_presence()

    @status_task.before_loop
    async def before_status_task(self):
        await self.bot.wait_until_ready()

    def status_text(self) -> str:
        """One-line status shown as the bot's presence."""
        supervisor = self.ctx.supervisor
        fps = self.ctx.latest_fps if self.ctx.latest_fps is not None else "N/A"
        players = self.ctx.latest_players if self.ctx.latest_players is not None else "N/A"
        if supervisor is None:
            return self._("FPS: {fps} | Players: {players}").format(fps=fps, players=players)

        state = supervisor.state
        restart = self._("AutoRestart: ON") if supervisor.settings.ENABLE_AUTO_RESTART else self._("AutoRestart: OFF")
        if state.tracked:
            memory = state.memory_mb if state.memory_mb is not None else "N/A"
            return self._("FPS: {fps} | Players: {players} | Uptime: {uptime} | Mem: {mem}MB | PID: {pid} | {restart}").format(
                fps=state.last_fps,
                players=state.last_players,
                uptime=state.formatted_uptime,
                mem=memory,
                pid=state.tracked.pid,
                restart=restart,
            )
        if state.status_message == "CRASHED!":
            return self._("Status: CRASHED! | {restart}").format(restart=restart)
        return self._("No Server Running | Last FPS: {fps} | Last Players: {players} | {restart}").format(
            fps=state.last_fps, players=state.last_players, restart=restart
        )

    async def _update_presence(self):
        try:
            activity = discord.Game(name=self.status_text())
            await self.bot.change_presence(activity=activity)
        except Exception as e:
            logging.error(f"Error updating status display: {e}")


async def setup(bot):
    settings = load_monitor_settings(config)
    if settings is None:
        logging.critical("Monitor cog not loaded: configuration is invalid.")
        return
    cog = MonitorCog(bot, settings)
    await bot.add_cog(cog)
