import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from utils.config_validator import CrashMonitorConfig
from utils.errors import ProcessLookupFailure
from utils.incidents import IncidentLog
from utils.process_backend import ProcessBackend, ProcessHandle
from utils.stats_log import StatsLogWriter
from utils.uptime import format_uptime


class SupervisorState(str, Enum):
    NO_PROCESS = "NoProcess"
    TRACKING = "Tracking"
    CRASH_DETECTED = "CrashDetected"
    RESTART_COOLDOWN = "RestartCooldown"
    RESTART_PENDING = "RestartPending"


class RestartIneligible(str, Enum):
    """Why the restart policy refused to restart after a crash."""

    DISABLED = "auto-restart disabled"
    ATTEMPTS_EXHAUSTED = "maximum restart attempts reached"
    COOLDOWN = "restart cooldown active"


@dataclass
class CrashSupervisorState:
    state: SupervisorState = SupervisorState.NO_PROCESS
    tracked: Optional[ProcessHandle] = None
    restart_attempts: int = 0
    last_restart_time: Optional[datetime] = None
    last_fps: Any = "N/A"
    last_players: Any = "N/A"
    last_round_winner: str = "N/A"
    memory_mb: Optional[int] = None
    formatted_uptime: str = "N/A"
    status_message: str = "No Server"


class CrashSupervisor:
    """
    Tracks the game server process, reacts to crash keywords in its log and
    restarts it within the configured restart policy.
    """

    def __init__(
        self,
        settings: CrashMonitorConfig,
        backend: ProcessBackend,
        incident_log: Optional[IncidentLog] = None,
        stats_writer: Optional[StatsLogWriter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.backend = backend
        working_dir = settings.SERVER_WORKING_DIR
        self.incident_log = incident_log or IncidentLog(os.path.join(working_dir, "incident.json"))
        self.pid_file_path = os.path.join(working_dir, "server.pid")
        self.stats_writer = stats_writer or StatsLogWriter(
            os.path.join(working_dir, settings.SERVER_DATA_LOG_FOLDER),
            rotation_hours=settings.SERVER_DATA_LOG_INTERVAL_HOURS,
            write_interval_seconds=settings.STATS_LOG_INTERVAL_SEC,
        )
        self.state = CrashSupervisorState()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # PID record
    # ------------------------------------------------------------------

    def _write_pid_file(self, pid: int):
        try:
            with open(self.pid_file_path, "w", encoding="utf-8") as f:
                f.write(str(pid))
        except OSError as e:
            logging.warning(f"Failed to write PID file: {e}")

    def _remove_pid_file(self):
        try:
            os.remove(self.pid_file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logging.warning(f"Failed to remove PID file: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self):
        """Logs the restart policy, prepares the stats folder and adopts a running server."""
        s = self.settings
        logging.info("=== Crash Monitor Configuration ===")
        logging.info(f"Auto-restart after crash: {s.ENABLE_AUTO_RESTART}")
        if s.ENABLE_AUTO_RESTART:
            logging.info(f"Restart delay: {s.RESTART_DELAY_SECONDS} seconds")
            max_attempts = "Unlimited" if s.MAX_RESTART_ATTEMPTS == 0 else s.MAX_RESTART_ATTEMPTS
            logging.info(f"Max restart attempts: {max_attempts}")
            logging.info(f"Restart cooldown: {s.RESTART_COOLDOWN_MINUTES} minutes")

        try:
            await asyncio.to_thread(self.stats_writer.ensure_directory)
        except OSError as e:
            logging.error(f"Could not create server data log directory '{self.stats_writer.directory}': {e}")

        logging.info(f"Checking for existing {s.PROCESS_NAME} processes...")
        existing = await self._find_process()
        if existing:
            logging.info(f"Found existing {s.PROCESS_NAME} process with ID: {existing.pid}")
            self._track(existing, write_pid=not os.path.exists(self.pid_file_path))
        else:
            logging.info(f"No existing {s.PROCESS_NAME} processes found. Will monitor for new processes.")

    async def shutdown(self, now: Optional[datetime] = None):
        """Logs a Shutdown incident if the tracked server is still alive and removes the PID record."""
        now = now or datetime.now()
        self._remove_pid_file()
        tracked = self.state.tracked
        if tracked is None:
            return
        if await self._check_alive(tracked.pid):
            uptime = (now - tracked.start_time).total_seconds()
            await asyncio.to_thread(self.incident_log.append, "Shutdown", None, uptime, None, now)
            logging.info("Logged server shutdown.")

    # ------------------------------------------------------------------
    # Process tracking
    # ------------------------------------------------------------------

    async def _find_process(self) -> Optional[ProcessHandle]:
        try:
            return await asyncio.to_thread(self.backend.find_by_name, self.settings.PROCESS_NAME)
        except ProcessLookupFailure as e:
            logging.warning(f"Process lookup failed: {e}")
            return None

    async def _check_alive(self, pid: int) -> bool:
        try:
            return await asyncio.to_thread(self.backend.is_alive, pid)
        except ProcessLookupFailure as e:
            logging.warning(f"Liveness check failed: {e}")
            return False

    def _track(self, handle: ProcessHandle, write_pid: bool = True):
        self.state.tracked = handle
        self.state.state = SupervisorState.TRACKING
        self.state.status_message = "Running"
        if write_pid:
            self._write_pid_file(handle.pid)

    def _untrack(self):
        self.state.tracked = None
        self.state.memory_mb = None
        self.state.formatted_uptime = "N/A"
        self.state.status_message = "No Server"
        self._remove_pid_file()

    async def refresh_process(self, now: datetime):
        """
        Runs the NoProcess -> Tracking lookup and the Tracking liveness check.
        A process that disappears drops the supervisor back to NoProcess.
        """
        await asyncio.to_thread(self.stats_writer.rotate_if_due, now)

        if self.state.tracked is None:
            found = await self._find_process()
            if found:
                logging.info(f"Found {self.settings.PROCESS_NAME} process with ID: {found.pid}")
                self._track(found)

        tracked = self.state.tracked
        if tracked is None:
            return

        if await self._check_alive(tracked.pid):
            self.state.memory_mb = await asyncio.to_thread(self.backend.memory_mb, tracked.pid)
            self.state.formatted_uptime = format_uptime((now - tracked.start_time).total_seconds())
        else:
            logging.warning(f"Server process (Last Known PID: {tracked.pid}) not found.")
            self._untrack()
            self.state.state = SupervisorState.NO_PROCESS

    # ------------------------------------------------------------------
    # Crash handling
    # ------------------------------------------------------------------

    def restart_ineligibility(self, now: datetime) -> Optional[RestartIneligible]:
        """Evaluates the restart policy against the current counters. None means eligible."""
        s = self.settings
        if not s.ENABLE_AUTO_RESTART:
            return RestartIneligible.DISABLED
        if s.MAX_RESTART_ATTEMPTS > 0 and self.state.restart_attempts >= s.MAX_RESTART_ATTEMPTS:
            return RestartIneligible.ATTEMPTS_EXHAUSTED
        last = self.state.last_restart_time
        if last is not None and now - last < timedelta(minutes=s.RESTART_COOLDOWN_MINUTES):
            return RestartIneligible.COOLDOWN
        return None

    def _rename_crashed_log(self, log_path: Optional[str], now: datetime):
        if not log_path:
            return
        crashed_name = f"console_crashed_{now.strftime('%Y-%m-%dT%H-%M-%S-%f')}.log"
        new_path = os.path.join(os.path.dirname(log_path), crashed_name)
        try:
            os.rename(log_path, new_path)
            logging.info(f"Renamed problematic log file to '{crashed_name}'.")
        except OSError as e:
            logging.warning(f"Failed to rename crashed log file: {e}")

    async def handle_crash(self, keyword: str, log_path: Optional[str], now: datetime) -> bool:
        """
        Reacts to a crash keyword: records the incident, terminates the server,
        clears the PID record, renames the log, then restarts if the policy allows.

        Returns:
            True if a replacement server is now being tracked.
        """
        self.state.state = SupervisorState.CRASH_DETECTED
        self.state.status_message = "CRASHED!"
        logging.warning(f"CRASH DETECTED! Keyword found: '{keyword}' in recent logs.")

        tracked = self.state.tracked
        crash_uptime = (now - tracked.start_time).total_seconds() if tracked else None
        await asyncio.to_thread(self.incident_log.append, "Crash", keyword, crash_uptime, None, now)

        if tracked:
            logging.warning(f"Attempting to terminate crashed process (PID: {tracked.pid})...")
            try:
                await asyncio.to_thread(self.backend.terminate, tracked.pid)
            except ProcessLookupFailure as e:
                logging.warning(f"Could not terminate process: {e}")
            self.state.tracked = None
            self.state.memory_mb = None
            self.state.formatted_uptime = "N/A"

        self._remove_pid_file()
        await asyncio.to_thread(self._rename_crashed_log, log_path, now)
        logging.warning("Server process terminated due to crash detection.")

        reason = self.restart_ineligibility(now)
        if reason is not None:
            self._log_ineligible(reason, now)
            self.state.state = SupervisorState.RESTART_COOLDOWN
            logging.info("Server not restarted. Monitoring continues for a manual restart.")
            return False

        return await self._restart(keyword, now)

    def _log_ineligible(self, reason: RestartIneligible, now: datetime):
        s = self.settings
        if reason is RestartIneligible.DISABLED:
            logging.warning("Auto-restart is disabled. Server will not be restarted automatically.")
        elif reason is RestartIneligible.ATTEMPTS_EXHAUSTED:
            logging.warning(
                f"Maximum restart attempts ({s.MAX_RESTART_ATTEMPTS}) reached. Auto-restart disabled for this session."
            )
        else:
            elapsed = (now - self.state.last_restart_time).total_seconds() / 60
            remaining = s.RESTART_COOLDOWN_MINUTES - elapsed
            logging.warning(f"Restart cooldown active. {remaining:.1f} minutes remaining before next restart attempt.")

    async def _restart(self, keyword: str, now: datetime) -> bool:
        s = self.settings
        self.state.state = SupervisorState.RESTART_PENDING
        self.state.restart_attempts += 1
        self.state.last_restart_time = now
        attempt = self.state.restart_attempts

        logging.info(
            f"Auto-restart is enabled. Waiting {s.RESTART_DELAY_SECONDS} seconds before restart attempt {attempt}..."
        )
        await self._sleep(s.RESTART_DELAY_SECONDS)

        reason = f"Auto-restart after crash (Keyword: {keyword})"
        handle = await self.start_server(reason)
        if handle:
            logging.info("Server restarted successfully after crash!")
            await asyncio.to_thread(
                self.incident_log.append, "Restart", None, None,
                f"Auto-restart successful after crash (Keyword: {keyword}, Attempt: {attempt})",
            )
            return True

        logging.error("Failed to restart server after crash!")
        await asyncio.to_thread(
            self.incident_log.append, "Restart", None, None,
            f"Auto-restart FAILED after crash (Keyword: {keyword}, Attempt: {attempt})",
        )
        self.state.state = SupervisorState.NO_PROCESS
        self.state.status_message = "No Server"
        return False

    async def start_server(self, reason: str = "Manual") -> Optional[ProcessHandle]:
        """Spawns the server executable and tracks it. Logs a Startup incident on success."""
        s = self.settings
        logging.info(f"Attempting to start server process... (Reason: {reason})")
        if not s.SERVER_EXE_PATH:
            logging.error("No server executable configured.")
            return None

        handle = await asyncio.to_thread(self.backend.spawn, s.SERVER_EXE_PATH, s.SERVER_WORKING_DIR, s.SERVER_ARGS)
        if handle is None:
            return None

        logging.info(f"Server process started successfully. PID: {handle.pid}")
        self._track(handle)
        await asyncio.to_thread(self.incident_log.append, "Startup", None, None, f"Started via script - {reason}")
        return handle

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def record_stats(self, fps: float, players: int, now: datetime):
        self.state.last_fps = fps
        self.state.last_players = players
        self.state.status_message = "OK"
        logging.info(f"[CRASH MONITOR] Server FPS: {fps} | Players: {players}")
        await asyncio.to_thread(self.stats_writer.write, fps, players, now)

    def status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now()
        s = self.settings
        tracked = self.state.tracked
        process = None
        if tracked:
            process = {
                "pid": tracked.pid,
                "start_time": tracked.start_time.isoformat(),
                "uptime": int((now - tracked.start_time).total_seconds()),
                "formatted_uptime": self.state.formatted_uptime,
            }
        last_restart = self.state.last_restart_time
        return {
            "enabled": True,
            "state": self.state.state.value,
            "server_process": process,
            "last_fps": self.state.last_fps,
            "last_player_count": self.state.last_players,
            "memory_usage_mb": self.state.memory_mb,
            "auto_restart": s.ENABLE_AUTO_RESTART,
            "restart_attempts": self.state.restart_attempts,
            "last_restart_time": last_restart.isoformat() if last_restart else None,
            "restart_cooldown_minutes": s.RESTART_COOLDOWN_MINUTES,
            "max_restart_attempts": s.MAX_RESTART_ATTEMPTS,
        }
