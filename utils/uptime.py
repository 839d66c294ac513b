import os
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class LogDirectory:
    name: str
    path: str
    created: datetime


def directory_creation_time(path: str) -> datetime:
    """Creation time where the platform reports one, inode change time otherwise."""
    stats = os.stat(path)
    created = getattr(stats, "st_birthtime", None)
    if created is None:
        created = stats.st_ctime
    return datetime.fromtimestamp(created)


def find_latest_directory(log_root: str) -> Optional[LogDirectory]:
    """Returns the most recently created subdirectory of `log_root`, if any."""
    if not log_root or not os.path.isdir(log_root):
        logging.info(f"Log directory does not exist: {log_root}")
        return None

    latest = None
    with os.scandir(log_root) as entries:
        for entry in entries:
            if not entry.is_dir():
                continue
            try:
                created = directory_creation_time(entry.path)
            except OSError:
                # Removed between listing and stat
                continue
            if latest is None or created > latest.created:
                latest = LogDirectory(entry.name, entry.path, created)

    if latest is None:
        logging.info("No valid directories found in log directory")
    return latest


def split_duration(total_seconds: int) -> Dict[str, int]:
    days, rem = divmod(total_seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    return {"days": days, "hours": hours, "minutes": minutes, "seconds": seconds}


def format_uptime(total_seconds: float) -> str:
    """Compact form for the status display: 42s, 5m:07s, 1d 02h:03m:04s."""
    total = int(total_seconds)
    parts = split_duration(total)
    if total < 60:
        return f"{parts['seconds']}s"
    if total < 3600:
        return f"{parts['minutes']}m:{parts['seconds']:02d}s"
    return f"{parts['days']}d {parts['hours']:02d}h:{parts['minutes']:02d}m:{parts['seconds']:02d}s"


class UptimeTracker:
    """
    Infers the server session start from the newest log directory.
    The start time only ever moves forward.
    """

    def __init__(self, log_root: Optional[str] = None):
        self.log_root = log_root
        self.server_start_time: Optional[datetime] = None
        self.last_checked: Optional[datetime] = None

    def observe(self, created: datetime, name: str = "") -> bool:
        """Feeds one observed directory creation time. Returns True if the start time advanced."""
        if self.server_start_time is None or created > self.server_start_time:
            self.server_start_time = created
            logging.info(f"Server start time set to: {created.isoformat()} (from directory: {name})")
            return True
        return False

    def refresh(self) -> Optional[LogDirectory]:
        """Scans the log root, updates the start time and returns the newest directory."""
        latest = find_latest_directory(self.log_root)
        if latest is not None:
            self.observe(latest.created, latest.name)
        return latest

    def uptime_seconds(self, now: datetime) -> Optional[float]:
        if self.server_start_time is None:
            return None
        return (now - self.server_start_time).total_seconds()

    def snapshot(self, now: datetime) -> Dict[str, Any]:
        self.last_checked = now
        zero = {
            "seconds": 0, "minutes": 0, "hours": 0, "days": 0,
            "total_seconds": 0, "total_minutes": 0, "total_hours": 0, "total_days": 0,
        }
        if self.server_start_time is None:
            return {
                "status": "detecting",
                "message": "Server start time is being detected from log directories...",
                "uptime": zero,
                "start_time": None,
                "current_time": now.isoformat(),
            }

        elapsed = self.uptime_seconds(now)
        if elapsed < 0:
            return {
                "status": "error",
                "message": "Invalid server start time detected",
                "uptime": zero,
                "start_time": self.server_start_time.isoformat(),
                "current_time": now.isoformat(),
            }

        total_seconds = int(elapsed)
        parts = split_duration(total_seconds)
        uptime = dict(parts)
        uptime.update(
            total_seconds=total_seconds,
            total_minutes=total_seconds // 60,
            total_hours=total_seconds // 3600,
            total_days=total_seconds // 86400,
            formatted=f"{parts['days']}d {parts['hours']:02d}h {parts['minutes']:02d}m {parts['seconds']:02d}s",
        )
        return {
            "status": "active",
            "uptime": uptime,
            "start_time": self.server_start_time.isoformat(),
            "current_time": now.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server_start_time": self.server_start_time.isoformat() if self.server_start_time else None,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
        }

    def load_dict(self, data: Dict[str, Any]):
        start = data.get("server_start_time")
        checked = data.get("last_checked")
        self.server_start_time = datetime.fromisoformat(start) if start else None
        self.last_checked = datetime.fromisoformat(checked) if checked else None
