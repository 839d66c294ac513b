import logging
import os
import re
from datetime import datetime, timedelta
from typing import Optional


def next_stats_log_path(directory: str, today: datetime) -> str:
    """server_data-DD.MM.YYYY_ID-<n>.txt with n one above the highest id used today."""
    base_name = f"server_data-{today.strftime('%d.%m.%Y')}"
    pattern = re.compile(rf"^{re.escape(base_name)}_ID-(\d+)\.txt$")

    max_id = 0
    if os.path.isdir(directory):
        for file_name in os.listdir(directory):
            match = pattern.match(file_name)
            if match:
                max_id = max(max_id, int(match.group(1)))

    return os.path.join(directory, f"{base_name}_ID-{max_id + 1}.txt")


class StatsLogWriter:
    """Appends periodic fps/player lines to a stats file that rotates every few hours."""

    def __init__(self, directory: str, rotation_hours: float = 24, write_interval_seconds: float = 60):
        self.directory = directory
        self.rotation = timedelta(hours=rotation_hours)
        self.write_interval = timedelta(seconds=write_interval_seconds)
        self.current_path: Optional[str] = None
        self.next_rotation_time = datetime.min
        self.last_write_time = datetime.min

    def ensure_directory(self):
        os.makedirs(self.directory, exist_ok=True)

    def rotate_if_due(self, now: datetime) -> Optional[str]:
        """
        Moves to a new stats file once the rotation interval has passed.
        If the directory is unusable the previous path (possibly None) is kept.
        """
        if self.current_path is None or now >= self.next_rotation_time:
            previous = self.current_path
            try:
                self.ensure_directory()
                self.current_path = next_stats_log_path(self.directory, now)
            except OSError as e:
                logging.warning(f"Could not rotate server data log in '{self.directory}': {e}")
                return self.current_path
            if self.current_path != previous:
                self.next_rotation_time = now + self.rotation
                logging.info(f"Using new server data log file: '{os.path.basename(self.current_path)}'")
                logging.info(f"  -> Next new log file scheduled around: {self.next_rotation_time:%d/%m/%Y, %H:%M}")
        return self.current_path

    def write(self, fps, players, now: datetime) -> bool:
        """Appends one line if the write interval has elapsed. Returns True if a line was written."""
        if now - self.last_write_time < self.write_interval:
            return False

        path = self.rotate_if_due(now)
        if path is None:
            return False
        line = f"[{now:%d/%m/%Y, %H:%M:%S}] Server FPS: {fps} | Players: {players}\n"
        try:
            self.ensure_directory()
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logging.warning(f"Failed to write to server data log '{path}': {e}")
            return False

        self.last_write_time = now
        return True
