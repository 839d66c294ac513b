import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import psutil

from utils.errors import ProcessLookupFailure


@dataclass
class ProcessHandle:
    pid: int
    start_time: datetime


class ProcessBackend:
    """
    The four process operations the crash supervisor needs.
    Subclasses implement them for a platform; the state machine only sees this interface.
    """

    def find_by_name(self, name: str) -> Optional[ProcessHandle]:
        raise NotImplementedError

    def is_alive(self, pid: int) -> bool:
        raise NotImplementedError

    def memory_mb(self, pid: int) -> Optional[int]:
        return None

    def terminate(self, pid: int) -> None:
        raise NotImplementedError

    def spawn(self, executable: str, working_dir: Optional[str] = None, args: Optional[List[str]] = None) -> Optional[ProcessHandle]:
        raise NotImplementedError


class PsutilProcessBackend(ProcessBackend):
    """Cross-platform backend built on psutil and subprocess."""

    def find_by_name(self, name: str) -> Optional[ProcessHandle]:
        wanted = name.lower()
        try:
            for proc in psutil.process_iter(["pid", "name", "create_time"]):
                proc_name = (proc.info.get("name") or "").lower()
                if proc_name == wanted:
                    return ProcessHandle(
                        pid=proc.info["pid"],
                        start_time=datetime.fromtimestamp(proc.info["create_time"]),
                    )
        except psutil.Error as e:
            raise ProcessLookupFailure(f"Could not enumerate processes: {e}") from e
        return None

    def is_alive(self, pid: int) -> bool:
        try:
            proc = psutil.Process(pid)
            return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.Error as e:
            raise ProcessLookupFailure(f"Could not check PID {pid}: {e}") from e

    def memory_mb(self, pid: int) -> Optional[int]:
        try:
            return round(psutil.Process(pid).memory_info().rss / (1024 * 1024))
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None

    def terminate(self, pid: int) -> None:
        try:
            psutil.Process(pid).terminate()
        except psutil.NoSuchProcess:
            return
        except psutil.Error as e:
            raise ProcessLookupFailure(f"Could not terminate PID {pid}: {e}") from e

    def spawn(self, executable: str, working_dir: Optional[str] = None, args: Optional[List[str]] = None) -> Optional[ProcessHandle]:
        if not os.path.exists(executable):
            logging.error(f"Server executable not found at: {executable}")
            return None

        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        try:
            proc = subprocess.Popen(
                [executable, *(args or [])],
                cwd=working_dir or None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **kwargs,
            )
        except OSError as e:
            logging.error(f"Failed to start server process: {e}")
            return None

        return ProcessHandle(pid=proc.pid, start_time=datetime.now())
