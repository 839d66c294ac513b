import os
import logging
import asyncio
from typing import Awaitable, Callable, List, Optional

from utils.errors import SourceUnavailable


class LocalLogSource:
    """
    Reads the tail of a local server log.
    Only the last `max_read_bytes` of the file are read, so a large console log
    never has to be loaded whole.
    """

    def __init__(self, max_read_bytes: int = 256 * 1024):
        """
        Args:
            max_read_bytes: The maximum number of bytes read from the end of the file.
                            Defaults to 256KB, which comfortably holds 100 lines.
        """
        self._max_read_bytes = max_read_bytes

    def _read_tail_sync(self, file_path: str, max_lines: int) -> List[str]:
        """
        Synchronous method to perform file I/O operations.
        This runs in a separate thread.
        """
        if not file_path or not os.path.exists(file_path):
            raise SourceUnavailable(f"Log file does not exist: {file_path}")

        try:
            current_size = os.path.getsize(file_path)
            start = max(0, current_size - self._max_read_bytes)

            # Open in binary mode to safely handle seeking and reading chunks
            with open(file_path, "rb") as f:
                f.seek(start)
                chunk = f.read(self._max_read_bytes)
        except OSError as e:
            raise SourceUnavailable(f"Could not read log {file_path}: {e}") from e

        if not chunk:
            return []

        # When starting mid-file, drop the partial first line
        if start > 0:
            first_newline = chunk.find(b"\n")
            chunk = chunk[first_newline + 1:] if first_newline != -1 else b""

        lines = chunk.decode("utf-8", errors="ignore").splitlines()
        return lines[-max_lines:] if max_lines > 0 else lines

    async def read_tail(self, file_path: str, max_lines: int = 100) -> List[str]:
        """
        Reads the most recent lines of the log asynchronously.
        Offloads blocking I/O to a thread.

        Raises:
            SourceUnavailable: The file is missing or unreadable.
        """
        return await asyncio.to_thread(self._read_tail_sync, file_path, max_lines)


class RemoteLogSource:
    """
    Wraps a collaborator-provided fetch coroutine (SFTP/FTP transport lives
    outside this project). The fetch returns the whole log text or None.
    """

    def __init__(self, fetch: Callable[[str], Awaitable[Optional[str]]], remote_path: str):
        self._fetch = fetch
        self.remote_path = remote_path

    async def read_tail(self, file_path: str, max_lines: int = 100) -> List[str]:
        path = file_path or self.remote_path
        try:
            content = await self._fetch(path)
        except Exception as e:
            raise SourceUnavailable(f"Remote fetch of {path} failed: {e}") from e

        if content is None:
            raise SourceUnavailable(f"Remote fetch of {path} returned no content")

        lines = content.splitlines()
        logging.debug(f"[LogSource] Fetched {len(lines)} lines from remote {path}")
        return lines[-max_lines:] if max_lines > 0 else lines
