import json
import logging
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional

from utils.errors import PersistenceFailure
from utils.metrics import METRIC_TYPES, MetricsAggregator
from utils.uptime import UptimeTracker
from utils.victories import VictoryTracker

SNAPSHOT_FILES = {
    "fps": "fps_data.json",
    "players": "players_data.json",
    "victories": "victories_data.json",
    "uptime": "uptime_data.json",
}


def write_json_file(path: str, data: Dict[str, Any]):
    """Writes pretty-printed JSON through a temporary file so readers never see half a snapshot."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    # Unique temp name per call, concurrent writers never share a file
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=directory or None, prefix=f"{os.path.basename(path)}.", suffix=".tmp", delete=False
    ) as f:
        tmp_path = f.name
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError):
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def read_json_file(path: str) -> Optional[Dict[str, Any]]:
    """Returns the parsed object, or None if the file is missing or not a JSON object."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logging.warning(f"Ignoring unreadable snapshot {path}: {e}")
        return None
    if not isinstance(data, dict):
        logging.warning(f"Ignoring snapshot {path}: expected a JSON object")
        return None
    return data


class SnapshotStore:
    """Saves and restores metrics, victories and uptime as JSON files in the data directory."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def path(self, name: str) -> str:
        return os.path.join(self.data_dir, SNAPSHOT_FILES[name])

    def collect(
        self, metrics: MetricsAggregator, victories: VictoryTracker, uptime: UptimeTracker, now: Optional[datetime] = None
    ) -> Dict[str, Dict[str, Any]]:
        """
        Copies the current state into plain dicts keyed like SNAPSHOT_FILES.
        Must run on the thread that owns the state; the result can then be
        written from any thread.
        """
        stamp = (now or datetime.now()).isoformat()
        payloads: Dict[str, Dict[str, Any]] = {}
        for metric_type in METRIC_TYPES:
            data = metrics.to_dict(metric_type)
            data["latest"] = metrics.latest(metric_type)
            payloads[metric_type] = data
        payloads["victories"] = victories.to_dict()
        payloads["uptime"] = uptime.to_dict()
        for data in payloads.values():
            data["last_updated"] = stamp
        return payloads

    def write(self, payloads: Dict[str, Dict[str, Any]]):
        """
        Rewrites every snapshot file from collected payloads.

        Raises:
            PersistenceFailure: Any file could not be written.
        """
        try:
            for name, data in payloads.items():
                write_json_file(self.path(name), data)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"Could not save snapshot to {self.data_dir}: {e}") from e

    def save(self, metrics: MetricsAggregator, victories: VictoryTracker, uptime: UptimeTracker, now: Optional[datetime] = None):
        self.write(self.collect(metrics, victories, uptime, now))

    def load(self, metrics: MetricsAggregator, victories: VictoryTracker, uptime: UptimeTracker):
        """
        Restores state from the snapshot files. A missing or corrupt file leaves
        that component empty instead of failing startup.
        """
        for metric_type in METRIC_TYPES:
            data = read_json_file(self.path(metric_type))
            if data is None:
                continue
            try:
                metrics.load_dict(metric_type, data)
                logging.info(f"Loaded {len(metrics.series[metric_type].raw)} {metric_type} entries from file")
            except (KeyError, TypeError, ValueError) as e:
                logging.warning(f"Discarding corrupt {metric_type} snapshot: {e}")
                metrics.load_dict(metric_type, {})

        data = read_json_file(self.path("victories"))
        if data is not None:
            try:
                victories.load_dict(data)
                totals = victories.get_totals()
                logging.info(
                    f"Loaded victories: NATO: {totals['nato']}, RUSSIA: {totals['russia']}, Total: {totals['total']}"
                )
            except (KeyError, TypeError, ValueError) as e:
                logging.warning(f"Discarding corrupt victories snapshot: {e}")
                victories.load_dict({})

        data = read_json_file(self.path("uptime"))
        if data is not None:
            try:
                uptime.load_dict(data)
            except (TypeError, ValueError) as e:
                logging.warning(f"Discarding corrupt uptime snapshot: {e}")
                uptime.load_dict({})
            else:
                if uptime.server_start_time:
                    logging.info(f"Server start time: {uptime.server_start_time.isoformat()}")
