import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.errors import IncidentLogCorruption

INCIDENT_DESCRIPTIONS = {
    "Startup": "Server startup initiated",
    "Crash": "Server crash detected, keyword has been found in recent logs",
    "Shutdown": "Server shutdown detected",
    "Restart": "Server restart attempted",
}


def format_incident_timestamp(when: datetime) -> str:
    return when.strftime("%d/%m/%Y, %H:%M")


def format_incident_uptime(seconds: float) -> str:
    seconds = int(seconds)
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{days}d {hours:02d}h:{minutes:02d}m:{secs:02d}s"


def parse_incident_uptime(text: Optional[str]) -> Optional[float]:
    """Inverse of format_incident_uptime, in hours."""
    if not text:
        return None
    try:
        day_part, clock = text.split(" ", 1)
        hours, minutes, secs = (int(p[:-1]) for p in clock.split(":"))
        days = int(day_part[:-1])
    except ValueError:
        return None
    return days * 24 + hours + minutes / 60 + secs / 3600


@dataclass
class Incident:
    id: int
    timestamp: str
    type: str
    keyword: Optional[str] = None
    uptime: Optional[str] = None
    info: Optional[str] = None

    def to_record(self) -> Dict[str, str]:
        record = {
            "Incident ID": str(self.id),
            "Incident Timestamp": self.timestamp,
            "Incident Type": INCIDENT_DESCRIPTIONS.get(self.type, "Unknown incident"),
        }
        if self.keyword:
            record["Keyword"] = self.keyword
        if self.uptime:
            record["Uptime"] = self.uptime
        if self.info:
            record["AdditionalInfo"] = self.info
        return record


def _record_id(record: Dict[str, Any]) -> int:
    try:
        return int(record.get("Incident ID", 0))
    except (TypeError, ValueError):
        return 0


class IncidentLog:
    """Append-only JSON array of lifecycle incidents for the supervised server."""

    def __init__(self, path: str):
        self.path = path

    def _read_sync(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            content = f.read()
        if not content.strip():
            return []
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise IncidentLogCorruption(f"{self.path}: {e}") from e
        if isinstance(parsed, dict):
            return [parsed]
        if not isinstance(parsed, list):
            raise IncidentLogCorruption(f"{self.path}: expected a JSON array")
        return parsed

    def read_records(self) -> List[Dict[str, Any]]:
        """All stored records, or an empty list if the file is unreadable."""
        try:
            return self._read_sync()
        except (OSError, IncidentLogCorruption) as e:
            logging.warning(f"Error reading incident log: {e}")
            return []

    def append(
        self,
        incident_type: str,
        keyword: Optional[str] = None,
        uptime_seconds: Optional[float] = None,
        info: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Incident]:
        """
        Appends one incident. The id is the current maximum plus one, so the
        file must only ever be written from the monitoring task.
        """
        now = now or datetime.now()
        records = self.read_records()
        next_id = max((_record_id(r) for r in records), default=0) + 1

        incident = Incident(
            id=next_id,
            timestamp=format_incident_timestamp(now),
            type=incident_type,
            keyword=keyword,
            uptime=format_incident_uptime(uptime_seconds) if uptime_seconds else None,
            info=info,
        )
        records.append(incident.to_record())

        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
        except OSError as e:
            logging.error(f"Failed to write incident log: {e}")
            return None

        logging.info(f"Logged incident: '{INCIDENT_DESCRIPTIONS.get(incident_type)}' (ID: {next_id})")
        if keyword:
            logging.info(f"  -> Keyword: '{keyword}'")
        if info:
            logging.info(f"  -> Info: '{info}'")
        return incident

    def list_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest first."""
        records = sorted(self.read_records(), key=_record_id, reverse=True)
        return records[:limit] if limit > 0 else []

    def crash_summary(self) -> Dict[str, Any]:
        crash_type = INCIDENT_DESCRIPTIONS["Crash"]
        records = sorted(self.read_records(), key=_record_id, reverse=True)
        crashes = [r for r in records if r.get("Incident Type") == crash_type]
        uptimes = [h for h in (parse_incident_uptime(r.get("Uptime")) for r in crashes) if h]
        return {
            "total_crashes": len(crashes),
            "last_crash": {
                "incident_id": crashes[0]["Incident ID"],
                "timestamp": crashes[0].get("Incident Timestamp"),
                "uptime": crashes[0].get("Uptime"),
                "keyword": crashes[0].get("Keyword"),
            } if crashes else None,
            "average_uptime_hours": round(sum(uptimes) / len(uptimes), 1) if uptimes else None,
        }
