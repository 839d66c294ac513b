import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

FACTIONS = ("NATO", "RUSSIA")
DEFAULT_DEDUP_MINUTES = 3


@dataclass(frozen=True)
class VictoryEntry:
    faction: str
    timestamp: datetime
    id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"faction": self.faction, "timestamp": self.timestamp.isoformat(), "id": self.id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VictoryEntry":
        return cls(data["faction"], datetime.fromisoformat(data["timestamp"]), int(data["id"]))


class VictoryTracker:
    """Records round winners, dropping repeated reports of the same victory."""

    def __init__(self, window_minutes: float = DEFAULT_DEDUP_MINUTES):
        self.window = timedelta(minutes=window_minutes)
        self.history: List[VictoryEntry] = []
        self.counts: Dict[str, int] = {f: 0 for f in FACTIONS}
        self.total = 0
        self.first_victory: Optional[datetime] = None
        self.last_victory: Optional[VictoryEntry] = None

    def is_duplicate(self, faction: str, timestamp: datetime) -> bool:
        cutoff = timestamp - self.window
        return any(e.faction == faction and e.timestamp > cutoff for e in self.history)

    def record_victory(self, faction: str, timestamp: datetime) -> bool:
        """
        Records a victory for `faction` observed at `timestamp`.

        Returns:
            False if the same faction already has an entry newer than
            `timestamp - window`, True once the victory is stored.
        """
        faction = faction.upper()
        if faction not in FACTIONS:
            raise ValueError(f"Unknown faction: {faction}")

        if self.is_duplicate(faction, timestamp):
            logging.info(
                f"Duplicate victory detected for {faction} within {self.window.total_seconds() / 60:g} minutes. Skipping..."
            )
            return False

        next_id = max((e.id for e in self.history), default=0) + 1
        entry = VictoryEntry(faction, timestamp, next_id)
        self.history.append(entry)
        self.last_victory = entry
        if self.first_victory is None:
            self.first_victory = timestamp

        self.counts[faction] += 1
        self.total += 1

        logging.info(f"Victory recorded: {faction} at {timestamp.isoformat()}")
        logging.info(
            f"Total victories: NATO: {self.counts['NATO']}, RUSSIA: {self.counts['RUSSIA']}, Total: {self.total}"
        )
        return True

    def get_totals(self) -> Dict[str, int]:
        return {"nato": self.counts["NATO"], "russia": self.counts["RUSSIA"], "total": self.total}

    def get_history(self, limit: int = 50) -> List[VictoryEntry]:
        """Newest first."""
        ordered = sorted(self.history, key=lambda e: e.timestamp, reverse=True)
        return ordered[:limit] if limit > 0 else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nato": self.counts["NATO"],
            "russia": self.counts["RUSSIA"],
            "total": self.total,
            "last_victory": self.last_victory.to_dict() if self.last_victory else None,
            "first_victory": self.first_victory.isoformat() if self.first_victory else None,
            "history": [e.to_dict() for e in self.history],
        }

    def load_dict(self, data: Dict[str, Any]):
        self.history = [VictoryEntry.from_dict(e) for e in data.get("history") or []]
        self.counts = {"NATO": int(data.get("nato") or 0), "RUSSIA": int(data.get("russia") or 0)}
        self.total = int(data.get("total") or 0)
        first = data.get("first_victory")
        self.first_victory = datetime.fromisoformat(first) if first else None
        last = data.get("last_victory")
        if last:
            self.last_victory = VictoryEntry.from_dict(last)
        elif self.history:
            self.last_victory = max(self.history, key=lambda e: e.timestamp)
        else:
            self.last_victory = None
