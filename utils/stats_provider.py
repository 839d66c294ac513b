from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.metrics import Bucket
from utils.monitor import MonitorContext

LABEL_FORMATS = {
    "raw": "%H:%M:%S",
    "hourly": "%H:%M",
    "daily": "%m-%d",
    "weekly": "%m-%d",
    "monthly": "%Y-%m",
}


class MonitorStatsProvider:
    """
    Read-only view over a MonitorContext for the REST and bot layers.
    Each call reads current state; values from separate calls may belong to different ticks.
    """

    def __init__(self, ctx: MonitorContext):
        self.ctx = ctx

    def get_uptime_ms(self, now: Optional[datetime] = None) -> int:
        seconds = self.ctx.uptime.uptime_seconds(now or datetime.now())
        return int(seconds * 1000) if seconds and seconds > 0 else 0

    def get_last_round_winner(self) -> str:
        winner = self.ctx.round_summary.last_round_winner
        if winner and winner != "N/A":
            return winner
        last = self.ctx.victories.last_victory
        return last.faction if last else "N/A"

    def get_current_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        summary = self.ctx.round_summary
        return {
            "fps": self.ctx.latest_fps,
            "players": self.ctx.latest_players,
            "uptime": self.get_uptime_ms(now),
            "match_duration": summary.match_duration,
            "base_captured": summary.bases_captured,
            "total_players_killed": summary.players_killed,
            "last_round_winner": self.get_last_round_winner(),
        }

    def get_victories(self, limit: int = 50) -> Dict[str, Any]:
        victories = self.ctx.victories
        return {
            "totals": victories.get_totals(),
            "last_victory": victories.last_victory.to_dict() if victories.last_victory else None,
            "first_victory": victories.first_victory.isoformat() if victories.first_victory else None,
            "history": [e.to_dict() for e in victories.get_history(limit)],
            "history_count": len(victories.history),
        }

    def get_metrics(self, metric_type: str, timeframe: str = "raw", limit: int = 10) -> Dict[str, Any]:
        entries = self.ctx.metrics.query(metric_type, timeframe, limit)
        label_format = LABEL_FORMATS.get(timeframe, LABEL_FORMATS["raw"])

        timestamps: List[datetime] = []
        response: Dict[str, Any] = {"timeframe": timeframe, "latest": self.ctx.metrics.latest(metric_type)}
        if timeframe == "raw":
            timestamps = [s.timestamp for s in entries]
            response["data"] = [s.value for s in entries]
        else:
            buckets: List[Bucket] = entries
            timestamps = [b.bucket_start for b in buckets]
            response["data"] = [b.average for b in buckets]
            response["min_values"] = [b.min for b in buckets]
            response["max_values"] = [b.max for b in buckets]

        response["labels"] = [t.strftime(label_format) for t in timestamps]
        response["count"] = len(entries)
        response["last_updated"] = timestamps[-1].isoformat() if timestamps else None
        return response

    def get_uptime(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self.ctx.uptime.snapshot(now or datetime.now())

    def get_crash_monitor_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        if self.ctx.supervisor is None:
            return {"enabled": False, "message": "Crash monitor is disabled"}
        return self.ctx.supervisor.status(now)

    def get_incidents(self, limit: int = 50) -> List[Dict[str, Any]]:
        if self.ctx.supervisor is None:
            return []
        return self.ctx.supervisor.incident_log.list_recent(limit)

    def get_crash_summary(self) -> Dict[str, Any]:
        if self.ctx.supervisor is None:
            return {"total_crashes": 0, "last_crash": None, "average_uptime_hours": None}
        return self.ctx.supervisor.incident_log.crash_summary()
