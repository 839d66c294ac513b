from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional, Union

METRIC_TYPES = ("fps", "players")
GRANULARITIES = ("hourly", "daily", "weekly", "monthly")
RAW_HISTORY_LIMIT = 1000


@dataclass(frozen=True)
class Sample:
    value: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sample":
        return cls(float(data["value"]), datetime.fromisoformat(data["timestamp"]))


@dataclass
class Bucket:
    """Aggregated statistic for one calendar period of one metric."""

    bucket_start: datetime
    sum: float = 0.0
    count: int = 0
    min: Optional[float] = None
    max: Optional[float] = None

    @property
    def average(self) -> float:
        return self.sum / self.count if self.count else 0.0

    def add(self, value: float):
        self.sum += value
        self.count += 1
        self.min = value if self.min is None else min(self.min, value)
        self.max = value if self.max is None else max(self.max, value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket_start": self.bucket_start.isoformat(),
            "sum": self.sum,
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "average": self.average,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bucket":
        # "average" is derived from sum/count and is ignored on load
        return cls(
            bucket_start=datetime.fromisoformat(data["bucket_start"]),
            sum=float(data["sum"]),
            count=int(data["count"]),
            min=data.get("min"),
            max=data.get("max"),
        )


def bucket_key(granularity: str, timestamp: datetime) -> str:
    """Calendar key of the bucket a timestamp belongs to."""
    if granularity == "hourly":
        return timestamp.strftime("%Y-%m-%d %H")
    if granularity == "daily":
        return timestamp.strftime("%Y-%m-%d")
    if granularity == "weekly":
        iso_year, iso_week, _ = timestamp.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == "monthly":
        return timestamp.strftime("%Y-%m")
    raise ValueError(f"Unknown granularity: {granularity}")


def bucket_start(granularity: str, timestamp: datetime) -> datetime:
    """Start of the calendar period a timestamp belongs to."""
    hour_start = timestamp.replace(minute=0, second=0, microsecond=0)
    if granularity == "hourly":
        return hour_start
    day_start = hour_start.replace(hour=0)
    if granularity == "daily":
        return day_start
    if granularity == "weekly":
        return day_start - timedelta(days=day_start.weekday())
    if granularity == "monthly":
        return day_start.replace(day=1)
    raise ValueError(f"Unknown granularity: {granularity}")


class MetricSeries:
    """Raw history plus calendar rollups for one metric type."""

    def __init__(self, raw_limit: int = RAW_HISTORY_LIMIT):
        self.raw: Deque[Sample] = deque(maxlen=raw_limit)
        self.buckets: Dict[str, Dict[str, Bucket]] = {g: {} for g in GRANULARITIES}

    def record(self, value: float, timestamp: datetime) -> Sample:
        sample = Sample(float(value), timestamp)
        self.raw.append(sample)
        for granularity, buckets in self.buckets.items():
            key = bucket_key(granularity, timestamp)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = Bucket(bucket_start(granularity, timestamp))
            bucket.add(sample.value)
        return sample


class MetricsAggregator:
    """
    Keeps the fps and player-count telemetry.
    Every sample lands in the bounded raw history and in exactly one
    hourly, daily, weekly and monthly bucket.
    """

    def __init__(self, raw_limit: int = RAW_HISTORY_LIMIT):
        self.raw_limit = raw_limit
        self.series: Dict[str, MetricSeries] = {t: MetricSeries(raw_limit) for t in METRIC_TYPES}

    def _series(self, metric_type: str) -> MetricSeries:
        try:
            return self.series[metric_type]
        except KeyError:
            raise ValueError(f"Unknown metric type: {metric_type}") from None

    def record(self, metric_type: str, value: float, timestamp: datetime) -> Sample:
        return self._series(metric_type).record(value, timestamp)

    def query(self, metric_type: str, granularity: str = "raw", limit: int = 10) -> List[Union[Sample, Bucket]]:
        """Returns the most recent `limit` entries, oldest first."""
        series = self._series(metric_type)
        if limit <= 0:
            return []
        if granularity == "raw":
            return list(series.raw)[-limit:]
        if granularity not in series.buckets:
            raise ValueError(f"Unknown granularity: {granularity}")
        ordered = sorted(series.buckets[granularity].values(), key=lambda b: b.bucket_start)
        return ordered[-limit:]

    def latest(self, metric_type: str) -> Optional[float]:
        raw = self._series(metric_type).raw
        return raw[-1].value if raw else None

    def to_dict(self, metric_type: str) -> Dict[str, Any]:
        series = self._series(metric_type)
        data: Dict[str, Any] = {"raw": [s.to_dict() for s in series.raw]}
        for granularity, buckets in series.buckets.items():
            data[granularity] = {key: b.to_dict() for key, b in buckets.items()}
        return data

    def load_dict(self, metric_type: str, data: Dict[str, Any]):
        """Replaces one series with previously saved state."""
        series = MetricSeries(self.raw_limit)
        for entry in data.get("raw") or []:
            series.raw.append(Sample.from_dict(entry))
        for granularity in GRANULARITIES:
            for key, entry in (data.get(granularity) or {}).items():
                series.buckets[granularity][key] = Bucket.from_dict(entry)
        self.series[metric_type] = series
