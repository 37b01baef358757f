"""
Metrics collection for Frache.

Process-wide registry of counters, gauges and histograms used by the
cache and the warmup scheduler, with JSON and Prometheus text export.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field
from collections import deque
from enum import Enum
import json
import statistics

from .logging_config import get_logger


class MetricType(str, Enum):
    """Types of metrics."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


class MetricUnit(str, Enum):
    """Metric units."""
    COUNT = "count"
    BYTES = "bytes"
    SECONDS = "seconds"
    PERCENT = "percent"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _series_key(name: str, tags: Optional[Dict[str, str]]) -> str:
    return f"{name}:{json.dumps(tags or {}, sort_keys=True)}"


@dataclass
class MetricValue:
    """A single recorded sample."""
    name: str
    value: Union[int, float]
    metric_type: MetricType
    unit: MetricUnit
    timestamp: datetime
    tags: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'value': self.value,
            'type': self.metric_type.value,
            'unit': self.unit.value,
            'timestamp': self.timestamp.isoformat(),
            'tags': self.tags,
            'labels': self.labels
        }


@dataclass
class MetricSeries:
    """Bounded history of samples for one metric name and tag set."""
    name: str
    metric_type: MetricType
    unit: MetricUnit
    description: str = ""
    values: deque = field(default_factory=lambda: deque(maxlen=1000))
    tags: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    last_updated: datetime = field(default_factory=_utcnow)

    def add_value(self, value: Union[int, float], timestamp: Optional[datetime] = None, **labels):
        timestamp = timestamp or _utcnow()
        self.values.append(MetricValue(
            name=self.name,
            value=value,
            metric_type=self.metric_type,
            unit=self.unit,
            timestamp=timestamp,
            tags=self.tags,
            labels={k: str(v) for k, v in labels.items()}
        ))
        self.last_updated = timestamp

    def get_latest_value(self) -> Optional[MetricValue]:
        return self.values[-1] if self.values else None

    def calculate_statistics(self, window_minutes: int = 5) -> Dict[str, float]:
        """Calculate statistics over samples recorded in the last window."""
        cutoff_time = _utcnow() - timedelta(minutes=window_minutes)
        recent = [v.value for v in self.values if v.timestamp >= cutoff_time]

        if not recent:
            return {}

        return {
            'count': len(recent),
            'sum': sum(recent),
            'min': min(recent),
            'max': max(recent),
            'mean': statistics.mean(recent),
            'median': statistics.median(recent),
            'std_dev': statistics.stdev(recent) if len(recent) > 1 else 0
        }


class Counter:
    """Monotonic counter."""

    def __init__(self, name: str, description: str = "", tags: Dict[str, str] = None):
        self.name = name
        self.description = description
        self.tags = tags or {}
        self._value = 0
        self._lock = threading.Lock()

    def increment(self, amount: Union[int, float] = 1, **labels):
        if amount < 0:
            raise ValueError("Counter can only increase")
        with self._lock:
            self._value += amount
            value = self._value

        MetricsCollector.get_instance().record_metric(
            self.name, value, MetricType.COUNTER, MetricUnit.COUNT,
            tags=self.tags, description=self.description, **labels
        )

    def get_value(self) -> Union[int, float]:
        with self._lock:
            return self._value


class Gauge:
    """Value that can go up and down."""

    def __init__(self, name: str, description: str = "", unit: MetricUnit = MetricUnit.COUNT,
                 tags: Dict[str, str] = None):
        self.name = name
        self.description = description
        self.unit = unit
        self.tags = tags or {}
        self._value = 0
        self._lock = threading.Lock()

    def _record(self, value, labels):
        MetricsCollector.get_instance().record_metric(
            self.name, value, MetricType.GAUGE, self.unit,
            tags=self.tags, description=self.description, **labels
        )

    def set(self, value: Union[int, float], **labels):
        with self._lock:
            self._value = value
        self._record(value, labels)

    def increment(self, amount: Union[int, float] = 1, **labels):
        with self._lock:
            self._value += amount
            value = self._value
        self._record(value, labels)

    def decrement(self, amount: Union[int, float] = 1, **labels):
        self.increment(-amount, **labels)

    def get_value(self) -> Union[int, float]:
        with self._lock:
            return self._value


class Histogram:
    """Bucketed distribution of observed values."""

    DEFAULT_BUCKETS = [0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, float('inf')]

    def __init__(self, name: str, description: str = "", unit: MetricUnit = MetricUnit.SECONDS,
                 buckets: List[float] = None, tags: Dict[str, str] = None):
        self.name = name
        self.description = description
        self.unit = unit
        self.tags = tags or {}
        self.buckets = sorted(buckets or self.DEFAULT_BUCKETS)
        self._bucket_counts = {bucket: 0 for bucket in self.buckets}
        self._sum = 0
        self._count = 0
        self._lock = threading.Lock()

    def observe(self, value: Union[int, float], **labels):
        with self._lock:
            self._sum += value
            self._count += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._bucket_counts[bucket] += 1

        MetricsCollector.get_instance().record_metric(
            self.name, value, MetricType.HISTOGRAM, self.unit,
            tags=self.tags, description=self.description, **labels
        )

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'count': self._count,
                'sum': self._sum,
                'mean': self._sum / self._count if self._count > 0 else 0,
                'buckets': self._bucket_counts.copy()
            }


class MetricsCollector:
    """Central metrics registry."""

    _instance: Optional['MetricsCollector'] = None
    _lock = threading.Lock()

    def __init__(self):
        self.logger = get_logger(__name__, 'metrics_collector')
        self.metrics: Dict[str, MetricSeries] = {}
        self.counters: Dict[str, Counter] = {}
        self.gauges: Dict[str, Gauge] = {}
        self.histograms: Dict[str, Histogram] = {}

        self.stats = {
            'metrics_recorded': 0,
            'start_time': _utcnow(),
            'last_collection_time': None
        }

    @classmethod
    def get_instance(cls) -> 'MetricsCollector':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Drop the singleton so the next access starts from an empty registry."""
        with cls._lock:
            cls._instance = None

    def record_metric(
        self,
        name: str,
        value: Union[int, float],
        metric_type: MetricType,
        unit: MetricUnit,
        timestamp: Optional[datetime] = None,
        tags: Dict[str, str] = None,
        description: str = "",
        **labels
    ):
        """Record a metric value."""
        timestamp = timestamp or _utcnow()
        series_key = _series_key(name, tags)

        series = self.metrics.get(series_key)
        if series is None:
            series = MetricSeries(
                name=name,
                metric_type=metric_type,
                unit=unit,
                description=description,
                tags=tags or {}
            )
            self.metrics[series_key] = series

        series.add_value(value, timestamp, **labels)

        self.stats['metrics_recorded'] += 1
        self.stats['last_collection_time'] = timestamp

    def get_counter(self, name: str, description: str = "", tags: Dict[str, str] = None) -> Counter:
        key = _series_key(name, tags)
        if key not in self.counters:
            self.counters[key] = Counter(name, description, tags)
        return self.counters[key]

    def get_gauge(self, name: str, description: str = "", unit: MetricUnit = MetricUnit.COUNT,
                  tags: Dict[str, str] = None) -> Gauge:
        key = _series_key(name, tags)
        if key not in self.gauges:
            self.gauges[key] = Gauge(name, description, unit, tags)
        return self.gauges[key]

    def get_histogram(self, name: str, description: str = "", unit: MetricUnit = MetricUnit.SECONDS,
                      buckets: List[float] = None, tags: Dict[str, str] = None) -> Histogram:
        key = _series_key(name, tags)
        if key not in self.histograms:
            self.histograms[key] = Histogram(name, description, unit, buckets, tags)
        return self.histograms[key]

    def get_metric_series(self, name: str, tags: Dict[str, str] = None) -> Optional[MetricSeries]:
        return self.metrics.get(_series_key(name, tags))

    def get_metrics_summary(self, window_minutes: int = 5) -> Dict[str, Any]:
        """Get summary of all metrics."""
        summary = {
            'total_metrics': len(self.metrics),
            'collection_stats': self.stats.copy(),
            'metrics': {}
        }

        for series_key, series in self.metrics.items():
            latest_value = series.get_latest_value()
            summary['metrics'][series_key] = {
                'name': series.name,
                'type': series.metric_type.value,
                'unit': series.unit.value,
                'tags': series.tags,
                'latest_value': latest_value.value if latest_value else None,
                'latest_timestamp': latest_value.timestamp.isoformat() if latest_value else None,
                'statistics': series.calculate_statistics(window_minutes),
                'value_count': len(series.values)
            }

        return summary

    def export_metrics(self, format_type: str = 'json') -> str:
        """Export metrics as 'json' or 'prometheus' text."""
        if format_type == 'json':
            return json.dumps(self.get_metrics_summary(), default=str, indent=2)
        elif format_type == 'prometheus':
            return self._export_prometheus_format()
        else:
            raise ValueError(f"Unsupported format: {format_type}")

    def _export_prometheus_format(self) -> str:
        lines = []

        for series in self.metrics.values():
            latest_value = series.get_latest_value()
            if not latest_value:
                continue

            metric_name = series.name.replace('-', '_').replace('.', '_')
            lines.append(f"# HELP {metric_name} {series.description or series.name}")
            lines.append(f"# TYPE {metric_name} {series.metric_type.value}")

            labels = [f'{k}="{v}"' for k, v in series.tags.items()]
            labels.extend(f'{k}="{v}"' for k, v in latest_value.labels.items())
            label_str = '{' + ','.join(labels) + '}' if labels else ''

            lines.append(f"{metric_name}{label_str} {latest_value.value}")

        return '\n'.join(lines)

    def record_cache_operation(self, operation: str, namespace: str, amount: int = 1):
        """Count a cache operation (hits, misses, sets, deletes, errors)."""
        self.get_counter(
            f'frache_cache_{operation}_total', f'Total cache {operation}'
        ).increment(amount, namespace=namespace)

    def record_warmup_queue(self, size: int):
        """Track how many warmup entries are waiting."""
        self.get_gauge('frache_warmup_queue_size', 'Pending warmup entries').set(size)

    def record_warmup(self, task_id: str, status: str, duration: Optional[float] = None):
        """Count a finished warmup execution and observe its duration."""
        self.get_counter(
            'frache_warmup_tasks_total', 'Warmup task executions'
        ).increment(task_id=task_id, status=status)
        if duration is not None:
            self.get_histogram(
                'frache_warmup_duration_seconds', 'Warmup task duration'
            ).observe(duration, task_id=task_id, status=status)


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    return MetricsCollector.get_instance()

