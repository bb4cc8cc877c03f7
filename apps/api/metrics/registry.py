"""In-process registry of the service's metrics."""
from __future__ import annotations

from threading import Lock
from typing import Iterable, TypeVar

from .base import CounterMetric, DistributionMetric, Metric

MetricT = TypeVar("MetricT", bound=Metric)


class MetricsRegistry:
    """Create-or-get access to named metrics; a name keeps its first type."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = Lock()

    def _obtain(
        self, kind: type[MetricT], name: str, description: str, label_names: Iterable[str] | None
    ) -> MetricT:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = kind(name, description=description, label_names=label_names)
        if not isinstance(metric, kind):
            raise TypeError(f"Metric '{name}' is already registered as {type(metric).__name__}")
        return metric

    def counter(
        self, name: str, *, description: str = "", label_names: Iterable[str] | None = None
    ) -> CounterMetric:
        return self._obtain(CounterMetric, name, description, label_names)

    def distribution(
        self, name: str, *, description: str = "", label_names: Iterable[str] | None = None
    ) -> DistributionMetric:
        return self._obtain(DistributionMetric, name, description, label_names)

    def metrics(self) -> tuple[Metric, ...]:
        with self._lock:
            return tuple(self._metrics.values())
