"""Metric primitives held by the registry."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Generic, Iterable, Iterator, Mapping, TypeVar

LabelValues = tuple[str, ...]
SeriesT = TypeVar("SeriesT")


@dataclass
class CounterSeries:
    value: float = 0.0

    def to_mapping(self) -> Mapping[str, float]:
        return {"value": self.value}


@dataclass
class DistributionSeries:
    count: int = 0
    total: float = 0.0
    min: float | None = None
    max: float | None = None

    def add(self, sample: float) -> None:
        self.count += 1
        self.total += sample
        if self.min is None or sample < self.min:
            self.min = sample
        if self.max is None or sample > self.max:
            self.max = sample

    def to_mapping(self) -> Mapping[str, float]:
        return {
            "count": float(self.count),
            "sum": self.total,
            "min": 0.0 if self.min is None else self.min,
            "max": 0.0 if self.max is None else self.max,
            "avg": self.total / self.count if self.count else 0.0,
        }


class Metric(Generic[SeriesT]):
    """A named family of series, one per combination of label values."""

    series_type: type

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        self.name = name
        self.description = description
        self.label_names: tuple[str, ...] = tuple(label_names or ())
        self._series: dict[LabelValues, SeriesT] = {}
        self._lock = Lock()

    def _label_key(self, labels: Mapping[str, str] | None) -> LabelValues:
        labels = labels or {}
        if set(labels) != set(self.label_names):
            raise ValueError(
                f"Metric '{self.name}' expects labels {self.label_names}, got {tuple(sorted(labels))}"
            )
        return tuple(str(labels[name]) for name in self.label_names)

    def _series_for(self, key: LabelValues) -> SeriesT:
        series = self._series.get(key)
        if series is None:
            series = self._series[key] = self.series_type()
        return series

    def snapshot(self) -> Mapping[LabelValues, Mapping[str, float]]:
        """Return the current values keyed by label values."""

        with self._lock:
            return {key: series.to_mapping() for key, series in self._series.items()}


class CounterMetric(Metric[CounterSeries]):
    """Monotonic counter (purchases, tickets, currency units)."""

    series_type = CounterSeries

    def inc(self, amount: float = 1.0, *, labels: Mapping[str, str] | None = None) -> None:
        if amount < 0:
            raise ValueError(f"Counter '{self.name}' cannot be decreased")
        key = self._label_key(labels)
        with self._lock:
            self._series_for(key).value += amount

    def value(self, *, labels: Mapping[str, str] | None = None) -> float:
        key = self._label_key(labels)
        with self._lock:
            series = self._series.get(key)
            return series.value if series else 0.0


class DistributionMetric(Metric[DistributionSeries]):
    """Count, sum and extremes of observed values such as durations."""

    series_type = DistributionSeries

    def observe(self, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._label_key(labels)
        with self._lock:
            self._series_for(key).add(value)


@contextmanager
def track_duration(metric: DistributionMetric, *, labels: Mapping[str, str] | None = None) -> Iterator[None]:
    """Observe the wall-clock seconds spent inside the block, even when it raises."""

    started = perf_counter()
    try:
        yield
    finally:
        metric.observe(perf_counter() - started, labels=labels)
