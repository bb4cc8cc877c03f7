"""Counters and timings exposed on ``/metrics``."""
from .definitions import DEFAULT_METRIC_DEFINITIONS, MetricDefinition
from .exporters import PROMETHEUS_CONTENT_TYPE, PrometheusExporter
from .registry import MetricsRegistry

metrics_registry = MetricsRegistry()


def register_default_metrics(registry: MetricsRegistry | None = None) -> MetricsRegistry:
    """Create every purchase and scan metric up front so scrapes list them at zero."""
    target = registry or metrics_registry
    for definition in DEFAULT_METRIC_DEFINITIONS:
        definition.register(target)
    return target


register_default_metrics()

__all__ = [
    "MetricDefinition",
    "MetricsRegistry",
    "PROMETHEUS_CONTENT_TYPE",
    "PrometheusExporter",
    "metrics_registry",
    "register_default_metrics",
]
