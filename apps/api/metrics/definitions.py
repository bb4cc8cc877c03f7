"""Metrics the ticketing service always exposes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .registry import MetricsRegistry


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    metric_type: str
    description: str
    label_names: tuple[str, ...] = ()

    def register(self, registry: MetricsRegistry) -> None:
        if self.metric_type == "counter":
            registry.counter(self.name, description=self.description, label_names=self.label_names)
        elif self.metric_type == "distribution":
            registry.distribution(self.name, description=self.description, label_names=self.label_names)
        else:
            raise ValueError(f"Unsupported metric type: {self.metric_type}")


PURCHASES_TOTAL = "ticket_purchases_total"
PURCHASE_FAILURES_TOTAL = "ticket_purchase_failures_total"
PURCHASE_DURATION_SECONDS = "ticket_purchase_duration_seconds"
TICKETS_ISSUED_TOTAL = "tickets_issued_total"
GROSS_REVENUE_TOTAL = "ticket_gross_revenue_total"
COMMISSION_TOTAL = "ticket_commission_total"
REVENUE_RECORDING_FAILURES_TOTAL = "ticket_revenue_recording_failures_total"
SCANS_TOTAL = "ticket_scans_total"

DEFAULT_METRIC_DEFINITIONS: tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name=PURCHASES_TOTAL,
        metric_type="counter",
        description="Completed ticket purchases.",
        label_names=("network",),
    ),
    MetricDefinition(
        name=PURCHASE_FAILURES_TOTAL,
        metric_type="counter",
        description="Failed ticket purchases by failure reason.",
        label_names=("reason",),
    ),
    MetricDefinition(
        name=PURCHASE_DURATION_SECONDS,
        metric_type="distribution",
        description="Wall-clock duration of purchase attempts in seconds.",
    ),
    MetricDefinition(
        name=TICKETS_ISSUED_TOTAL,
        metric_type="counter",
        description="Tickets persisted after a captured payment.",
    ),
    MetricDefinition(
        name=GROSS_REVENUE_TOTAL,
        metric_type="counter",
        description="Gross ticket value sold, in minor currency units.",
    ),
    MetricDefinition(
        name=COMMISSION_TOTAL,
        metric_type="counter",
        description="Platform commission earned, in minor currency units.",
    ),
    MetricDefinition(
        name=REVENUE_RECORDING_FAILURES_TOTAL,
        metric_type="counter",
        description="Purchases completed without their revenue being recorded.",
    ),
    MetricDefinition(
        name=SCANS_TOTAL,
        metric_type="counter",
        description="Gate scans by outcome.",
        label_names=("outcome",),
    ),
)
