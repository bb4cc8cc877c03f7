from __future__ import annotations

import logging
from typing import Sequence

from opentelemetry import trace

from apps.api.metrics import MetricsRegistry, metrics_registry
from apps.api.metrics import definitions as metric_names
from apps.api.metrics.base import track_duration
from packages.ticketing.commission import (
    CommissionAllocation,
    CommissionCalculator,
    PaymentFeeSchedule,
    PurchaseQuote,
)
from packages.ticketing.errors import (
    EventNotFoundError,
    FailureReason,
    InvalidPurchaseError,
    PurchaseError,
    TicketNotFoundError,
)
from packages.ticketing.models import (
    Buyer,
    Event,
    PaymentNetwork,
    PurchaseRequest,
    RevenueRecord,
    ScanRecord,
    Ticket,
)
from packages.ticketing.phone import DEFAULT_NETWORK, resolve_network
from packages.ticketing.ports import (
    EventCatalog,
    PaymentGateway,
    ReconciliationSink,
    ScanLog,
    TicketNotifier,
    TicketStore,
)
from packages.ticketing.purchase import PurchaseOrchestrator, PurchaseOutcome
from packages.ticketing.qr_codec import QRPayloadCodec
from packages.ticketing.ticket_ids import TicketIdGenerator
from packages.ticketing.validation import ScanDecision, ValidationEngine

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TicketingService:
    """Application facade over the purchase and validation engine.

    Each purchase gets its own ``PurchaseOrchestrator``; the validation engine
    is shared so its per-ticket claim locks span all requests.
    """

    def __init__(
        self,
        *,
        store: TicketStore,
        catalog: EventCatalog,
        payments: PaymentGateway,
        codec: QRPayloadCodec,
        id_generator: TicketIdGenerator | None = None,
        calculator: CommissionCalculator | None = None,
        fee_schedule: PaymentFeeSchedule | None = None,
        allocation: CommissionAllocation = CommissionAllocation.PER_TICKET,
        notifier: TicketNotifier | None = None,
        reconciliation: ReconciliationSink | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._payments = payments
        self._codec = codec
        self._id_generator = id_generator or TicketIdGenerator()
        self._calculator = calculator or CommissionCalculator()
        self._fee_schedule = fee_schedule or PaymentFeeSchedule()
        self._allocation = allocation
        self._notifier = notifier
        self._reconciliation = reconciliation
        self._metrics = metrics or metrics_registry
        self._scan_log: ScanLog | None = store if hasattr(store, "record_scan") else None
        self._validator = ValidationEngine(
            codec,
            store,
            scan_log=self._scan_log,
            notifier=notifier,
        )

    def new_orchestrator(self) -> PurchaseOrchestrator:
        return PurchaseOrchestrator(
            payments=self._payments,
            store=self._store,
            id_generator=self._id_generator,
            codec=self._codec,
            calculator=self._calculator,
            fee_schedule=self._fee_schedule,
            allocation=self._allocation,
            notifier=self._notifier,
            reconciliation=self._reconciliation,
        )

    async def get_event(self, event_id: str) -> Event:
        event = await self._catalog.get_event(event_id)
        if event is None:
            raise EventNotFoundError(f"Event {event_id} not found")
        return event

    async def quote(
        self,
        event_id: str,
        *,
        ticket_type_id: str,
        quantity: int,
        phone_number: str | None = None,
        payment_network: PaymentNetwork | None = None,
    ) -> PurchaseQuote:
        event = await self.get_event(event_id)
        ticket_type = event.ticket_type(ticket_type_id)
        if ticket_type is None:
            raise InvalidPurchaseError(
                FailureReason.INVALID_TICKET_TYPE, f"Ticket type {ticket_type_id} is not offered for event {event_id}"
            )
        if quantity < 1:
            raise InvalidPurchaseError(FailureReason.INVALID_QUANTITY, "Please select at least 1 ticket")

        if phone_number:
            network, _ = resolve_network(phone_number, payment_network)
        else:
            network = payment_network or DEFAULT_NETWORK
        return self.new_orchestrator().quote(ticket_type.unit_price, quantity, network)

    async def purchase(
        self,
        event_id: str,
        *,
        ticket_type_id: str | None,
        quantity: int,
        buyer: Buyer,
        phone_number: str,
        payment_network: PaymentNetwork | None = None,
    ) -> PurchaseOutcome:
        event = await self.get_event(event_id)
        request = PurchaseRequest(
            event=event,
            ticket_type_id=ticket_type_id,
            quantity=quantity,
            buyer=buyer,
            phone_number=phone_number,
            payment_network=payment_network,
        )
        orchestrator = self.new_orchestrator()
        duration = self._metrics.distribution(metric_names.PURCHASE_DURATION_SECONDS)
        with tracer.start_as_current_span("ticketing.purchase") as span:
            span.set_attribute("ticketing.event_id", event_id)
            span.set_attribute("ticketing.quantity", quantity)
            try:
                with track_duration(duration):
                    outcome = await orchestrator.run(request)
            except PurchaseError as exc:
                span.set_attribute("ticketing.failure_reason", exc.reason.value)
                self._metrics.counter(metric_names.PURCHASE_FAILURES_TOTAL, label_names=("reason",)).inc(
                    labels={"reason": exc.reason.value}
                )
                raise
            span.set_attribute("ticketing.transaction_id", outcome.transaction_id)

        self._record_purchase_metrics(outcome)
        return outcome

    def _record_purchase_metrics(self, outcome: PurchaseOutcome) -> None:
        self._metrics.counter(metric_names.PURCHASES_TOTAL, label_names=("network",)).inc(
            labels={"network": outcome.quote.network.value}
        )
        self._metrics.counter(metric_names.TICKETS_ISSUED_TOTAL).inc(len(outcome.tickets))
        self._metrics.counter(metric_names.GROSS_REVENUE_TOTAL).inc(outcome.breakdown.gross_amount)
        self._metrics.counter(metric_names.COMMISSION_TOTAL).inc(outcome.breakdown.commission_amount)
        if outcome.warnings:
            self._metrics.counter(metric_names.REVENUE_RECORDING_FAILURES_TOTAL).inc()

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._store.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def list_buyer_tickets(self, buyer_id: str) -> Sequence[Ticket]:
        return await self._store.list_buyer_tickets(buyer_id)

    async def list_event_tickets(self, event_id: str) -> Sequence[Ticket]:
        await self.get_event(event_id)
        return await self._store.list_event_tickets(event_id)

    async def list_scans(self, event_id: str, *, ticket_id: str | None = None) -> Sequence[ScanRecord]:
        """Scan history for an event, oldest first. Empty when scans are not logged."""
        await self.get_event(event_id)
        if self._scan_log is None:
            return []
        return await self._scan_log.list_scans(event_id, ticket_id=ticket_id)

    async def validate(
        self,
        event_id: str,
        scanned_payload: str,
        *,
        gate: str | None = None,
        validator_id: str | None = None,
    ) -> ScanDecision:
        decision = await self._validator.validate(
            scanned_payload, event_id, gate=gate, validator_id=validator_id
        )
        self._record_scan_metric(decision)
        return decision

    async def validate_batch(
        self,
        event_id: str,
        scanned_payloads: Sequence[str],
        *,
        gate: str | None = None,
        validator_id: str | None = None,
    ) -> list[ScanDecision]:
        with tracer.start_as_current_span("ticketing.validate_batch") as span:
            span.set_attribute("ticketing.event_id", event_id)
            span.set_attribute("ticketing.batch_size", len(scanned_payloads))
            decisions = await self._validator.validate_batch(
                scanned_payloads, event_id, gate=gate, validator_id=validator_id
            )
        for decision in decisions:
            self._record_scan_metric(decision)
        return decisions

    def _record_scan_metric(self, decision: ScanDecision) -> None:
        outcome = "admitted" if decision.admitted else decision.reason.value if decision.reason else "denied"
        self._metrics.counter(metric_names.SCANS_TOTAL, label_names=("outcome",)).inc(labels={"outcome": outcome})

    async def get_revenue(self, event_id: str) -> RevenueRecord:
        await self.get_event(event_id)
        record = await self._store.get_event_revenue(event_id)
        if record is None:
            return RevenueRecord(event_id=event_id, gross_amount=0, commission_amount=0, net_to_venue=0)
        return record
