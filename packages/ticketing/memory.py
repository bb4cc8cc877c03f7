"""In-process adapters for the engine's collaborators.

Used for local development, the sandbox payment mode and tests. The ticket
store doubles as an offline gate cache: it has no compare-and-swap primitive,
so the validation engine serializes its claims per ticket id.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Sequence

from .models import (
    ClaimResult,
    Event,
    IssuanceFailureCase,
    PaymentIntent,
    PaymentMethod,
    PaymentNetwork,
    PaymentResult,
    RevenueRecord,
    ScanRecord,
    Ticket,
)


class InMemoryTicketStore:
    """Dictionary backed ticket store and scan log."""

    atomic_claims = False

    def __init__(self) -> None:
        self.tickets: dict[str, Ticket] = {}
        self.revenue: dict[str, RevenueRecord] = {}
        self.scans: list[ScanRecord] = []

    async def add_ticket(self, ticket: Ticket) -> str:
        if ticket.id in self.tickets:
            raise ValueError(f"Ticket {ticket.id} already exists")
        self.tickets[ticket.id] = replace(ticket)
        return ticket.id

    async def claim_ticket_use(self, ticket_id: str, used_at: datetime) -> ClaimResult:
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            return ClaimResult(claimed=False, exists=False)
        if ticket.is_used:
            return ClaimResult(claimed=False, prior_used_at=ticket.used_at)
        ticket.is_used = True
        ticket.used_at = used_at
        return ClaimResult(claimed=True)

    async def accumulate_event_revenue(self, event_id: str, record: RevenueRecord) -> None:
        current = self.revenue.get(event_id)
        if current is None:
            self.revenue[event_id] = replace(record, event_id=event_id)
            return
        current.gross_amount += record.gross_amount
        current.commission_amount += record.commission_amount
        current.net_to_venue += record.net_to_venue
        current.ticket_count += record.ticket_count

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ticket = self.tickets.get(ticket_id)
        return replace(ticket) if ticket is not None else None

    async def list_buyer_tickets(self, buyer_id: str) -> Sequence[Ticket]:
        tickets = [replace(ticket) for ticket in self.tickets.values() if ticket.buyer_id == buyer_id]
        return sorted(tickets, key=lambda ticket: ticket.purchased_at, reverse=True)

    async def list_event_tickets(self, event_id: str) -> Sequence[Ticket]:
        tickets = [replace(ticket) for ticket in self.tickets.values() if ticket.event_id == event_id]
        return sorted(tickets, key=lambda ticket: (ticket.purchased_at, ticket.id))

    async def get_event_revenue(self, event_id: str) -> RevenueRecord | None:
        record = self.revenue.get(event_id)
        return replace(record) if record is not None else None

    async def record_scan(self, record: ScanRecord) -> None:
        self.scans.append(record)

    async def list_scans(self, event_id: str, *, ticket_id: str | None = None) -> Sequence[ScanRecord]:
        return [
            record
            for record in self.scans
            if record.event_id == event_id and (ticket_id is None or record.ticket_id == ticket_id)
        ]


class InMemoryEventCatalog:
    def __init__(self, events: Sequence[Event] = ()) -> None:
        self._events = {event.id: event for event in events}

    def add(self, event: Event) -> None:
        self._events[event.id] = event

    async def get_event(self, event_id: str) -> Event | None:
        return self._events.get(event_id)


class SandboxPaymentGateway:
    """Payment gateway that settles instantly; optionally declines everything."""

    def __init__(self, *, decline_reason: str | None = None) -> None:
        self._decline_reason = decline_reason
        self.processed: list[tuple[str, str, int]] = []

    async def create_intent(self, amount: int, event_id: str, buyer_id: str) -> PaymentIntent:
        return PaymentIntent(id=f"pi_{uuid.uuid4().hex[:16]}", amount=amount)

    async def list_methods(self) -> Sequence[PaymentMethod]:
        return [PaymentMethod(id=f"sandbox_{network.value}", provider=network.value) for network in PaymentNetwork]

    async def process_payment(self, intent_id: str, method: PaymentMethod, amount: int) -> PaymentResult:
        self.processed.append((intent_id, method.id, amount))
        if self._decline_reason is not None:
            return PaymentResult(success=False, error=self._decline_reason)
        return PaymentResult(success=True, transaction_id=f"txn_{uuid.uuid4().hex}")


class LoggingNotifier:
    """Notifier that writes purchase and validation events to the logger."""

    def __init__(self, logger_: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._logger = logger_ or logging.getLogger("ticketing.notifications")
        self._level = level

    async def ticket_purchased(
        self, *, event_id: str, buyer_name: str, quantity: int, net_revenue: int
    ) -> None:
        self._logger.log(
            self._level,
            "%s purchased %d ticket(s) for event %s; venue earns %d",
            buyer_name,
            quantity,
            event_id,
            net_revenue,
        )

    async def ticket_validated(
        self, *, ticket_id: str | None, event_id: str, admitted: bool, reason: str | None
    ) -> None:
        self._logger.log(
            self._level,
            "Ticket %s %s for event %s%s",
            ticket_id or "-",
            "admitted" if admitted else "denied",
            event_id,
            f" ({reason})" if reason else "",
        )


class LoggingReconciliationSink:
    """Escalate paid-but-unissued orders through the error log."""

    def __init__(self, logger_: logging.Logger | None = None) -> None:
        self.cases: list[IssuanceFailureCase] = []
        self._logger = logger_ or logging.getLogger("ticketing.reconciliation")

    async def flag_issuance_failure(self, case: IssuanceFailureCase) -> None:
        self.cases.append(case)
        self._logger.error(
            "Manual reconciliation required: transaction=%s intent=%s buyer=%s event=%s charged=%d issued=%d/%d",
            case.transaction_id or "-",
            case.intent_id or "-",
            case.buyer_id,
            case.event_id,
            case.amount_charged,
            len(case.persisted_ticket_ids),
            case.quantity,
        )
