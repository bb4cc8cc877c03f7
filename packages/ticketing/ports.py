"""Interfaces of the collaborators the engine talks to.

Implementations are injected; the engine never reaches for a global instance.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from .models import (
    ClaimResult,
    Event,
    IssuanceFailureCase,
    PaymentIntent,
    PaymentMethod,
    PaymentResult,
    RevenueRecord,
    ScanRecord,
    Ticket,
)


class PaymentGateway(Protocol):
    async def create_intent(self, amount: int, event_id: str, buyer_id: str) -> PaymentIntent:
        ...

    async def list_methods(self) -> Sequence[PaymentMethod]:
        ...

    async def process_payment(self, intent_id: str, method: PaymentMethod, amount: int) -> PaymentResult:
        ...


class TicketStore(Protocol):
    """Persistence for issued tickets and per-event revenue.

    ``atomic_claims`` tells the validation engine whether
    ``claim_ticket_use`` is a true conditional update. When it is ``False``
    the engine serializes claims per ticket id itself.
    """

    atomic_claims: bool

    async def add_ticket(self, ticket: Ticket) -> str:
        ...

    async def claim_ticket_use(self, ticket_id: str, used_at: datetime) -> ClaimResult:
        ...

    async def accumulate_event_revenue(self, event_id: str, record: RevenueRecord) -> None:
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    async def list_buyer_tickets(self, buyer_id: str) -> Sequence[Ticket]:
        ...

    async def list_event_tickets(self, event_id: str) -> Sequence[Ticket]:
        ...

    async def get_event_revenue(self, event_id: str) -> RevenueRecord | None:
        ...


class ScanLog(Protocol):
    async def record_scan(self, record: ScanRecord) -> None:
        ...

    async def list_scans(self, event_id: str, *, ticket_id: str | None = None) -> Sequence[ScanRecord]:
        ...


class EventCatalog(Protocol):
    async def get_event(self, event_id: str) -> Event | None:
        ...


class TicketNotifier(Protocol):
    async def ticket_purchased(
        self, *, event_id: str, buyer_name: str, quantity: int, net_revenue: int
    ) -> None:
        ...

    async def ticket_validated(
        self, *, ticket_id: str | None, event_id: str, admitted: bool, reason: str | None
    ) -> None:
        ...


class ReconciliationSink(Protocol):
    async def flag_issuance_failure(self, case: IssuanceFailureCase) -> None:
        ...
