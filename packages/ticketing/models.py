from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence


class PaymentNetwork(str, Enum):
    """Mobile money networks accepted for ticket payments."""

    MTN = "mtn"
    AIRTEL = "airtel"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TicketType:
    """Ticket offer on an event; price in minor currency units."""

    id: str
    name: str
    unit_price: int
    is_available: bool = True
    max_per_order: int | None = None


@dataclass(frozen=True, slots=True)
class Event:
    """Read-only view of a venue's event and its ordered ticket offers."""

    id: str
    name: str
    location: str
    starts_at: datetime
    ticket_types: tuple[TicketType, ...] = ()

    def ticket_type(self, ticket_type_id: str) -> TicketType | None:
        for ticket_type in self.ticket_types:
            if ticket_type.id == ticket_type_id:
                return ticket_type
        return None


@dataclass(frozen=True, slots=True)
class Buyer:
    id: str
    name: str
    phone: str | None = None


@dataclass(frozen=True, slots=True)
class PurchaseRequest:
    """Everything the buyer submitted for one purchase attempt."""

    event: Event
    ticket_type_id: str | None
    quantity: int
    buyer: Buyer
    phone_number: str
    payment_network: PaymentNetwork | None = None


@dataclass(slots=True)
class PurchasePayment:
    """Ephemeral payment state held for the lifetime of one purchase."""

    intent_id: str
    phone_number: str
    network: PaymentNetwork
    amount: int
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: str | None = None


@dataclass(slots=True)
class Ticket:
    """One admission right. Amounts are in minor currency units."""

    id: str
    event_id: str
    buyer_id: str
    buyer_name: str
    buyer_phone: str | None
    ticket_type_id: str
    unit_price: int
    commission_amount: int
    payment_transaction_id: str
    qr_payload: str
    purchased_at: datetime
    is_used: bool = False
    used_at: datetime | None = None

    @property
    def net_amount(self) -> int:
        return self.unit_price - self.commission_amount


@dataclass(slots=True)
class RevenueRecord:
    """Revenue figures for an event; accumulated, never overwritten."""

    event_id: str
    gross_amount: int
    commission_amount: int
    net_to_venue: int
    ticket_count: int = 0


@dataclass(frozen=True, slots=True)
class TicketClaims:
    """Fields carried inside a signed ticket payload."""

    ticket_id: str
    event_id: str
    buyer_id: str
    ticket_type_id: str


@dataclass(frozen=True, slots=True)
class ClaimResult:
    """Outcome of an atomic single-use claim on a ticket."""

    claimed: bool
    exists: bool = True
    prior_used_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    id: str
    amount: int


@dataclass(frozen=True, slots=True)
class PaymentMethod:
    id: str
    provider: str


@dataclass(frozen=True, slots=True)
class PaymentResult:
    success: bool
    transaction_id: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ScanRecord:
    """History entry for one gate scan, admitted or not."""

    ticket_id: str | None
    event_id: str
    gate: str | None
    validator_id: str | None
    admitted: bool
    reason: str | None
    scanned_at: datetime


@dataclass(frozen=True, slots=True)
class IssuanceFailureCase:
    """Paid order that did not end with all tickets persisted."""

    transaction_id: str
    buyer_id: str
    event_id: str
    quantity: int
    amount_charged: int
    persisted_ticket_ids: Sequence[str] = field(default_factory=tuple)
    error: str = ""
    intent_id: str = ""
