"""Ticket issuance, payload integrity, commission and gate validation engine."""

from .commission import (
    CommissionAllocation,
    CommissionBreakdown,
    CommissionCalculator,
    PaymentFeeSchedule,
    PurchaseQuote,
)
from .errors import (
    DecodeFailure,
    FailureReason,
    InvalidPurchaseError,
    IssuanceUnavailableError,
    PayloadDecodeError,
    PaymentDeclinedError,
    PurchaseError,
    TicketIssuanceError,
    TicketingError,
)
from .models import Buyer, Event, PaymentNetwork, PurchaseRequest, RevenueRecord, Ticket, TicketType
from .purchase import PurchaseOrchestrator, PurchaseOutcome
from .qr_codec import QRPayloadCodec
from .state import PurchaseState, PurchaseStateMachine
from .ticket_ids import TicketIdGenerator
from .validation import DenyReason, ScanDecision, ValidationEngine

__all__ = [
    "Buyer",
    "CommissionAllocation",
    "CommissionBreakdown",
    "CommissionCalculator",
    "DecodeFailure",
    "DenyReason",
    "Event",
    "FailureReason",
    "InvalidPurchaseError",
    "IssuanceUnavailableError",
    "PayloadDecodeError",
    "PaymentDeclinedError",
    "PaymentFeeSchedule",
    "PaymentNetwork",
    "PurchaseError",
    "PurchaseOrchestrator",
    "PurchaseOutcome",
    "PurchaseQuote",
    "PurchaseRequest",
    "PurchaseState",
    "PurchaseStateMachine",
    "QRPayloadCodec",
    "RevenueRecord",
    "ScanDecision",
    "Ticket",
    "TicketIdGenerator",
    "TicketIssuanceError",
    "TicketType",
    "TicketingError",
    "ValidationEngine",
]
