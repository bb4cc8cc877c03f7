"""Error types raised by the ticketing engine."""

from __future__ import annotations

from enum import Enum
from typing import Sequence


class FailureReason(str, Enum):
    """Why a purchase attempt ended in the ``FAILED`` state."""

    INVALID_PHONE = "invalid_phone"
    INVALID_TICKET_TYPE = "invalid_ticket_type"
    TICKET_TYPE_UNAVAILABLE = "ticket_type_unavailable"
    INVALID_QUANTITY = "invalid_quantity"
    PAYMENT_DECLINED = "payment_declined"
    ISSUANCE_UNAVAILABLE = "issuance_unavailable"
    PERSIST_ERROR = "persist_error"
    CANCELLED = "cancelled"


class DecodeFailure(str, Enum):
    """Reasons a scanned payload could not be decoded."""

    MALFORMED = "malformed"
    TAG_MISMATCH = "tag_mismatch"


class TicketingError(RuntimeError):
    """Base error for the ticketing engine."""


class InvalidAmountError(TicketingError, ValueError):
    """Raised when a price or quantity is negative or not an integer."""


class DigestUnavailableError(TicketingError):
    """Raised when the configured digest algorithm cannot be used."""


class IntegrityKeyError(TicketingError):
    """Raised when the payload signing key is missing."""


class PayloadDecodeError(TicketingError):
    """Raised when a scanned payload is malformed or its tag does not verify."""

    def __init__(self, failure: DecodeFailure, message: str) -> None:
        super().__init__(message)
        self.failure = failure


class EventNotFoundError(TicketingError):
    """Raised when an event could not be located."""


class TicketNotFoundError(TicketingError):
    """Raised when a ticket could not be located."""


class PaymentGatewayError(TicketingError):
    """Raised by payment gateway adapters on transport or provider errors."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        prefix = f"[{self.status_code}] " if self.status_code is not None else ""
        return f"{prefix}{super().__str__()}"


class PurchaseError(TicketingError):
    """Base error for a purchase attempt that ended in ``FAILED``."""

    def __init__(self, reason: FailureReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class InvalidPurchaseError(PurchaseError):
    """Raised when purchase input is rejected before any payment call."""


class PurchaseCancelledError(PurchaseError):
    """Raised when the caller abandoned the purchase before payment."""

    def __init__(self, message: str = "Purchase cancelled before payment") -> None:
        super().__init__(FailureReason.CANCELLED, message)


class IssuanceUnavailableError(PurchaseError):
    """Raised before payment when ticket ids cannot be generated."""

    def __init__(self, message: str) -> None:
        super().__init__(FailureReason.ISSUANCE_UNAVAILABLE, message)


class PaymentDeclinedError(PurchaseError):
    """Raised when the provider declined or failed the payment."""

    def __init__(self, provider_message: str) -> None:
        super().__init__(FailureReason.PAYMENT_DECLINED, f"Payment declined: {provider_message}")
        self.provider_message = provider_message


class TicketIssuanceError(PurchaseError):
    """Raised when tickets could not be persisted after payment was captured.

    The buyer may have paid without receiving a valid ticket, so the error
    carries everything support needs to reconcile the order by hand.
    """

    def __init__(
        self,
        message: str,
        *,
        transaction_id: str,
        buyer_id: str,
        event_id: str,
        persisted_ticket_ids: Sequence[str] = (),
    ) -> None:
        super().__init__(FailureReason.PERSIST_ERROR, message)
        self.transaction_id = transaction_id
        self.buyer_id = buyer_id
        self.event_id = event_id
        self.persisted_ticket_ids = tuple(persisted_ticket_ids)
