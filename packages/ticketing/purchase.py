from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from .commission import (
    CommissionAllocation,
    CommissionBreakdown,
    CommissionCalculator,
    PaymentFeeSchedule,
    PurchaseQuote,
)
from .errors import (
    DigestUnavailableError,
    FailureReason,
    InvalidPurchaseError,
    IssuanceUnavailableError,
    PaymentDeclinedError,
    PurchaseCancelledError,
    PurchaseError,
    TicketIssuanceError,
)
from .models import (
    IssuanceFailureCase,
    PaymentMethod,
    PaymentNetwork,
    PaymentResult,
    PaymentStatus,
    PurchasePayment,
    PurchaseRequest,
    RevenueRecord,
    Ticket,
    TicketType,
)
from .phone import resolve_network
from .ports import PaymentGateway, ReconciliationSink, TicketNotifier, TicketStore
from .qr_codec import QRPayloadCodec
from .state import PurchaseState, PurchaseStateMachine
from .ticket_ids import TicketIdGenerator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _log_abandoned_payment(intent_id: str, buyer_id: str, processing: asyncio.Future) -> None:
    if processing.cancelled():
        logger.error("Processing of abandoned payment intent %s was cancelled; status unknown", intent_id)
        return
    exc = processing.exception()
    if exc is not None:
        logger.error("Abandoned payment intent %s for buyer %s raised: %s", intent_id, buyer_id, exc)
        return
    result = processing.result()
    if result.success:
        logger.error(
            "Abandoned payment intent %s for buyer %s was captured as %s without tickets",
            intent_id,
            buyer_id,
            result.transaction_id,
        )
    else:
        logger.warning("Abandoned payment intent %s for buyer %s was declined: %s", intent_id, buyer_id, result.error)


@dataclass(slots=True)
class PurchaseOutcome:
    """Result handed back to the caller once a purchase is complete."""

    state: PurchaseState
    tickets: list[Ticket]
    transaction_id: str
    quote: PurchaseQuote
    warnings: list[str] = field(default_factory=list)

    @property
    def breakdown(self) -> CommissionBreakdown:
        return self.quote.breakdown


class PurchaseOrchestrator:
    """Drive a single purchase from validated input to issued tickets.

    One instance per purchase attempt. Payment authorization strictly
    precedes ticket issuance, which strictly precedes revenue recording.
    Once the payment is captured the remaining steps are shielded from
    caller cancellation.
    """

    def __init__(
        self,
        *,
        payments: PaymentGateway,
        store: TicketStore,
        id_generator: TicketIdGenerator,
        codec: QRPayloadCodec,
        calculator: CommissionCalculator,
        fee_schedule: PaymentFeeSchedule | None = None,
        allocation: CommissionAllocation = CommissionAllocation.PER_TICKET,
        notifier: TicketNotifier | None = None,
        reconciliation: ReconciliationSink | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._payments = payments
        self._store = store
        self._id_generator = id_generator
        self._codec = codec
        self._calculator = calculator
        self._fee_schedule = fee_schedule or PaymentFeeSchedule()
        self._allocation = allocation
        self._notifier = notifier
        self._reconciliation = reconciliation
        self._clock = clock

        self._state = PurchaseStateMachine.initial_state()
        self._failure_reason: FailureReason | None = None
        self._cancel_requested = False
        self._payment_submitted = False
        self._started = False
        self.payment: PurchasePayment | None = None

    @property
    def state(self) -> PurchaseState:
        return self._state

    @property
    def failure_reason(self) -> FailureReason | None:
        return self._failure_reason

    def quote(self, unit_price: int, quantity: int, network: PaymentNetwork) -> PurchaseQuote:
        breakdown = self._calculator.compute(unit_price, quantity)
        return PurchaseQuote(
            unit_price=unit_price,
            quantity=quantity,
            network=network,
            breakdown=breakdown,
            payment_fee=self._fee_schedule.fee_for(network, breakdown.gross_amount),
        )

    def cancel(self) -> bool:
        """Abandon the purchase. Only honoured before payment is authorized."""

        if self._payment_submitted:
            return False
        if self._state in (PurchaseState.IDLE, PurchaseState.INPUT_VALIDATED):
            self._cancel_requested = True
            return True
        return False

    async def run(self, request: PurchaseRequest) -> PurchaseOutcome:
        if self._started:
            raise RuntimeError("PurchaseOrchestrator instances handle a single purchase attempt")
        self._started = True

        try:
            ticket_type, network = self._validate_input(request)
            self._ensure_issuable()
            self._raise_if_cancelled()
            quote, payment = await self._authorize_payment(request, ticket_type, network)
        except PurchaseError as exc:
            self._fail(exc.reason)
            raise
        except asyncio.CancelledError:
            self._fail(FailureReason.CANCELLED)
            raise

        # Payment is captured: finish or fail explicitly, even if the caller goes away.
        return await asyncio.shield(self._complete(request, ticket_type, quote, payment))

    def _validate_input(self, request: PurchaseRequest) -> tuple[TicketType, PaymentNetwork]:
        if request.ticket_type_id is None:
            raise InvalidPurchaseError(FailureReason.INVALID_TICKET_TYPE, "No ticket type selected")
        ticket_type = request.event.ticket_type(request.ticket_type_id)
        if ticket_type is None:
            raise InvalidPurchaseError(
                FailureReason.INVALID_TICKET_TYPE,
                f"Ticket type {request.ticket_type_id} is not offered for event {request.event.id}",
            )
        if not ticket_type.is_available:
            raise InvalidPurchaseError(
                FailureReason.TICKET_TYPE_UNAVAILABLE, f"Ticket type {ticket_type.name} is sold out"
            )

        quantity = request.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidPurchaseError(FailureReason.INVALID_QUANTITY, "Please select at least 1 ticket")
        if ticket_type.max_per_order is not None and quantity > ticket_type.max_per_order:
            raise InvalidPurchaseError(
                FailureReason.INVALID_QUANTITY,
                f"At most {ticket_type.max_per_order} tickets of this type per order",
            )

        network, valid = resolve_network(request.phone_number, request.payment_network)
        if not valid:
            raise InvalidPurchaseError(
                FailureReason.INVALID_PHONE,
                f"Phone number is not a valid {network.value.upper()} mobile money number",
            )

        self._transition(PurchaseState.INPUT_VALIDATED)
        return ticket_type, network

    async def _authorize_payment(
        self, request: PurchaseRequest, ticket_type: TicketType, network: PaymentNetwork
    ) -> tuple[PurchaseQuote, PurchasePayment]:
        quote = self.quote(ticket_type.unit_price, request.quantity, network)
        amount = quote.total_charge
        payment = PurchasePayment(
            intent_id="",
            phone_number=request.phone_number.strip(),
            network=network,
            amount=amount,
        )
        self.payment = payment

        try:
            intent = await self._payments.create_intent(amount, request.event.id, request.buyer.id)
            payment.intent_id = intent.id
            method = await self._select_method(network)
            self._raise_if_cancelled()
            self._payment_submitted = True
            result = await self._process_submitted_payment(request, payment, method)
        except PurchaseError:
            payment.status = PaymentStatus.FAILED
            raise
        except Exception as exc:
            payment.status = PaymentStatus.FAILED
            logger.warning(
                "Payment provider error for buyer %s on event %s: %s", request.buyer.id, request.event.id, exc
            )
            raise PaymentDeclinedError(str(exc) or exc.__class__.__name__) from exc

        if not result.success:
            payment.status = PaymentStatus.FAILED
            raise PaymentDeclinedError(result.error or "Payment could not be processed")
        if not result.transaction_id:
            payment.status = PaymentStatus.FAILED
            logger.error("Provider reported success without a transaction id for intent %s", intent.id)
            raise PaymentDeclinedError("Payment provider returned no transaction reference")

        payment.status = PaymentStatus.SUCCEEDED
        payment.transaction_id = result.transaction_id
        self._transition(PurchaseState.PAYMENT_AUTHORIZED)
        logger.info(
            "Payment %s authorized for buyer %s (%d x %s)",
            result.transaction_id,
            request.buyer.id,
            request.quantity,
            ticket_type.id,
        )
        return quote, payment

    def _ensure_issuable(self) -> None:
        try:
            self._id_generator.ensure_available()
        except DigestUnavailableError as exc:
            logger.error("Refusing purchase before payment, ticket ids cannot be generated: %s", exc)
            raise IssuanceUnavailableError(str(exc)) from exc

    async def _process_submitted_payment(
        self, request: PurchaseRequest, payment: PurchasePayment, method: PaymentMethod
    ) -> PaymentResult:
        """Run the charge to completion even if the caller abandons the purchase.

        A caller cancelled while the provider is processing leaves the charge in
        an unknown state; the intent is escalated for manual reconciliation.
        """

        processing = asyncio.ensure_future(
            self._payments.process_payment(payment.intent_id, method, payment.amount)
        )
        try:
            return await asyncio.shield(processing)
        except asyncio.CancelledError:
            logger.error(
                "Purchase abandoned while payment intent %s was processing: buyer=%s event=%s amount=%d",
                payment.intent_id,
                request.buyer.id,
                request.event.id,
                payment.amount,
            )
            processing.add_done_callback(
                functools.partial(_log_abandoned_payment, payment.intent_id, request.buyer.id)
            )
            await self._flag_for_reconciliation(
                IssuanceFailureCase(
                    transaction_id=payment.transaction_id or "",
                    buyer_id=request.buyer.id,
                    event_id=request.event.id,
                    quantity=request.quantity,
                    amount_charged=payment.amount,
                    intent_id=payment.intent_id,
                    error="purchase cancelled while payment was processing",
                )
            )
            raise

    async def _select_method(self, network: PaymentNetwork) -> PaymentMethod:
        methods = await self._payments.list_methods()
        for method in methods:
            if method.provider.lower() == network.value:
                return method
        raise PaymentDeclinedError(f"No {network.value} payment method is available")

    async def _complete(
        self,
        request: PurchaseRequest,
        ticket_type: TicketType,
        quote: PurchaseQuote,
        payment: PurchasePayment,
    ) -> PurchaseOutcome:
        transaction_id = payment.transaction_id or ""
        tickets = await self._issue_tickets(request, ticket_type, quote, payment)

        warnings: list[str] = []
        record = RevenueRecord(
            event_id=request.event.id,
            gross_amount=quote.breakdown.gross_amount,
            commission_amount=quote.breakdown.commission_amount,
            net_to_venue=quote.breakdown.net_amount,
            ticket_count=len(tickets),
        )
        try:
            await self._store.accumulate_event_revenue(request.event.id, record)
        except Exception as exc:
            logger.warning(
                "Revenue recording failed for event %s (transaction %s); reconcile manually: %s",
                request.event.id,
                transaction_id,
                exc,
            )
            warnings.append(f"revenue_recording_failed: {exc}")
        else:
            self._transition(PurchaseState.REVENUE_RECORDED)

        self._transition(PurchaseState.COMPLETE)
        await self._notify_purchase(request, quote)
        return PurchaseOutcome(
            state=self._state,
            tickets=tickets,
            transaction_id=transaction_id,
            quote=quote,
            warnings=warnings,
        )

    async def _issue_tickets(
        self,
        request: PurchaseRequest,
        ticket_type: TicketType,
        quote: PurchaseQuote,
        payment: PurchasePayment,
    ) -> list[Ticket]:
        event_id = request.event.id
        buyer = request.buyer
        transaction_id = payment.transaction_id or ""
        purchased_at = self._clock()
        persisted: list[Ticket] = []

        try:
            shares = self._calculator.allocate(quote.breakdown, request.quantity, self._allocation)
            for index in range(request.quantity):
                ticket_id = self._id_generator.generate(buyer.id, event_id, purchased_at, index)
                ticket = Ticket(
                    id=ticket_id,
                    event_id=event_id,
                    buyer_id=buyer.id,
                    buyer_name=buyer.name,
                    buyer_phone=buyer.phone or payment.phone_number,
                    ticket_type_id=ticket_type.id,
                    unit_price=ticket_type.unit_price,
                    commission_amount=shares[index],
                    payment_transaction_id=transaction_id,
                    qr_payload=self._codec.encode(ticket_id, event_id, buyer.id, ticket_type.id),
                    purchased_at=purchased_at,
                )
                await self._store.add_ticket(ticket)
                persisted.append(ticket)
        except Exception as exc:
            persisted_ids = [ticket.id for ticket in persisted]
            logger.error(
                "Ticket issuance failed after payment capture: transaction=%s buyer=%s event=%s "
                "persisted=%d/%d error=%s",
                transaction_id,
                buyer.id,
                event_id,
                len(persisted),
                request.quantity,
                exc,
            )
            self._fail(FailureReason.PERSIST_ERROR)
            await self._flag_for_reconciliation(
                IssuanceFailureCase(
                    transaction_id=transaction_id,
                    buyer_id=buyer.id,
                    event_id=event_id,
                    quantity=request.quantity,
                    amount_charged=payment.amount,
                    persisted_ticket_ids=tuple(persisted_ids),
                    error=str(exc),
                )
            )
            raise TicketIssuanceError(
                f"Payment {transaction_id} was captured but tickets could not be issued",
                transaction_id=transaction_id,
                buyer_id=buyer.id,
                event_id=event_id,
                persisted_ticket_ids=persisted_ids,
            ) from exc

        self._transition(PurchaseState.TICKETS_ISSUED)
        return persisted

    async def _flag_for_reconciliation(self, case: IssuanceFailureCase) -> None:
        if self._reconciliation is None:
            return
        try:
            await self._reconciliation.flag_issuance_failure(case)
        except Exception:
            logger.exception(
                "Could not flag transaction %s for reconciliation", case.transaction_id or case.intent_id
            )

    async def _notify_purchase(self, request: PurchaseRequest, quote: PurchaseQuote) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.ticket_purchased(
                event_id=request.event.id,
                buyer_name=request.buyer.name,
                quantity=request.quantity,
                net_revenue=quote.breakdown.net_amount,
            )
        except Exception:
            logger.exception("Purchase notification failed for event %s", request.event.id)

    def _raise_if_cancelled(self) -> None:
        if self._cancel_requested:
            raise PurchaseCancelledError()

    def _transition(self, new_state: PurchaseState) -> None:
        PurchaseStateMachine.assert_transition(self._state, new_state)
        logger.debug("Purchase state %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _fail(self, reason: FailureReason) -> None:
        if PurchaseStateMachine.is_terminal(self._state):
            return
        self._transition(PurchaseState.FAILED)
        self._failure_reason = reason
