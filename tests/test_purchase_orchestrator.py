from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from packages.ticketing.commission import CommissionAllocation, PaymentFeeSchedule
from packages.ticketing.errors import (
    DigestUnavailableError,
    FailureReason,
    InvalidPurchaseError,
    IssuanceUnavailableError,
    PaymentDeclinedError,
    PurchaseCancelledError,
    TicketIssuanceError,
)
from packages.ticketing.memory import InMemoryTicketStore, SandboxPaymentGateway
from packages.ticketing.models import PaymentIntent, PaymentMethod, PaymentNetwork, PaymentResult, PaymentStatus
from packages.ticketing.state import PurchaseState
from packages.ticketing.ticket_ids import TicketIdGenerator


class FailingAfterStore(InMemoryTicketStore):
    """Persists ``fail_after`` tickets, then refuses the next one."""

    def __init__(self, fail_after: int) -> None:
        super().__init__()
        self._fail_after = fail_after

    async def add_ticket(self, ticket):
        if len(self.tickets) >= self._fail_after:
            raise ConnectionError("database unavailable")
        return await super().add_ticket(ticket)


class RevenueFailingStore(InMemoryTicketStore):
    async def accumulate_event_revenue(self, event_id, record):
        raise ConnectionError("revenue table locked")


async def _until(predicate) -> None:
    while not predicate():
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_happy_path_issues_tickets_and_records_revenue(make_orchestrator, make_request, store, codec):
    notifier = AsyncMock()
    orchestrator = make_orchestrator(notifier=notifier)

    outcome = await orchestrator.run(make_request(quantity=2))

    assert outcome.state is PurchaseState.COMPLETE
    assert orchestrator.state is PurchaseState.COMPLETE
    assert outcome.warnings == []
    assert outcome.transaction_id.startswith("txn_")
    assert outcome.breakdown.gross_amount == 20000
    assert outcome.breakdown.commission_amount == 1000
    assert outcome.breakdown.net_amount == 19000

    ids = [ticket.id for ticket in outcome.tickets]
    assert len(set(ids)) == 2
    assert ids[1] == f"{ids[0]}_2"
    assert set(store.tickets) == set(ids)
    for ticket in outcome.tickets:
        claims = codec.decode(ticket.qr_payload)
        assert claims.ticket_id == ticket.id
        assert claims.event_id == "evt_kampala_live"
        assert ticket.payment_transaction_id == outcome.transaction_id
        assert not ticket.is_used

    revenue = await store.get_event_revenue("evt_kampala_live")
    assert (revenue.gross_amount, revenue.commission_amount, revenue.net_to_venue) == (20000, 1000, 19000)
    assert revenue.ticket_count == 2
    notifier.ticket_purchased.assert_awaited_once_with(
        event_id="evt_kampala_live", buyer_name="Amina N.", quantity=2, net_revenue=19000
    )


@pytest.mark.asyncio
async def test_per_ticket_commission_sums_to_order_commission(make_orchestrator, make_request):
    outcome = await make_orchestrator().run(make_request(ticket_type_id="vip", quantity=3))

    assert [ticket.commission_amount for ticket in outcome.tickets] == [2500, 2500, 2500]
    assert sum(ticket.commission_amount for ticket in outcome.tickets) == outcome.breakdown.commission_amount


@pytest.mark.asyncio
async def test_order_level_commission_lands_on_first_ticket(make_orchestrator, make_request):
    orchestrator = make_orchestrator(allocation=CommissionAllocation.ORDER_LEVEL)

    outcome = await orchestrator.run(make_request(quantity=2))

    assert [ticket.commission_amount for ticket in outcome.tickets] == [1000, 0]


@pytest.mark.asyncio
async def test_revenue_accumulates_across_purchases(make_orchestrator, make_request, store):
    await make_orchestrator().run(make_request(quantity=2))
    await make_orchestrator().run(make_request(quantity=1))

    revenue = await store.get_event_revenue("evt_kampala_live")
    assert revenue.gross_amount == 30000
    assert revenue.commission_amount == 1500
    assert revenue.ticket_count == 3


@pytest.mark.asyncio
async def test_payment_exception_fails_without_tickets_or_revenue(make_orchestrator, make_request, store):
    payments = AsyncMock()
    payments.create_intent.return_value = PaymentIntent(id="pi_1", amount=20000)
    payments.list_methods.return_value = [PaymentMethod(id="m1", provider="mtn")]
    payments.process_payment.side_effect = TimeoutError("provider timed out")
    orchestrator = make_orchestrator(payments=payments)

    with pytest.raises(PaymentDeclinedError) as exc:
        await orchestrator.run(make_request())

    assert exc.value.reason is FailureReason.PAYMENT_DECLINED
    assert orchestrator.state is PurchaseState.FAILED
    assert orchestrator.failure_reason is FailureReason.PAYMENT_DECLINED
    assert orchestrator.payment.status is PaymentStatus.FAILED
    assert store.tickets == {}
    assert await store.get_event_revenue("evt_kampala_live") is None


@pytest.mark.asyncio
async def test_declined_payment_surfaces_provider_message(make_orchestrator, make_request, store):
    orchestrator = make_orchestrator(payments=SandboxPaymentGateway(decline_reason="Insufficient balance"))

    with pytest.raises(PaymentDeclinedError) as exc:
        await orchestrator.run(make_request())

    assert exc.value.provider_message == "Insufficient balance"
    assert store.tickets == {}


@pytest.mark.asyncio
async def test_success_without_transaction_id_is_a_decline(make_orchestrator, make_request, store):
    payments = AsyncMock()
    payments.create_intent.return_value = PaymentIntent(id="pi_1", amount=20000)
    payments.list_methods.return_value = [PaymentMethod(id="m1", provider="MTN")]
    payments.process_payment.return_value = PaymentResult(success=True, transaction_id=None)

    with pytest.raises(PaymentDeclinedError):
        await make_orchestrator(payments=payments).run(make_request())

    assert store.tickets == {}


@pytest.mark.asyncio
async def test_missing_payment_method_is_a_decline(make_orchestrator, make_request):
    payments = AsyncMock()
    payments.create_intent.return_value = PaymentIntent(id="pi_1", amount=10000)
    payments.list_methods.return_value = [PaymentMethod(id="m1", provider="mtn")]

    with pytest.raises(PaymentDeclinedError):
        await make_orchestrator(payments=payments).run(make_request(phone_number="0701234567"))

    payments.process_payment.assert_not_awaited()


@pytest.mark.asyncio
async def test_amount_charged_includes_network_fee(make_orchestrator, make_request):
    payments = SandboxPaymentGateway()
    orchestrator = make_orchestrator(payments=payments, fee_schedule=PaymentFeeSchedule())

    outcome = await orchestrator.run(make_request(quantity=2, phone_number="0701234567"))

    assert outcome.quote.network is PaymentNetwork.AIRTEL
    assert outcome.quote.payment_fee == 800
    assert payments.processed[0][1:] == ("sandbox_airtel", 20800)
    assert outcome.breakdown.gross_amount == 20000


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({"phone_number": "0991234567"}, FailureReason.INVALID_PHONE),
        ({"phone_number": ""}, FailureReason.INVALID_PHONE),
        ({"phone_number": "0701234567", "payment_network": PaymentNetwork.MTN}, FailureReason.INVALID_PHONE),
        ({"ticket_type_id": None}, FailureReason.INVALID_TICKET_TYPE),
        ({"ticket_type_id": "backstage"}, FailureReason.INVALID_TICKET_TYPE),
        ({"ticket_type_id": "early_bird"}, FailureReason.TICKET_TYPE_UNAVAILABLE),
        ({"quantity": 0}, FailureReason.INVALID_QUANTITY),
        ({"ticket_type_id": "vip", "quantity": 5}, FailureReason.INVALID_QUANTITY),
    ],
)
@pytest.mark.asyncio
async def test_invalid_input_fails_before_payment(make_orchestrator, make_request, overrides, reason):
    payments = AsyncMock()
    orchestrator = make_orchestrator(payments=payments)

    with pytest.raises(InvalidPurchaseError) as exc:
        await orchestrator.run(make_request(**overrides))

    assert exc.value.reason is reason
    assert orchestrator.state is PurchaseState.FAILED
    payments.create_intent.assert_not_awaited()
    payments.process_payment.assert_not_awaited()


@pytest.mark.asyncio
async def test_persist_failure_after_payment_is_flagged_for_reconciliation(
    make_orchestrator, make_request, reconciliation, caplog
):
    store = FailingAfterStore(fail_after=1)
    orchestrator = make_orchestrator(store=store)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(TicketIssuanceError) as exc:
            await orchestrator.run(make_request(quantity=3))

    error = exc.value
    assert error.reason is FailureReason.PERSIST_ERROR
    assert error.transaction_id.startswith("txn_")
    assert error.buyer_id == "buyer-1"
    assert len(error.persisted_ticket_ids) == 1
    assert orchestrator.state is PurchaseState.FAILED
    assert orchestrator.failure_reason is FailureReason.PERSIST_ERROR
    assert await store.get_event_revenue("evt_kampala_live") is None

    [case] = reconciliation.cases
    assert case.transaction_id == error.transaction_id
    assert case.quantity == 3
    assert error.transaction_id in caplog.text


@pytest.mark.asyncio
async def test_unavailable_digest_refuses_purchase_before_charging(
    make_orchestrator, make_request, store, payments, reconciliation
):
    generator = TicketIdGenerator()
    generator._algorithm = "withdrawn-digest"
    orchestrator = make_orchestrator(id_generator=generator)

    with pytest.raises(IssuanceUnavailableError) as exc:
        await orchestrator.run(make_request())

    assert exc.value.reason is FailureReason.ISSUANCE_UNAVAILABLE
    assert isinstance(exc.value.__cause__, DigestUnavailableError)
    assert orchestrator.state is PurchaseState.FAILED
    assert orchestrator.failure_reason is FailureReason.ISSUANCE_UNAVAILABLE
    assert payments.processed == []
    assert store.tickets == {}
    assert reconciliation.cases == []


@pytest.mark.asyncio
async def test_revenue_failure_is_a_warning(make_orchestrator, make_request, caplog):
    store = RevenueFailingStore()
    orchestrator = make_orchestrator(store=store)

    with caplog.at_level(logging.WARNING):
        outcome = await orchestrator.run(make_request(quantity=2))

    assert outcome.state is PurchaseState.COMPLETE
    assert len(outcome.tickets) == 2
    assert len(store.tickets) == 2
    assert outcome.warnings and outcome.warnings[0].startswith("revenue_recording_failed")
    assert "Revenue recording failed" in caplog.text


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_purchase(make_orchestrator, make_request):
    notifier = AsyncMock()
    notifier.ticket_purchased.side_effect = RuntimeError("push service down")

    outcome = await make_orchestrator(notifier=notifier).run(make_request())

    assert outcome.state is PurchaseState.COMPLETE


@pytest.mark.asyncio
async def test_cancel_before_run_fails_with_cancelled(make_orchestrator, make_request, payments):
    orchestrator = make_orchestrator()

    assert orchestrator.cancel() is True
    with pytest.raises(PurchaseCancelledError):
        await orchestrator.run(make_request())

    assert orchestrator.failure_reason is FailureReason.CANCELLED
    assert payments.processed == []


@pytest.mark.asyncio
async def test_cancel_while_creating_intent_stops_before_charging(make_orchestrator, make_request, store):
    gate = asyncio.Event()
    payments = AsyncMock()

    async def slow_intent(amount, event_id, buyer_id):
        await gate.wait()
        return PaymentIntent(id="pi_1", amount=amount)

    payments.create_intent.side_effect = slow_intent
    payments.list_methods.return_value = [PaymentMethod(id="m1", provider="mtn")]
    orchestrator = make_orchestrator(payments=payments)

    task = asyncio.create_task(orchestrator.run(make_request()))
    await asyncio.sleep(0)
    assert orchestrator.cancel() is True
    gate.set()

    with pytest.raises(PurchaseCancelledError):
        await task
    payments.process_payment.assert_not_awaited()
    assert store.tickets == {}


@pytest.mark.asyncio
async def test_cancel_refused_once_payment_is_captured(make_orchestrator, make_request):
    orchestrator = make_orchestrator()
    outcome = await orchestrator.run(make_request())

    assert outcome.state is PurchaseState.COMPLETE
    assert orchestrator.cancel() is False


@pytest.mark.asyncio
async def test_caller_cancellation_after_capture_still_issues_tickets(make_orchestrator, make_request):
    release = asyncio.Event()

    class SlowStore(InMemoryTicketStore):
        async def add_ticket(self, ticket):
            await release.wait()
            return await super().add_ticket(ticket)

    store = SlowStore()
    orchestrator = make_orchestrator(store=store)
    task = asyncio.create_task(orchestrator.run(make_request(quantity=2)))
    while orchestrator.state is not PurchaseState.PAYMENT_AUTHORIZED:
        await asyncio.sleep(0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    release.set()
    while orchestrator.state is not PurchaseState.COMPLETE:
        await asyncio.sleep(0)
    assert len(store.tickets) == 2


@pytest.mark.asyncio
async def test_orchestrator_is_single_use(make_orchestrator, make_request):
    orchestrator = make_orchestrator()
    await orchestrator.run(make_request())

    with pytest.raises(RuntimeError):
        await orchestrator.run(make_request())


def test_quote_exposes_breakdown_before_payment(make_orchestrator):
    quote = make_orchestrator(fee_schedule=PaymentFeeSchedule()).quote(10000, 2, PaymentNetwork.MTN)

    assert quote.breakdown.net_amount == 19000
    assert quote.payment_fee == 800
    assert quote.total_charge == 20800


@pytest.mark.asyncio
async def test_caller_cancellation_during_payment_processing_is_escalated(
    make_orchestrator, make_request, store, reconciliation, caplog
):
    started = asyncio.Event()
    release = asyncio.Event()

    class SlowGateway(SandboxPaymentGateway):
        async def process_payment(self, intent_id, method, amount):
            started.set()
            await release.wait()
            return await super().process_payment(intent_id, method, amount)

    payments = SlowGateway()
    orchestrator = make_orchestrator(payments=payments)

    with caplog.at_level(logging.ERROR):
        task = asyncio.create_task(orchestrator.run(make_request()))
        await asyncio.wait_for(started.wait(), timeout=1)
        assert orchestrator.cancel() is False

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        [case] = reconciliation.cases
        assert case.intent_id.startswith("pi_")
        assert case.buyer_id == "buyer-1"
        assert case.event_id == "evt_kampala_live"
        assert case.amount_charged == orchestrator.payment.amount
        assert orchestrator.failure_reason is FailureReason.CANCELLED
        assert case.intent_id in caplog.text

        release.set()
        await asyncio.wait_for(_until(lambda: "without tickets" in caplog.text), timeout=1)

    assert len(payments.processed) == 1
    assert payments.processed[0][0] == case.intent_id
    assert store.tickets == {}
