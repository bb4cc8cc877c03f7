from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from packages.ticketing.memory import InMemoryTicketStore
from packages.ticketing.models import ClaimResult, Ticket
from packages.ticketing.validation import DenyReason, ScanDecision, ValidationEngine

EVENT_ID = "evt_kampala_live"
FIRST_SCAN = datetime(2024, 6, 15, 19, 42, tzinfo=timezone.utc)


class SteppingClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class SlowCheckThenWriteStore(InMemoryTicketStore):
    """Reads, suspends, then writes: unsafe without the engine's per-ticket lock."""

    async def claim_ticket_use(self, ticket_id, used_at):
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            return ClaimResult(claimed=False, exists=False)
        was_used = ticket.is_used
        await asyncio.sleep(0)
        if was_used:
            return ClaimResult(claimed=False, prior_used_at=ticket.used_at)
        ticket.is_used = True
        ticket.used_at = used_at
        return ClaimResult(claimed=True)


def _ticket(codec, ticket_id: str = "VIBE_1717266600000_ABCDEF12", event_id: str = EVENT_ID) -> Ticket:
    return Ticket(
        id=ticket_id,
        event_id=event_id,
        buyer_id="buyer-1",
        buyer_name="Amina N.",
        buyer_phone="0771234567",
        ticket_type_id="regular",
        unit_price=10000,
        commission_amount=500,
        payment_transaction_id="txn_1",
        qr_payload=codec.encode(ticket_id, event_id, "buyer-1", "regular"),
        purchased_at=datetime(2024, 6, 1, 18, 30, tzinfo=timezone.utc),
    )


@pytest.mark.asyncio
async def test_first_scan_admits_and_second_scan_reports_original_time(codec, store):
    ticket = _ticket(codec)
    await store.add_ticket(ticket)
    clock = SteppingClock(FIRST_SCAN)
    engine = ValidationEngine(codec, store, scan_log=store, clock=clock)

    first = await engine.validate(ticket.qr_payload, EVENT_ID, gate="A")
    clock.now = FIRST_SCAN + timedelta(minutes=25)
    second = await engine.validate(ticket.qr_payload, EVENT_ID, gate="B")

    assert first == ScanDecision.admit(ticket.id, FIRST_SCAN)
    assert first.display_message() == "Entry granted"
    assert not second.admitted
    assert second.reason is DenyReason.ALREADY_USED
    assert second.used_at == FIRST_SCAN
    assert second.display_message(timezone.utc) == "Already scanned at 19:42"

    stored = await store.get_ticket(ticket.id)
    assert stored.is_used and stored.used_at == FIRST_SCAN
    assert [(scan.gate, scan.admitted, scan.reason) for scan in store.scans] == [
        ("A", True, None),
        ("B", False, "already_used"),
    ]


@pytest.mark.asyncio
async def test_wrong_event_is_denied_without_consuming_ticket(codec, store):
    ticket = _ticket(codec, event_id="evt_other")
    await store.add_ticket(ticket)
    engine = ValidationEngine(codec, store)

    decision = await engine.validate(ticket.qr_payload, EVENT_ID)

    assert decision.reason is DenyReason.WRONG_EVENT
    assert decision.ticket_id == ticket.id
    assert not (await store.get_ticket(ticket.id)).is_used


@pytest.mark.asyncio
async def test_malformed_and_forged_payloads_are_denied(codec, store):
    ticket = _ticket(codec)
    await store.add_ticket(ticket)
    engine = ValidationEngine(codec, store)
    forged = ticket.qr_payload[:-3] + ("AAA" if not ticket.qr_payload.endswith("AAA") else "BBB")

    garbage = await engine.validate("hello world", EVENT_ID)
    tampered = await engine.validate(forged, EVENT_ID)

    assert garbage.reason is DenyReason.MALFORMED
    assert garbage.detail == "malformed"
    assert tampered.reason is DenyReason.MALFORMED
    assert tampered.detail == "tag_mismatch"
    assert garbage.display_message() == "Invalid ticket code"
    assert not (await store.get_ticket(ticket.id)).is_used


@pytest.mark.asyncio
async def test_validly_signed_but_unknown_ticket(codec, store):
    payload = codec.encode("VIBE_0_DEADBEEF", EVENT_ID, "buyer-9", "regular")
    engine = ValidationEngine(codec, store)

    decision = await engine.validate(payload, EVENT_ID)

    assert decision.reason is DenyReason.UNKNOWN_TICKET
    assert decision.display_message() == "Ticket not found"


@pytest.mark.asyncio
async def test_concurrent_scans_admit_exactly_once(codec):
    store = SlowCheckThenWriteStore()
    ticket = _ticket(codec)
    await store.add_ticket(ticket)
    engine = ValidationEngine(codec, store)

    decisions = await asyncio.gather(
        *(engine.validate(ticket.qr_payload, EVENT_ID, gate=f"G{index}") for index in range(10))
    )

    assert sum(decision.admitted for decision in decisions) == 1
    assert all(
        decision.reason is DenyReason.ALREADY_USED for decision in decisions if not decision.admitted
    )
    assert all(decision.used_at is not None for decision in decisions if not decision.admitted)


@pytest.mark.asyncio
async def test_claim_locks_are_released_after_scans(codec, store):
    tickets = [_ticket(codec, f"VIBE_1_{index:08X}") for index in range(5)]
    for ticket in tickets:
        await store.add_ticket(ticket)
    engine = ValidationEngine(codec, store)

    decisions = await asyncio.gather(
        *(engine.validate(ticket.qr_payload, EVENT_ID) for ticket in tickets for _ in range(3))
    )

    assert sum(decision.admitted for decision in decisions) == 5
    assert engine._claim_locks == {}
    assert engine._claim_waiters == {}

@pytest.mark.asyncio
async def test_atomic_store_claims_are_not_locked(codec):
    store = AsyncMock()
    store.atomic_claims = True
    store.claim_ticket_use.return_value = ClaimResult(claimed=True)
    engine = ValidationEngine(codec, store)

    decision = await engine.validate(codec.encode("T1", EVENT_ID, "B1", "regular"), EVENT_ID)

    assert decision.admitted
    store.claim_ticket_use.assert_awaited_once()


@pytest.mark.asyncio
async def test_batch_keeps_input_order(codec, store):
    first = _ticket(codec, "VIBE_1_AAAAAAAA")
    second = _ticket(codec, "VIBE_1_BBBBBBBB")
    for ticket in (first, second):
        await store.add_ticket(ticket)
    engine = ValidationEngine(codec, store)

    decisions = await engine.validate_batch(
        [second.qr_payload, "junk", first.qr_payload, second.qr_payload], EVENT_ID
    )

    assert [decision.ticket_id for decision in decisions] == [second.id, None, first.id, second.id]
    assert [decision.admitted for decision in decisions] == [True, False, True, False]
    assert decisions[3].reason is DenyReason.ALREADY_USED


@pytest.mark.asyncio
async def test_scan_log_and_notifier_failures_do_not_change_decision(codec, store):
    ticket = _ticket(codec)
    await store.add_ticket(ticket)
    scan_log = AsyncMock()
    scan_log.record_scan.side_effect = ConnectionError("history unavailable")
    notifier = AsyncMock()
    notifier.ticket_validated.side_effect = RuntimeError("push down")
    engine = ValidationEngine(codec, store, scan_log=scan_log, notifier=notifier)

    decision = await engine.validate(ticket.qr_payload, EVENT_ID)

    assert decision.admitted
    notifier.ticket_validated.assert_awaited_once_with(
        ticket_id=ticket.id, event_id=EVENT_ID, admitted=True, reason=None
    )


def test_already_used_message_without_time():
    decision = ScanDecision.deny(DenyReason.ALREADY_USED, ticket_id="T1")
    assert decision.display_message() == "Already scanned"


def test_wrong_event_message():
    decision = replace(ScanDecision.deny(DenyReason.WRONG_EVENT), ticket_id="T1")
    assert decision.display_message() == "Ticket is for a different event"
