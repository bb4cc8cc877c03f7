from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, Sequence

from .errors import PayloadDecodeError
from .models import ClaimResult, ScanRecord
from .ports import ScanLog, TicketNotifier, TicketStore
from .qr_codec import QRPayloadCodec

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DenyReason(str, Enum):
    MALFORMED = "malformed"
    WRONG_EVENT = "wrong_event"
    ALREADY_USED = "already_used"
    UNKNOWN_TICKET = "unknown_ticket"


@dataclass(frozen=True, slots=True)
class ScanDecision:
    """Admit or deny verdict for one gate scan.

    ``used_at`` is the admission time for an admitted ticket and the original
    admission time when the ticket was already used.
    """

    admitted: bool
    reason: DenyReason | None = None
    ticket_id: str | None = None
    used_at: datetime | None = None
    detail: str | None = None

    @classmethod
    def admit(cls, ticket_id: str, used_at: datetime) -> "ScanDecision":
        return cls(admitted=True, ticket_id=ticket_id, used_at=used_at)

    @classmethod
    def deny(
        cls,
        reason: DenyReason,
        *,
        ticket_id: str | None = None,
        used_at: datetime | None = None,
        detail: str | None = None,
    ) -> "ScanDecision":
        return cls(admitted=False, reason=reason, ticket_id=ticket_id, used_at=used_at, detail=detail)

    def display_message(self, tz: tzinfo | None = None) -> str:
        """Short text door staff see on the scanner."""

        if self.admitted:
            return "Entry granted"
        if self.reason is DenyReason.ALREADY_USED:
            if self.used_at is None:
                return "Already scanned"
            return f"Already scanned at {self.used_at.astimezone(tz):%H:%M}"
        if self.reason is DenyReason.WRONG_EVENT:
            return "Ticket is for a different event"
        if self.reason is DenyReason.UNKNOWN_TICKET:
            return "Ticket not found"
        return "Invalid ticket code"


class ValidationEngine:
    """Turn a scanned payload into an admit/deny decision.

    Admission hinges on the store's single-use claim. Stores that do not
    advertise ``atomic_claims`` get their claims serialized per ticket id here.
    """

    def __init__(
        self,
        codec: QRPayloadCodec,
        store: TicketStore,
        *,
        scan_log: ScanLog | None = None,
        notifier: TicketNotifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._codec = codec
        self._store = store
        self._scan_log = scan_log
        self._notifier = notifier
        self._clock = clock
        self._claim_locks: dict[str, asyncio.Lock] = {}
        self._claim_waiters: dict[str, int] = {}

    async def validate(
        self,
        scanned_payload: str,
        expected_event_id: str,
        *,
        gate: str | None = None,
        validator_id: str | None = None,
    ) -> ScanDecision:
        decision = await self._decide(scanned_payload, expected_event_id)
        if decision.admitted:
            logger.info("Admitted ticket %s at gate %s", decision.ticket_id, gate or "-")
        else:
            logger.info(
                "Denied scan at gate %s: %s (ticket %s)",
                gate or "-",
                decision.reason.value if decision.reason else "unknown",
                decision.ticket_id or "-",
            )
        await self._record(decision, expected_event_id, gate=gate, validator_id=validator_id)
        return decision

    async def validate_batch(
        self,
        scanned_payloads: Sequence[str],
        expected_event_id: str,
        *,
        gate: str | None = None,
        validator_id: str | None = None,
    ) -> list[ScanDecision]:
        """Validate several payloads concurrently; results keep input order."""

        decisions = await asyncio.gather(
            *(
                self.validate(payload, expected_event_id, gate=gate, validator_id=validator_id)
                for payload in scanned_payloads
            )
        )
        return list(decisions)

    async def _decide(self, scanned_payload: str, expected_event_id: str) -> ScanDecision:
        try:
            claims = self._codec.decode(scanned_payload)
        except PayloadDecodeError as exc:
            return ScanDecision.deny(DenyReason.MALFORMED, detail=exc.failure.value)

        if claims.event_id != expected_event_id:
            return ScanDecision.deny(DenyReason.WRONG_EVENT, ticket_id=claims.ticket_id)

        used_at = self._clock()
        result = await self._claim(claims.ticket_id, used_at)
        if result.claimed:
            return ScanDecision.admit(claims.ticket_id, used_at)
        if not result.exists:
            return ScanDecision.deny(DenyReason.UNKNOWN_TICKET, ticket_id=claims.ticket_id)
        return ScanDecision.deny(
            DenyReason.ALREADY_USED, ticket_id=claims.ticket_id, used_at=result.prior_used_at
        )

    async def _claim(self, ticket_id: str, used_at: datetime) -> ClaimResult:
        if getattr(self._store, "atomic_claims", False):
            return await self._store.claim_ticket_use(ticket_id, used_at)

        # A ticket's lock lives only while some scan of it is in flight.
        lock = self._claim_locks.setdefault(ticket_id, asyncio.Lock())
        self._claim_waiters[ticket_id] = self._claim_waiters.get(ticket_id, 0) + 1
        try:
            async with lock:
                return await self._store.claim_ticket_use(ticket_id, used_at)
        finally:
            self._claim_waiters[ticket_id] -= 1
            if not self._claim_waiters[ticket_id]:
                del self._claim_waiters[ticket_id]
                del self._claim_locks[ticket_id]

    async def _record(
        self,
        decision: ScanDecision,
        event_id: str,
        *,
        gate: str | None,
        validator_id: str | None,
    ) -> None:
        reason = decision.reason.value if decision.reason else None
        if self._scan_log is not None:
            record = ScanRecord(
                ticket_id=decision.ticket_id,
                event_id=event_id,
                gate=gate,
                validator_id=validator_id,
                admitted=decision.admitted,
                reason=reason,
                scanned_at=self._clock(),
            )
            try:
                await self._scan_log.record_scan(record)
            except Exception:
                logger.exception("Could not record scan history for ticket %s", decision.ticket_id)

        if self._notifier is not None:
            try:
                await self._notifier.ticket_validated(
                    ticket_id=decision.ticket_id,
                    event_id=event_id,
                    admitted=decision.admitted,
                    reason=reason,
                )
            except Exception:
                logger.exception("Validation notification failed for ticket %s", decision.ticket_id)
