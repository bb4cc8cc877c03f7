from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from apps.api.dependencies.ticketing import AdminUser, DoorStaffUser, TicketingServiceDep
from packages.ticketing.errors import EventNotFoundError
from packages.ticketing.models import ScanRecord
from packages.ticketing.validation import ScanDecision

router = APIRouter(prefix="/events/{event_id}/scans", tags=["scans"])


class ScanRequest(BaseModel):
    payload: str
    gate: str | None = None


class BatchScanRequest(BaseModel):
    payloads: list[str] = Field(min_length=1, max_length=500)
    gate: str | None = None


class ScanDecisionModel(BaseModel):
    admitted: bool
    reason: str | None = None
    ticket_id: str | None = None
    used_at: str | None = None
    message: str

    @classmethod
    def from_decision(cls, decision: ScanDecision) -> "ScanDecisionModel":
        return cls(
            admitted=decision.admitted,
            reason=decision.reason.value if decision.reason else None,
            ticket_id=decision.ticket_id,
            used_at=decision.used_at.isoformat() if decision.used_at else None,
            message=decision.display_message(),
        )


class ScanRecordModel(BaseModel):
    ticket_id: str | None = None
    gate: str | None = None
    validator_id: str | None = None
    admitted: bool
    reason: str | None = None
    scanned_at: str

    @classmethod
    def from_record(cls, record: ScanRecord) -> "ScanRecordModel":
        return cls(
            ticket_id=record.ticket_id,
            gate=record.gate,
            validator_id=record.validator_id,
            admitted=record.admitted,
            reason=record.reason,
            scanned_at=record.scanned_at.isoformat(),
        )


@router.post("", response_model=ScanDecisionModel, summary="Admit or deny one scanned ticket")
async def scan_ticket(
    event_id: str, payload: ScanRequest, service: TicketingServiceDep, user: DoorStaffUser
) -> ScanDecisionModel:
    decision = await service.validate(event_id, payload.payload, gate=payload.gate, validator_id=user.username)
    return ScanDecisionModel.from_decision(decision)


@router.post("/batch", response_model=list[ScanDecisionModel])
async def scan_batch(
    event_id: str, payload: BatchScanRequest, service: TicketingServiceDep, user: DoorStaffUser
) -> list[ScanDecisionModel]:
    decisions = await service.validate_batch(
        event_id, payload.payloads, gate=payload.gate, validator_id=user.username
    )
    return [ScanDecisionModel.from_decision(decision) for decision in decisions]


@router.get("", response_model=list[ScanRecordModel], summary="Scan history for an event, oldest first")
async def list_scans(
    event_id: str, service: TicketingServiceDep, user: AdminUser, ticket_id: str | None = None
) -> list[ScanRecordModel]:
    try:
        records = await service.list_scans(event_id, ticket_id=ticket_id)
    except EventNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [ScanRecordModel.from_record(record) for record in records]
