from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from apps.api.dependencies.ticketing import AdminUser, TicketingServiceDep
from packages.ticketing.errors import EventNotFoundError

router = APIRouter(prefix="/events/{event_id}/revenue", tags=["revenue"])


class RevenueModel(BaseModel):
    event_id: str
    gross_amount: int
    commission_amount: int
    net_to_venue: int
    ticket_count: int


@router.get("", response_model=RevenueModel, summary="Accumulated revenue for an event")
async def get_event_revenue(event_id: str, service: TicketingServiceDep, user: AdminUser) -> RevenueModel:
    try:
        record = await service.get_revenue(event_id)
    except EventNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return RevenueModel(
        event_id=record.event_id,
        gross_amount=record.gross_amount,
        commission_amount=record.commission_amount,
        net_to_venue=record.net_to_venue,
        ticket_count=record.ticket_count,
    )
