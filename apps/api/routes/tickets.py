from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from apps.api.dependencies.ticketing import AdminUser, BuyerUser, TicketingServiceDep
from packages.ticketing.errors import EventNotFoundError, TicketNotFoundError
from packages.ticketing.models import Ticket

router = APIRouter(tags=["tickets"])


class TicketModel(BaseModel):
    id: str
    event_id: str
    ticket_type_id: str
    buyer_id: str
    buyer_name: str
    unit_price: int
    commission_amount: int
    net_amount: int
    payment_transaction_id: str
    qr_payload: str
    purchased_at: str
    is_used: bool
    used_at: str | None = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketModel":
        return cls(
            id=ticket.id,
            event_id=ticket.event_id,
            ticket_type_id=ticket.ticket_type_id,
            buyer_id=ticket.buyer_id,
            buyer_name=ticket.buyer_name,
            unit_price=ticket.unit_price,
            commission_amount=ticket.commission_amount,
            net_amount=ticket.net_amount,
            payment_transaction_id=ticket.payment_transaction_id,
            qr_payload=ticket.qr_payload,
            purchased_at=ticket.purchased_at.isoformat(),
            is_used=ticket.is_used,
            used_at=ticket.used_at.isoformat() if ticket.used_at else None,
        )


@router.get("/buyers/me/tickets", response_model=list[TicketModel], summary="Tickets bought by the caller")
async def list_my_tickets(service: TicketingServiceDep, user: BuyerUser) -> list[TicketModel]:
    tickets = await service.list_buyer_tickets(user.username)
    return [TicketModel.from_entity(ticket) for ticket in tickets]


@router.get("/events/{event_id}/tickets", response_model=list[TicketModel], summary="Every ticket sold for an event")
async def list_event_tickets(event_id: str, service: TicketingServiceDep, user: AdminUser) -> list[TicketModel]:
    try:
        tickets = await service.list_event_tickets(event_id)
    except EventNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [TicketModel.from_entity(ticket) for ticket in tickets]


@router.get("/tickets/{ticket_id}", response_model=TicketModel)
async def get_ticket(ticket_id: str, service: TicketingServiceDep, user: BuyerUser) -> TicketModel:
    try:
        ticket = await service.get_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    # Other buyers' tickets are reported as missing, not forbidden.
    if ticket.buyer_id != user.username:
        raise HTTPException(status_code=404, detail=f"Ticket {ticket_id} not found")
    return TicketModel.from_entity(ticket)
