from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from apps.api.dependencies.ticketing import BuyerUser, TicketingServiceDep
from apps.api.routes.tickets import TicketModel
from packages.ticketing.commission import PurchaseQuote
from packages.ticketing.errors import (
    EventNotFoundError,
    InvalidPurchaseError,
    IssuanceUnavailableError,
    PaymentDeclinedError,
    PurchaseCancelledError,
    TicketIssuanceError,
)
from packages.ticketing.models import Buyer, PaymentNetwork

router = APIRouter(prefix="/events/{event_id}", tags=["purchases"])


class QuoteRequest(BaseModel):
    ticket_type_id: str
    quantity: int = Field(default=1, ge=1)
    phone_number: str | None = None
    payment_network: PaymentNetwork | None = None


class QuoteModel(BaseModel):
    unit_price: int
    quantity: int
    payment_network: PaymentNetwork
    gross_amount: int
    commission_amount: int
    net_to_venue: int
    payment_fee: int
    total_charge: int

    @classmethod
    def from_quote(cls, quote: PurchaseQuote) -> "QuoteModel":
        return cls(
            unit_price=quote.unit_price,
            quantity=quote.quantity,
            payment_network=quote.network,
            gross_amount=quote.breakdown.gross_amount,
            commission_amount=quote.breakdown.commission_amount,
            net_to_venue=quote.breakdown.net_amount,
            payment_fee=quote.payment_fee,
            total_charge=quote.total_charge,
        )


class PurchaseCreateRequest(BaseModel):
    ticket_type_id: str | None = None
    quantity: int = 1
    phone_number: str
    payment_network: PaymentNetwork | None = None
    buyer_name: str | None = None


class PurchaseModel(BaseModel):
    state: str
    transaction_id: str
    quote: QuoteModel
    tickets: list[TicketModel]
    warnings: list[str] = Field(default_factory=list)


@router.post("/quote", response_model=QuoteModel, summary="Price breakdown before paying")
async def quote_purchase(
    event_id: str, payload: QuoteRequest, service: TicketingServiceDep, user: BuyerUser
) -> QuoteModel:
    try:
        quote = await service.quote(
            event_id,
            ticket_type_id=payload.ticket_type_id,
            quantity=payload.quantity,
            phone_number=payload.phone_number,
            payment_network=payload.payment_network,
        )
    except EventNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidPurchaseError as exc:
        raise HTTPException(
            status_code=422, detail={"reason": exc.reason.value, "message": str(exc)}
        ) from exc
    return QuoteModel.from_quote(quote)


@router.post("/purchases", response_model=PurchaseModel, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    event_id: str, payload: PurchaseCreateRequest, service: TicketingServiceDep, user: BuyerUser
) -> PurchaseModel:
    buyer = Buyer(
        id=user.username,
        name=payload.buyer_name or user.display_name,
        phone=user.phone,
    )
    try:
        outcome = await service.purchase(
            event_id,
            ticket_type_id=payload.ticket_type_id,
            quantity=payload.quantity,
            buyer=buyer,
            phone_number=payload.phone_number,
            payment_network=payload.payment_network,
        )
    except EventNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidPurchaseError as exc:
        raise HTTPException(
            status_code=422, detail={"reason": exc.reason.value, "message": str(exc)}
        ) from exc
    except PaymentDeclinedError as exc:
        raise HTTPException(
            status_code=402, detail={"reason": exc.reason.value, "message": exc.provider_message}
        ) from exc
    except PurchaseCancelledError as exc:
        raise HTTPException(status_code=409, detail={"reason": exc.reason.value, "message": str(exc)}) from exc
    except IssuanceUnavailableError as exc:
        raise HTTPException(
            status_code=503,
            detail={"reason": exc.reason.value, "message": "Ticket issuance is unavailable; you have not been charged"},
        ) from exc
    except TicketIssuanceError as exc:
        raise HTTPException(
            status_code=500,
            detail={
                "reason": exc.reason.value,
                "message": "Payment was received but tickets could not be issued; contact support",
                "transaction_id": exc.transaction_id,
            },
        ) from exc

    return PurchaseModel(
        state=outcome.state.value,
        transaction_id=outcome.transaction_id,
        quote=QuoteModel.from_quote(outcome.quote),
        tickets=[TicketModel.from_entity(ticket) for ticket in outcome.tickets],
        warnings=list(outcome.warnings),
    )
