from __future__ import annotations

from datetime import datetime, timezone

import pytest

from packages.ticketing.commission import CommissionCalculator, PaymentFeeSchedule
from packages.ticketing.memory import InMemoryTicketStore, LoggingReconciliationSink, SandboxPaymentGateway
from packages.ticketing.models import Buyer, Event, PurchaseRequest, TicketType
from packages.ticketing.purchase import PurchaseOrchestrator
from packages.ticketing.qr_codec import QRPayloadCodec
from packages.ticketing.ticket_ids import TicketIdGenerator

PURCHASED_AT = datetime(2024, 6, 1, 18, 30, tzinfo=timezone.utc)
SIGNING_KEY = "test-signing-key"


@pytest.fixture
def event() -> Event:
    return Event(
        id="evt_kampala_live",
        name="Kampala Live",
        location="Lugogo Arena",
        starts_at=datetime(2024, 6, 15, 19, 0, tzinfo=timezone.utc),
        ticket_types=(
            TicketType(id="regular", name="Regular", unit_price=10000),
            TicketType(id="vip", name="VIP", unit_price=50000, max_per_order=4),
            TicketType(id="early_bird", name="Early Bird", unit_price=7000, is_available=False),
        ),
    )


@pytest.fixture
def buyer() -> Buyer:
    return Buyer(id="buyer-1", name="Amina N.", phone="0771234567")


@pytest.fixture
def codec() -> QRPayloadCodec:
    return QRPayloadCodec(SIGNING_KEY)


@pytest.fixture
def store() -> InMemoryTicketStore:
    return InMemoryTicketStore()


@pytest.fixture
def payments() -> SandboxPaymentGateway:
    return SandboxPaymentGateway()


@pytest.fixture
def reconciliation() -> LoggingReconciliationSink:
    return LoggingReconciliationSink()


@pytest.fixture
def make_orchestrator(codec, store, payments, reconciliation):
    def factory(**overrides) -> PurchaseOrchestrator:
        options = {
            "payments": payments,
            "store": store,
            "id_generator": TicketIdGenerator(),
            "codec": codec,
            "calculator": CommissionCalculator(),
            "fee_schedule": PaymentFeeSchedule(enabled=False),
            "reconciliation": reconciliation,
            "clock": lambda: PURCHASED_AT,
        }
        options.update(overrides)
        return PurchaseOrchestrator(**options)

    return factory


@pytest.fixture
def make_request(event, buyer):
    def factory(**overrides) -> PurchaseRequest:
        options = {
            "event": event,
            "ticket_type_id": "regular",
            "quantity": 2,
            "buyer": buyer,
            "phone_number": "0771234567",
        }
        options.update(overrides)
        return PurchaseRequest(**options)

    return factory
