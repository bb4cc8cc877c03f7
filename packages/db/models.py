"""SQLModel table definitions for the Gatepass data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    return str(uuid.uuid4())


class EventTable(SQLModel, table=True):
    """Events published by venues; read-only to the ticketing core."""

    __tablename__ = "events"

    id: str = Field(primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    location: str = Field(sa_column=Column(String(255), nullable=False))
    starts_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    venue_id: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTypeTable(SQLModel, table=True):
    """Priced ticket offers attached to an event."""

    __tablename__ = "ticket_types"

    id: str = Field(primary_key=True, index=True)
    event_id: str = Field(
        sa_column=Column(String(64), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    name: str = Field(sa_column=Column(String(120), nullable=False))
    unit_price: int = Field(sa_column=Column(BigInteger, nullable=False))
    is_available: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    max_per_order: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    position: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))


class TicketTable(SQLModel, table=True):
    """Issued tickets. ``is_used`` only ever flips from false to true."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    event_id: str = Field(
        sa_column=Column(String(64), ForeignKey("events.id"), nullable=False, index=True)
    )
    buyer_id: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    buyer_name: str = Field(sa_column=Column(String(255), nullable=False))
    buyer_phone: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    ticket_type_id: str = Field(sa_column=Column(String(64), nullable=False))
    unit_price: int = Field(sa_column=Column(BigInteger, nullable=False))
    commission_amount: int = Field(sa_column=Column(BigInteger, nullable=False))
    payment_transaction_id: str = Field(sa_column=Column(String(128), nullable=False, index=True))
    qr_payload: str = Field(sa_column=Column(Text, nullable=False))
    purchased_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    is_used: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    used_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class EventRevenueTable(SQLModel, table=True):
    """Running revenue totals per event."""

    __tablename__ = "event_revenue"

    event_id: str = Field(primary_key=True)
    gross_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    commission_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    net_to_venue: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    ticket_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketScanTable(SQLModel, table=True):
    """Gate scan history, admitted and denied alike."""

    __tablename__ = "ticket_scans"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str | None = Field(default=None, sa_column=Column(String(128), nullable=True, index=True))
    event_id: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    gate: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    validator_id: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    admitted: bool = Field(sa_column=Column(Boolean, nullable=False))
    reason: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    scanned_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
