from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import EventRevenueTable, TicketScanTable, TicketTable
from packages.ticketing.models import ClaimResult, RevenueRecord, ScanRecord, Ticket

logger = logging.getLogger(__name__)


class SqlTicketStore:
    """Ticket, revenue and scan persistence on top of SQLAlchemy async sessions.

    The single-use claim is one conditional ``UPDATE``, so concurrent scans
    of the same ticket are arbitrated by the database.
    """

    atomic_claims = True

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def add_ticket(self, ticket: Ticket) -> str:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketTable(
                        id=ticket.id,
                        event_id=ticket.event_id,
                        buyer_id=ticket.buyer_id,
                        buyer_name=ticket.buyer_name,
                        buyer_phone=ticket.buyer_phone,
                        ticket_type_id=ticket.ticket_type_id,
                        unit_price=ticket.unit_price,
                        commission_amount=ticket.commission_amount,
                        payment_transaction_id=ticket.payment_transaction_id,
                        qr_payload=ticket.qr_payload,
                        purchased_at=ticket.purchased_at,
                        is_used=ticket.is_used,
                        used_at=ticket.used_at,
                    )
                )
        return ticket.id

    async def claim_ticket_use(self, ticket_id: str, used_at: datetime) -> ClaimResult:
        statement = (
            update(TicketTable)
            .where(TicketTable.id == ticket_id, TicketTable.is_used.is_(False))
            .values(is_used=True, used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(statement)
                if result.rowcount == 1:
                    return ClaimResult(claimed=True)
                row = await session.get(TicketTable, ticket_id)

        if row is None:
            return ClaimResult(claimed=False, exists=False)
        return ClaimResult(claimed=False, prior_used_at=_ensure_optional_datetime(row.used_at))

    async def accumulate_event_revenue(self, event_id: str, record: RevenueRecord) -> None:
        # Two first purchases for an event can race on the insert; the loser retries as an update.
        for attempt in range(2):
            try:
                await self._accumulate_once(event_id, record)
                return
            except IntegrityError:
                if attempt:
                    raise
                logger.debug("Revenue row for event %s created concurrently; retrying", event_id)

    async def _accumulate_once(self, event_id: str, record: RevenueRecord) -> None:
        now = datetime.now(timezone.utc)
        statement = (
            update(EventRevenueTable)
            .where(EventRevenueTable.event_id == event_id)
            .values(
                gross_amount=EventRevenueTable.gross_amount + record.gross_amount,
                commission_amount=EventRevenueTable.commission_amount + record.commission_amount,
                net_to_venue=EventRevenueTable.net_to_venue + record.net_to_venue,
                ticket_count=EventRevenueTable.ticket_count + record.ticket_count,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(statement)
                if result.rowcount == 0:
                    session.add(
                        EventRevenueTable(
                            event_id=event_id,
                            gross_amount=record.gross_amount,
                            commission_amount=record.commission_amount,
                            net_to_venue=record.net_to_venue,
                            ticket_count=record.ticket_count,
                            updated_at=now,
                        )
                    )

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
        return self._table_to_ticket(row) if row is not None else None

    async def list_buyer_tickets(self, buyer_id: str) -> Sequence[Ticket]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketTable)
                .where(TicketTable.buyer_id == buyer_id)
                .order_by(TicketTable.purchased_at.desc(), TicketTable.id.asc())
            )
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def list_event_tickets(self, event_id: str) -> Sequence[Ticket]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketTable)
                .where(TicketTable.event_id == event_id)
                .order_by(TicketTable.purchased_at.asc(), TicketTable.id.asc())
            )
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def get_event_revenue(self, event_id: str) -> RevenueRecord | None:
        async with self._session_factory() as session:
            row = await session.get(EventRevenueTable, event_id)
        if row is None:
            return None
        return RevenueRecord(
            event_id=row.event_id,
            gross_amount=row.gross_amount,
            commission_amount=row.commission_amount,
            net_to_venue=row.net_to_venue,
            ticket_count=row.ticket_count,
        )

    async def record_scan(self, record: ScanRecord) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketScanTable(
                        ticket_id=record.ticket_id,
                        event_id=record.event_id,
                        gate=record.gate,
                        validator_id=record.validator_id,
                        admitted=record.admitted,
                        reason=record.reason,
                        scanned_at=record.scanned_at,
                    )
                )

    async def list_scans(self, event_id: str, *, ticket_id: str | None = None) -> Sequence[ScanRecord]:
        statement = select(TicketScanTable).where(TicketScanTable.event_id == event_id)
        if ticket_id is not None:
            statement = statement.where(TicketScanTable.ticket_id == ticket_id)
        async with self._session_factory() as session:
            result = await session.execute(statement.order_by(TicketScanTable.scanned_at.asc()))
            return [
                ScanRecord(
                    ticket_id=row.ticket_id,
                    event_id=row.event_id,
                    gate=row.gate,
                    validator_id=row.validator_id,
                    admitted=row.admitted,
                    reason=row.reason,
                    scanned_at=_ensure_datetime(row.scanned_at),
                )
                for row in result.scalars().all()
            ]

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            event_id=row.event_id,
            buyer_id=row.buyer_id,
            buyer_name=row.buyer_name,
            buyer_phone=row.buyer_phone,
            ticket_type_id=row.ticket_type_id,
            unit_price=row.unit_price,
            commission_amount=row.commission_amount,
            payment_transaction_id=row.payment_transaction_id,
            qr_payload=row.qr_payload,
            purchased_at=_ensure_datetime(row.purchased_at),
            is_used=row.is_used,
            used_at=_ensure_optional_datetime(row.used_at),
        )


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _ensure_optional_datetime(value: datetime | None) -> datetime | None:
    return None if value is None else _ensure_datetime(value)
