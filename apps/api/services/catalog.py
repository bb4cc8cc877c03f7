from __future__ import annotations

from datetime import timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import EventTable, TicketTypeTable
from packages.ticketing.models import Event, TicketType


class SqlEventCatalog:
    """Read events and their ticket offers from the ``events`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_event(self, event_id: str) -> Event | None:
        async with self._session_factory() as session:
            event_row = await session.get(EventTable, event_id)
            if event_row is None:
                return None
            result = await session.execute(
                select(TicketTypeTable)
                .where(TicketTypeTable.event_id == event_id)
                .order_by(TicketTypeTable.position.asc(), TicketTypeTable.id.asc())
            )
            type_rows = result.scalars().all()

        starts_at = event_row.starts_at
        if starts_at.tzinfo is None:
            starts_at = starts_at.replace(tzinfo=timezone.utc)
        return Event(
            id=event_row.id,
            name=event_row.name,
            location=event_row.location,
            starts_at=starts_at,
            ticket_types=tuple(
                TicketType(
                    id=row.id,
                    name=row.name,
                    unit_price=row.unit_price,
                    is_available=row.is_available,
                    max_per_order=row.max_per_order,
                )
                for row in type_rows
            ),
        )

    async def save_event(self, event: Event) -> None:
        """Insert or update an event together with its ticket offers.

        Offers are updated in place by id. Offers missing from ``event`` are
        withdrawn (marked unavailable) rather than deleted, since issued
        tickets still reference them.
        """

        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(EventTable, event.id)
                if row is None:
                    session.add(
                        EventTable(
                            id=event.id,
                            name=event.name,
                            location=event.location,
                            starts_at=event.starts_at,
                        )
                    )
                else:
                    row.name = event.name
                    row.location = event.location
                    row.starts_at = event.starts_at
                result = await session.execute(
                    select(TicketTypeTable).where(TicketTypeTable.event_id == event.id)
                )
                existing = {type_row.id: type_row for type_row in result.scalars().all()}
                for position, ticket_type in enumerate(event.ticket_types):
                    type_row = existing.pop(ticket_type.id, None)
                    if type_row is None:
                        session.add(
                            TicketTypeTable(
                                id=ticket_type.id,
                                event_id=event.id,
                                name=ticket_type.name,
                                unit_price=ticket_type.unit_price,
                                is_available=ticket_type.is_available,
                                max_per_order=ticket_type.max_per_order,
                                position=position,
                            )
                        )
                        continue
                    type_row.name = ticket_type.name
                    type_row.unit_price = ticket_type.unit_price
                    type_row.is_available = ticket_type.is_available
                    type_row.max_per_order = ticket_type.max_per_order
                    type_row.position = position
                for position, type_row in enumerate(existing.values(), start=len(event.ticket_types)):
                    type_row.is_available = False
                    type_row.position = position
