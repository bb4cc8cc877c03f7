"""Database models and utilities."""

from .models import EventRevenueTable, EventTable, TicketScanTable, TicketTable, TicketTypeTable

__all__ = [
    "EventRevenueTable",
    "EventTable",
    "TicketScanTable",
    "TicketTable",
    "TicketTypeTable",
]
