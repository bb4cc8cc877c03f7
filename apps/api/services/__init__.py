"""Service layer exports."""

from .catalog import SqlEventCatalog
from .payments import HttpPaymentGateway
from .store import SqlTicketStore
from .ticketing import TicketingService

__all__ = [
    "HttpPaymentGateway",
    "SqlEventCatalog",
    "SqlTicketStore",
    "TicketingService",
]
