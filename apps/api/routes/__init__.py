"""HTTP routers."""

from . import metrics, ping, purchases, revenue, scans, tickets

__all__ = ["metrics", "ping", "purchases", "revenue", "scans", "tickets"]
